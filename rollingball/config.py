"""Central configuration for the rollingball detection and simulation service."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ROOT_DIR = Path(__file__).resolve().parents[1]
DEFAULT_ENV_FILE = ROOT_DIR / ".env"


# ============================================================
# Nested Configuration Classes
# ============================================================

class CameraSettings(BaseModel):
    """Capture device configuration."""
    facing: Literal["back", "front"] = Field("back", description="Preferred camera facing direction")
    back_device_index: Optional[int] = Field(0, description="OpenCV device index of the back-facing camera")
    front_device_index: Optional[int] = Field(None, description="OpenCV device index of the front-facing camera")
    resolution_width: int = Field(640, gt=0, description="Requested capture width (pixels)")
    resolution_height: int = Field(480, gt=0, description="Requested capture height (pixels)")
    fps: int = Field(15, gt=0, description="Requested capture frame rate")
    first_frame_timeout_s: float = Field(10.0, gt=0, description="Max wait for the first frame at startup")


class ScreenSettings(BaseModel):
    """Display surface the preview and simulation are laid out on."""
    width: int = Field(720, gt=0, description="Screen width (pixels)")
    height: int = Field(1280, gt=0, description="Screen height (pixels)")


class MountingSettings(BaseModel):
    """Rotation of the capture device relative to the display.

    The default swaps axes and mirrors the horizontal one, which matches a
    landscape sensor mounted in a portrait handset.
    """
    swap_axes: bool = Field(True, description="Image x runs along screen y (and vice versa)")
    flip_x: bool = Field(True, description="Mirror the screen x axis after the swap")
    flip_y: bool = Field(False, description="Mirror the screen y axis after the swap")


class PreprocessSettings(BaseModel):
    """Grayscale/edge-map stage."""
    equalize_histogram: bool = Field(True, description="Apply histogram equalization to the gray image")
    canny_low_threshold: float = Field(50.0, ge=0, description="Canny hysteresis low threshold")
    canny_high_threshold: float = Field(200.0, ge=0, description="Canny hysteresis high threshold")

    @model_validator(mode="after")
    def _check_thresholds(self) -> "PreprocessSettings":
        if self.canny_low_threshold > self.canny_high_threshold:
            raise ValueError("canny_low_threshold must not exceed canny_high_threshold")
        return self


class BlobDetectorSettings(BaseModel):
    """Parameter block handed to cv2.SimpleBlobDetector at startup."""
    threshold_step: float = Field(10.0, gt=0)
    min_threshold: float = Field(50.0, ge=0)
    max_threshold: float = Field(220.0, ge=0)
    min_repeatability: int = Field(2, ge=1)
    min_dist_between_blobs: float = Field(10.0, ge=0)
    filter_by_color: bool = False
    blob_color: int = Field(0, ge=0, le=255)
    filter_by_area: bool = True
    min_area: float = Field(50.0, ge=0)
    max_area: float = Field(5000.0, ge=0)
    filter_by_circularity: bool = True
    min_circularity: float = Field(0.8, ge=0)
    max_circularity: float = Field(3.4e38, ge=0)
    filter_by_inertia: bool = False
    min_inertia_ratio: float = Field(0.1, ge=0)
    max_inertia_ratio: float = Field(3.4e38, ge=0)
    filter_by_convexity: bool = False
    min_convexity: float = Field(0.95, ge=0)
    max_convexity: float = Field(3.4e38, ge=0)

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def _check_ranges(self) -> "BlobDetectorSettings":
        if self.min_threshold >= self.max_threshold:
            raise ValueError("min_threshold must be below max_threshold")
        if self.filter_by_area and self.min_area > self.max_area:
            raise ValueError("min_area must not exceed max_area")
        return self


class DetectorSettings(BaseModel):
    """Circle (blob) detection configuration."""
    blob: BlobDetectorSettings = Field(default_factory=BlobDetectorSettings, description="Inline blob parameters")
    blob_params_file: Optional[Path] = Field(None, description="YAML file overriding the inline blob parameters")


class LineSettings(BaseModel):
    """Probabilistic Hough transform arguments."""
    rho: float = Field(1.0, gt=0, description="Distance resolution (pixels)")
    theta_degrees: float = Field(1.0, gt=0, description="Angle resolution (degrees)")
    threshold: int = Field(50, ge=1, description="Accumulator threshold")
    min_line_length: float = Field(50.0, ge=0, description="Minimum segment length (pixels)")
    max_line_gap: float = Field(10.0, ge=0, description="Maximum gap joined into one segment (pixels)")


class PhysicsSettings(BaseModel):
    """Rigid-body simulation tuning."""
    gravity_magnitude: float = Field(9.81, ge=0, description="Base gravity (world units/s^2)")
    gravity_scale: float = Field(8.0, ge=0, description="Multiplier applied to the sensed gravity vector")
    default_gravity: Tuple[float, float, float] = Field(
        (0.0, -1.0, 0.0), description="Gravity direction used when no orientation sensor is present"
    )
    circle_mass: float = Field(1.0, gt=0, description="Mass of each spawned circle body")
    circle_elasticity: float = Field(0.4, ge=0, description="Bounciness of circle bodies")
    friction: float = Field(0.6, ge=0, description="Friction coefficient for every body")
    line_thickness_px: float = Field(6.0, gt=0, description="Screen thickness of spawned line bodies")
    step_dt: Optional[float] = Field(None, gt=0, description="Fixed physics step; defaults to 1/fps")


class PreviewSettings(BaseModel):
    """Preview stream rendering."""
    jpeg_quality: int = Field(80, ge=1, le=100, description="Preview JPEG quality")
    queue_size: int = Field(2, ge=1, description="Max buffered preview JPEG frames per subscriber")
    circle_color: Tuple[int, int, int] = Field((0, 0, 255), description="BGR color of scanned circles")
    line_color: Tuple[int, int, int] = Field((0, 0, 255), description="BGR color of scanned lines")
    body_color: Tuple[int, int, int] = Field((0, 200, 255), description="BGR color of simulated bodies")
    ui_event_queue_size: int = Field(8, ge=1, description="Max buffered UI events per subscriber")


class Settings(BaseSettings):
    """Environment-driven settings for the rollingball pipeline."""

    # HTTP Server
    host: str = Field("0.0.0.0", description="Host interface for local FastAPI server")
    port: int = Field(5000, description="Port for FastAPI server")

    # Pipeline
    tick_hz: float = Field(30.0, gt=0, description="Pipeline tick rate (display frame rate)")

    # Logging
    log_level: str = Field("INFO", description="Logging level")
    log_directory: Path = Field(ROOT_DIR / "logs", description="Log directory path")
    log_retention_days: int = Field(14, description="Number of log files to retain")
    log_to_file: bool = Field(True, description="Also write the daily-rotated runtime log file")
    log_library_level: str = Field("WARNING", description="Level for third-party loggers")

    # Nested Configuration Objects
    camera: CameraSettings = Field(default_factory=CameraSettings, description="Capture device settings")
    screen: ScreenSettings = Field(default_factory=ScreenSettings, description="Display surface settings")
    mounting: MountingSettings = Field(default_factory=MountingSettings, description="Camera mounting transform")
    preprocess: PreprocessSettings = Field(default_factory=PreprocessSettings, description="Edge map settings")
    detector: DetectorSettings = Field(default_factory=DetectorSettings, description="Blob detector settings")
    lines: LineSettings = Field(default_factory=LineSettings, description="Hough line settings")
    physics: PhysicsSettings = Field(default_factory=PhysicsSettings, description="Physics tuning")
    preview: PreviewSettings = Field(default_factory=PreviewSettings, description="Preview rendering")

    @field_validator("log_level", "log_library_level", mode="before")
    @classmethod
    def _normalize_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    model_config = SettingsConfigDict(
        env_file=str(DEFAULT_ENV_FILE),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings(override_env_file: Optional[Path] = None) -> Settings:
    """Cached Settings instance; accepts optional env override for tests."""

    if override_env_file:
        return Settings(_env_file=str(override_env_file))
    return Settings()
