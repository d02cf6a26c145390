"""Circle (blob) and line (probabilistic Hough) extraction."""
from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Optional, Tuple

import cv2
import numpy as np
import yaml
from pydantic import ValidationError

from ..config import BlobDetectorSettings, DetectorSettings, LineSettings
from .mapping import CoordinateMapper
from .shapes import DetectedCircle, DetectedLine

logger = logging.getLogger(__name__)


class DetectorConfigError(RuntimeError):
    """Raised when the blob detector parameter block cannot be loaded or applied."""


def load_blob_settings(path: Path) -> BlobDetectorSettings:
    """Read a blob parameter block from a YAML mapping.

    Keys match ``BlobDetectorSettings`` fields; missing keys keep their defaults.
    """
    try:
        with Path(path).open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
    except OSError as exc:
        raise DetectorConfigError(f"Cannot read blob detector config {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise DetectorConfigError(f"Malformed blob detector config {path}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise DetectorConfigError(f"Blob detector config {path} must be a mapping, got {type(raw).__name__}")
    try:
        return BlobDetectorSettings.model_validate(raw)
    except ValidationError as exc:
        raise DetectorConfigError(f"Invalid blob detector config {path}: {exc}") from exc


def build_blob_params(settings: BlobDetectorSettings) -> "cv2.SimpleBlobDetector_Params":
    params = cv2.SimpleBlobDetector_Params()
    params.thresholdStep = settings.threshold_step
    params.minThreshold = settings.min_threshold
    params.maxThreshold = settings.max_threshold
    params.minRepeatability = settings.min_repeatability
    params.minDistBetweenBlobs = settings.min_dist_between_blobs

    params.filterByColor = settings.filter_by_color
    params.blobColor = settings.blob_color

    params.filterByArea = settings.filter_by_area
    params.minArea = settings.min_area
    params.maxArea = settings.max_area

    params.filterByCircularity = settings.filter_by_circularity
    params.minCircularity = settings.min_circularity
    params.maxCircularity = settings.max_circularity

    params.filterByInertia = settings.filter_by_inertia
    params.minInertiaRatio = settings.min_inertia_ratio
    params.maxInertiaRatio = settings.max_inertia_ratio

    params.filterByConvexity = settings.filter_by_convexity
    params.minConvexity = settings.min_convexity
    params.maxConvexity = settings.max_convexity
    return params


def create_blob_detector(settings: DetectorSettings) -> "cv2.SimpleBlobDetector":
    """Build the blob detector once at startup; any failure is fatal."""
    blob_settings = settings.blob
    if settings.blob_params_file is not None:
        logger.info("Loading blob detector parameters from %s", settings.blob_params_file)
        blob_settings = load_blob_settings(settings.blob_params_file)
    try:
        return cv2.SimpleBlobDetector_create(build_blob_params(blob_settings))
    except cv2.error as exc:
        raise DetectorConfigError(f"OpenCV rejected blob detector parameters: {exc}") from exc


class ShapeExtractor:
    """Turns one preprocessed frame into circles and lines in screen/world space.

    Stateless between calls: every call is computed from its input image only.
    """

    def __init__(
        self,
        mapper: CoordinateMapper,
        *,
        detector_settings: Optional[DetectorSettings] = None,
        line_settings: Optional[LineSettings] = None,
    ) -> None:
        self.mapper = mapper
        self.line_settings = line_settings or LineSettings()
        self._blob_detector = create_blob_detector(detector_settings or DetectorSettings())

    def detect_blobs(self, gray: np.ndarray) -> Tuple["cv2.KeyPoint", ...]:
        return tuple(self._blob_detector.detect(gray))

    def detect_segments(self, edges: np.ndarray) -> Tuple[Tuple[int, int, int, int], ...]:
        s = self.line_settings
        raw = cv2.HoughLinesP(
            edges,
            rho=s.rho,
            theta=math.radians(s.theta_degrees),
            threshold=s.threshold,
            minLineLength=s.min_line_length,
            maxLineGap=s.max_line_gap,
        )
        if raw is None:
            return ()
        return tuple(tuple(int(v) for v in segment[0]) for segment in raw)

    def circle_from_blob(self, x: float, y: float, size: float) -> DetectedCircle:
        screen_position, world_position = self.mapper.image_to_world(x, y)
        return DetectedCircle(
            screen_position=screen_position,
            screen_diameter=float(size) * self.mapper.screen_pixels_per_image_pixel,
            world_position=world_position,
        )

    def line_from_segment(self, x0: float, y0: float, x1: float, y1: float) -> DetectedLine:
        screen0, world0 = self.mapper.image_to_world(x0, y0)
        screen1, world1 = self.mapper.image_to_world(x1, y1)
        return DetectedLine(
            screen_point0=screen0,
            screen_point1=screen1,
            world_point0=world0,
            world_point1=world1,
        )

    def extract_circles(self, gray: np.ndarray) -> Tuple[DetectedCircle, ...]:
        return tuple(
            self.circle_from_blob(kp.pt[0], kp.pt[1], kp.size) for kp in self.detect_blobs(gray)
        )

    def extract_lines(self, edges: np.ndarray) -> Tuple[DetectedLine, ...]:
        return tuple(self.line_from_segment(*segment) for segment in self.detect_segments(edges))


__all__ = [
    "DetectorConfigError",
    "ShapeExtractor",
    "build_blob_params",
    "create_blob_detector",
    "load_blob_settings",
]
