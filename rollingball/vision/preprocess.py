"""Grayscale + edge map stage feeding the shape extractor."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

from ..config import PreprocessSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreprocessedFrame:
    """Single-channel views of one captured frame."""
    gray: np.ndarray   # equalized grayscale, uint8
    edges: np.ndarray  # Canny edge map, uint8 (0 or 255)


class FramePreprocessor:
    """Converts a raw color frame into the gray and edge images the detectors need."""

    def __init__(self, settings: Optional[PreprocessSettings] = None) -> None:
        self.settings = settings or PreprocessSettings()

    @staticmethod
    def to_gray(image: np.ndarray) -> np.ndarray:
        if image.ndim == 2:
            return image
        channels = image.shape[2]
        if channels == 1:
            return image[:, :, 0]
        if channels == 3:
            return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        if channels == 4:
            return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
        raise ValueError(f"Unsupported frame shape {image.shape}")

    def process(self, image: np.ndarray) -> PreprocessedFrame:
        gray = self.to_gray(image)
        if gray.dtype != np.uint8:
            gray = cv2.convertScaleAbs(gray)
        if self.settings.equalize_histogram:
            gray = cv2.equalizeHist(gray)
        edges = cv2.Canny(
            gray,
            self.settings.canny_low_threshold,
            self.settings.canny_high_threshold,
        )
        return PreprocessedFrame(gray=gray, edges=edges)


__all__ = ["FramePreprocessor", "PreprocessedFrame"]
