"""Face detection and embedding module.

This module wraps the external detection/landmark/embedding capability
behind a single adapter contract::

    provider.detect(image, config) -> Optional[FaceDescriptor]

``None`` means no face was found above the configured score; it is a
regular outcome, not an error. The default provider uses the dlib models
shipped with ``face_recognition`` (HOG detector, 68-point landmarks and the
ResNet 128-d encoder).
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import face_recognition
import numpy as np
from typing_extensions import Protocol

from ..models.domain import CanonicalImage, FaceDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectionConfig:
    input_size: int = 416
    score_threshold: float = 0.5


class EmbeddingProvider(Protocol):
    """Detection + embedding capability consumed by the pipeline."""

    name: str

    def detect(self, image: CanonicalImage, config: DetectionConfig) -> Optional[FaceDescriptor]:
        ...


class FaceRecognitionProvider:
    """Single-face detector and encoder backed by ``face_recognition``.

    The instance is created once per process and is read-only afterwards,
    so it may be shared by worker threads.
    """

    name = "dlib_resnet_v1"
    UPSAMPLE_TIMES = 1          # dlib pyramid upsampling for small faces
    LANDMARK_MODEL = "large"    # 68-point landmarks

    def __init__(self):
        self._detector = face_recognition.api.face_detector

    def warm_up(self) -> None:
        """Run one detection on a blank frame so model loading errors surface at startup."""
        t0 = time.perf_counter()
        blank = CanonicalImage(pixels=np.zeros((480, 640, 3), np.uint8), mode="RGB")
        self.detect(blank, DetectionConfig())
        logger.info("Face provider %s ready (warm-up %.1f ms)",
                    self.name, (time.perf_counter() - t0) * 1000.0)

    def detect(self, image: CanonicalImage, config: DetectionConfig) -> Optional[FaceDescriptor]:
        rgb = self._as_rgb(image)
        small, scale = self._bound_resolution(rgb, config.input_size)

        rects, scores, _ = self._detector.run(small, self.UPSAMPLE_TIMES, config.score_threshold)
        candidates = [
            (float(score), rect) for rect, score in zip(rects, scores)
            if score >= config.score_threshold
        ]
        if not candidates:
            return None

        # Most confident face, larger box wins ties
        score, rect = max(candidates, key=lambda c: (c[0], c[1].width() * c[1].height()))
        location = self._to_location(rect, scale, rgb.shape[:2])
        logger.debug("Face detected with score %.3f at %s", score, location)

        encodings = face_recognition.face_encodings(
            rgb, known_face_locations=[location], model=self.LANDMARK_MODEL
        )
        if not encodings:
            return None
        return FaceDescriptor(vector=np.asarray(encodings[0], dtype=np.float64), provider=self.name)

    @staticmethod
    def _as_rgb(image: CanonicalImage) -> np.ndarray:
        if image.mode == "L":
            return cv2.cvtColor(image.pixels, cv2.COLOR_GRAY2RGB)
        return np.ascontiguousarray(image.pixels)

    @staticmethod
    def _bound_resolution(rgb: np.ndarray, input_size: int) -> Tuple[np.ndarray, float]:
        height, width = rgb.shape[:2]
        longest = max(height, width)
        if longest <= input_size:
            return rgb, 1.0
        scale = input_size / float(longest)
        small = cv2.resize(rgb, (max(1, int(width * scale)), max(1, int(height * scale))),
                           interpolation=cv2.INTER_AREA)
        return small, scale

    @staticmethod
    def _to_location(rect, scale: float, shape: Tuple[int, int]) -> Tuple[int, int, int, int]:
        """dlib rectangle on the scaled frame -> (top, right, bottom, left) on the full one."""
        height, width = shape
        top = max(0, int(rect.top() / scale))
        right = min(width - 1, int(rect.right() / scale))
        bottom = min(height - 1, int(rect.bottom() / scale))
        left = max(0, int(rect.left() / scale))
        return top, right, bottom, left


def extract_descriptor(provider: EmbeddingProvider, image: CanonicalImage,
                       config: DetectionConfig, prefix: str = "") -> Optional[FaceDescriptor]:
    """Run the provider on one canonical image.

    Args:
        provider: Embedding provider.
        image: Face-oriented canonical image.
        config: Detection settings.
        prefix: Prefix for logging messages.

    Returns:
        The face descriptor, or None if no face was detected.
    """
    t0 = time.perf_counter()
    descriptor = provider.detect(image, config)
    elapsed = (time.perf_counter() - t0) * 1000.0
    if descriptor is None:
        logger.info("%sno face detected (%dx%d, %.1f ms)", prefix, image.width, image.height, elapsed)
    else:
        logger.info("%sface descriptor extracted (dim=%d, %.1f ms)", prefix, descriptor.dimension, elapsed)
    return descriptor
