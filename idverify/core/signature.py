"""Pixel-level signature comparison.

The metric is the mean absolute pixel difference normalized to the
channel's dynamic range and inverted, so 1.0 means identical rasters and
0.0 means every pixel saturated in opposite directions. It is sensitive to
translation, rotation and scale and does not attempt structural matching.
"""

import logging

import numpy as np

from ..errors import DimensionMismatchError
from ..models.domain import CanonicalImage

logger = logging.getLogger(__name__)

MAX_PIXEL_VALUE = 255


def compare_signatures(first: CanonicalImage, second: CanonicalImage) -> float:
    """Compute similarity between two canonical signature images.

    Args:
        first: Single-channel canonical image.
        second: Single-channel canonical image of the same size.

    Returns:
        Similarity in [0, 1].

    Raises:
        DimensionMismatchError: If the images differ in width, height or
            channel count.
    """
    if (first.width, first.height, first.channels) != (second.width, second.height, second.channels):
        raise DimensionMismatchError(
            "Images must have the same dimensions after resizing "
            f"({first.width}x{first.height}x{first.channels} vs "
            f"{second.width}x{second.height}x{second.channels})"
        )

    pixel_count = first.pixels.size
    if pixel_count == 0:
        raise DimensionMismatchError("Images have no pixels")

    # int64 keeps the sum exact; uint8 subtraction would wrap
    difference = np.abs(first.pixels.astype(np.int64) - second.pixels.astype(np.int64)).sum()
    similarity = 1.0 - float(difference) / (pixel_count * MAX_PIXEL_VALUE)
    logger.debug("Signature difference: %d over %d pixels, similarity %.4f",
                 difference, pixel_count, similarity)
    return similarity


def format_similarity(similarity: float) -> str:
    """Render a similarity with 4 decimal digits."""
    return f"{similarity:.4f}"
