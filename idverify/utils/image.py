"""Image normalization utilities.

This module turns uploaded image buffers into canonical rasters: it
validates the declared format and size, decodes the bytes with OpenCV and
resizes/recolours the result into the fixed shapes the comparators expect.
"""

import base64
import binascii
from typing import Optional, Tuple

import cv2
import numpy as np

from ..errors import ImageDecodeError, OversizeInputError, UnsupportedFormatError
from ..models.domain import CanonicalImage

ALLOWED_MIME_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png"})

MAGIC_NUMBERS = {
    "image/jpeg": b"\xff\xd8\xff",
    "image/jpg": b"\xff\xd8\xff",
    "image/png": b"\x89PNG\r\n\x1a\n",
}

DEFAULT_MAX_BYTES = 5 * 1024 * 1024

SIGNATURE_SIZE = (300, 150)  # width, height
FACE_BOX = (800, 800)
FACE_JPEG_QUALITY = 80
STRETCH_LOWER_PCT = 1.0
STRETCH_UPPER_PCT = 99.0


def check_format(mime_type: Optional[str]) -> str:
    """Validate a declared MIME type against the allow-list.

    Args:
        mime_type: Content type claimed by the uploader.

    Returns:
        The normalized (lower-case, parameter-free) MIME type.

    Raises:
        UnsupportedFormatError: If the type is missing or not allowed.
    """
    normalized = (mime_type or "").split(";")[0].strip().lower()
    if normalized not in ALLOWED_MIME_TYPES:
        raise UnsupportedFormatError(
            f"File must be an image (jpeg/jpg/png), got {mime_type or 'no content type'}"
        )
    return normalized


def check_size(data: bytes, max_bytes: int = DEFAULT_MAX_BYTES) -> None:
    if len(data) > max_bytes:
        raise OversizeInputError(
            f"Image is {len(data)} bytes, limit is {max_bytes} bytes"
        )


def decode_image(data: bytes, mime_type: Optional[str],
                 max_bytes: int = DEFAULT_MAX_BYTES) -> np.ndarray:
    """Decode an uploaded buffer to an OpenCV image.

    Format and size are checked before any decoding happens.

    Args:
        data: Raw encoded bytes.
        mime_type: Declared content type.
        max_bytes: Upper bound on the buffer size.

    Returns:
        Decoded image as numpy array in BGR format.

    Raises:
        UnsupportedFormatError: If the MIME type is not allowed.
        OversizeInputError: If the buffer exceeds ``max_bytes``.
        ImageDecodeError: If the bytes are not a valid image of that format.
    """
    mime = check_format(mime_type)
    check_size(data, max_bytes)

    if not data:
        raise ImageDecodeError("Image buffer is empty")
    if not data.startswith(MAGIC_NUMBERS[mime]):
        raise ImageDecodeError(f"Image data is not a valid {mime} file")

    nparr = np.frombuffer(data, np.uint8)
    image = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    if image is None:
        raise ImageDecodeError("Failed to decode image data")
    return image


def decode_base64_image(base64_string: str) -> Tuple[bytes, str]:
    """Decode an inline-encoded image.

    Args:
        base64_string: Base64 encoded image string, optionally with data URL prefix.
            Example formats:
            - "data:image/jpeg;base64,/9j/4AAQSkZ..."
            - "/9j/4AAQSkZ..." (without prefix)

    Returns:
        Tuple of raw bytes and the MIME type taken from the data URL prefix,
        or sniffed from the magic number when there is no prefix.

    Raises:
        ImageDecodeError: If base64 decoding fails.
    """
    mime_type = None
    payload = base64_string.strip()
    if ';base64,' in payload:
        header, payload = payload.split(';base64,', 1)
        if header.startswith('data:'):
            mime_type = header[len('data:'):].lower()
    elif ',' in payload:
        payload = payload.split(',', 1)[1]

    payload = "".join(payload.split())
    try:
        image_bytes = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"Failed to decode base64 string: {e}")

    if mime_type is None:
        mime_type = sniff_mime_type(image_bytes)
    return image_bytes, mime_type


def sniff_mime_type(data: bytes) -> str:
    if data.startswith(MAGIC_NUMBERS["image/png"]):
        return "image/png"
    if data.startswith(MAGIC_NUMBERS["image/jpeg"]):
        return "image/jpeg"
    return "application/octet-stream"


def resize_cover(image: np.ndarray, size: Tuple[int, int]) -> np.ndarray:
    """Scale to cover ``size`` and centre-crop the overflow.

    Args:
        image: Input image.
        size: Target (width, height).

    Returns:
        Image of exactly the target size.
    """
    target_w, target_h = size
    height, width = image.shape[:2]
    if (width, height) == (target_w, target_h):
        return image

    scale = max(target_w / width, target_h / height)
    new_w = max(target_w, int(round(width * scale)))
    new_h = max(target_h, int(round(height * scale)))
    interpolation = cv2.INTER_AREA if scale < 1 else cv2.INTER_LINEAR
    resized = cv2.resize(image, (new_w, new_h), interpolation=interpolation)

    x = (new_w - target_w) // 2
    y = (new_h - target_h) // 2
    return resized[y:y + target_h, x:x + target_w]


def resize_inside(image: np.ndarray, box: Tuple[int, int]) -> np.ndarray:
    """Aspect-preserving fit inside ``box`` (enlarging small images too)."""
    box_w, box_h = box
    height, width = image.shape[:2]
    scale = min(box_w / width, box_h / height)
    if abs(scale - 1.0) < 1e-6:
        return image
    new_w = max(1, int(round(width * scale)))
    new_h = max(1, int(round(height * scale)))
    interpolation = cv2.INTER_AREA if scale < 1 else cv2.INTER_LINEAR
    return cv2.resize(image, (new_w, new_h), interpolation=interpolation)


def stretch_contrast(image: np.ndarray, lower: float = STRETCH_LOWER_PCT,
                     upper: float = STRETCH_UPPER_PCT) -> np.ndarray:
    """Stretch luminance so its ``lower``..``upper`` percentiles span 0..255.

    Works on the Y channel of YCrCb, so chroma and colour balance are kept.
    Flat images are left untouched.
    """
    ycrcb = cv2.cvtColor(image, cv2.COLOR_BGR2YCrCb)
    luma = ycrcb[:, :, 0].astype(np.float32)
    lo, hi = np.percentile(luma, (lower, upper))
    if hi - lo < 1.0:
        return image
    stretched = (luma - lo) * (255.0 / (hi - lo))
    ycrcb[:, :, 0] = np.clip(np.rint(stretched), 0, 255).astype(np.uint8)
    return cv2.cvtColor(ycrcb, cv2.COLOR_YCrCb2BGR)


def reencode_jpeg(image: np.ndarray, quality: int = FACE_JPEG_QUALITY) -> np.ndarray:
    ok, buf = cv2.imencode(".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, int(quality)])
    if not ok:
        raise ImageDecodeError("Failed to re-encode image as JPEG")
    decoded = cv2.imdecode(buf, cv2.IMREAD_COLOR)
    if decoded is None:
        raise ImageDecodeError("Failed to decode re-encoded JPEG")
    return decoded


def normalize_signature(data: bytes, mime_type: Optional[str],
                        max_bytes: int = DEFAULT_MAX_BYTES,
                        size: Tuple[int, int] = SIGNATURE_SIZE) -> CanonicalImage:
    """Canonical signature raster: fixed size, single channel."""
    image = decode_image(data, mime_type, max_bytes)
    resized = resize_cover(image, size)
    gray = cv2.cvtColor(resized, cv2.COLOR_BGR2GRAY)
    return CanonicalImage(pixels=np.ascontiguousarray(gray), mode="L")


def normalize_face(data: bytes, mime_type: Optional[str],
                   max_bytes: int = DEFAULT_MAX_BYTES,
                   box: Tuple[int, int] = FACE_BOX) -> CanonicalImage:
    """Canonical face raster: fit inside ``box``, contrast-stretched, RGB.

    The stretched image goes through a JPEG round-trip so every input
    reaches the embedding provider with the same compression profile.
    """
    image = decode_image(data, mime_type, max_bytes)
    fitted = resize_inside(image, box)
    stretched = stretch_contrast(fitted)
    reencoded = reencode_jpeg(stretched)
    rgb = cv2.cvtColor(reencoded, cv2.COLOR_BGR2RGB)
    return CanonicalImage(pixels=np.ascontiguousarray(rgb), mode="RGB")
