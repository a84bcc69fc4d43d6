"""Domain records shared by the matching pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

import numpy as np


class FailureReason(str, Enum):
    """Why a candidate could not be compared."""

    NO_FACE_DETECTED = "no_face_detected"
    DECODE_ERROR = "decode_error"
    UNSUPPORTED_FORMAT = "unsupported_format"
    OVERSIZE_INPUT = "oversize_input"
    DIMENSION_MISMATCH = "dimension_mismatch"
    PROVIDER_TIMEOUT = "provider_timeout"
    PROVIDER_ERROR = "provider_error"


@dataclass(frozen=True)
class ImageUpload:
    """Raw encoded bytes plus the declared MIME type."""

    data: bytes
    mime_type: Optional[str]
    filename: str = ""


@dataclass(frozen=True)
class CanonicalImage:
    """Normalized raster used as comparison input.

    ``mode`` is ``"L"`` for single-channel images and ``"RGB"`` for
    three-channel ones. The pixel array is made read-only on creation.
    """

    pixels: np.ndarray
    mode: str

    def __post_init__(self):
        self.pixels.setflags(write=False)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def channels(self) -> int:
        return 1 if self.pixels.ndim == 2 else int(self.pixels.shape[2])


@dataclass(frozen=True)
class FaceDescriptor:
    vector: np.ndarray
    provider: str

    def __post_init__(self):
        self.vector.setflags(write=False)

    @property
    def dimension(self) -> int:
        return int(self.vector.shape[0])


@dataclass(frozen=True)
class FaceCandidate:
    """A reference face: either a descriptor or the reason there is none."""

    source_id: str
    descriptor: Optional[FaceDescriptor] = None
    reason: Optional[FailureReason] = None


@dataclass(frozen=True)
class SignatureCandidate:
    source_id: str
    image: Optional[CanonicalImage] = None
    reason: Optional[FailureReason] = None


@dataclass(frozen=True)
class MatchResult:
    source_id: str
    similarity: float
    is_match: bool
    reason: Optional[FailureReason] = None


@dataclass(frozen=True)
class VerificationOutcome:
    is_match: bool
    best_similarity: float
    results: Tuple[MatchResult, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ReferenceEntry:
    """One approved reference record returned by the account store.

    ``photo`` and ``signature`` hold inline-encoded images (data URLs or
    bare base64); either may be ``None`` when the store has no such image.
    """

    source_id: str
    photo: Optional[str] = None
    signature: Optional[str] = None
