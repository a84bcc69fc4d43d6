"""API payload type definitions"""
from typing import List, Optional
from typing_extensions import TypedDict


class SignatureComparisonResult(TypedDict):
    similarity: str


class FaceMatch(TypedDict):
    sourceId: str
    isMatch: bool
    similarity: float
    reason: Optional[str]


class FaceVerificationResult(TypedDict):
    isMatch: bool
    bestSimilarity: float
    faces: List[FaceMatch]


class SignatureMatch(TypedDict):
    sourceId: str
    isMatch: bool
    similarity: float
    reason: Optional[str]


class SignatureVerificationResult(TypedDict):
    isMatch: bool
    bestSimilarity: float
    signatures: List[SignatureMatch]


class ErrorDetail(TypedDict):
    kind: str
    message: str


class ErrorResponse(TypedDict):
    error: ErrorDetail


class HealthStatus(TypedDict):
    status: str
