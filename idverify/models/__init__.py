"""Data models and type definitions"""
from .domain import (
    CanonicalImage,
    FaceCandidate,
    FaceDescriptor,
    FailureReason,
    ImageUpload,
    MatchResult,
    ReferenceEntry,
    SignatureCandidate,
    VerificationOutcome,
)
from .types import (
    ErrorResponse,
    FaceMatch,
    FaceVerificationResult,
    HealthStatus,
    SignatureComparisonResult,
    SignatureMatch,
    SignatureVerificationResult,
)

__all__ = [
    'CanonicalImage',
    'FaceCandidate',
    'FaceDescriptor',
    'FailureReason',
    'ImageUpload',
    'MatchResult',
    'ReferenceEntry',
    'SignatureCandidate',
    'VerificationOutcome',
    'ErrorResponse',
    'FaceMatch',
    'FaceVerificationResult',
    'HealthStatus',
    'SignatureComparisonResult',
    'SignatureMatch',
    'SignatureVerificationResult',
]
