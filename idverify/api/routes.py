"""Verification API routes.

This module provides the HTTP endpoints for signature comparison, face
verification against an account's enrolled photos, and signature
verification against an account's enrolled signatures.
"""

import logging
from typing import Dict

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from ..core.signature import format_similarity
from ..core.verification import VerificationService
from ..models.domain import ImageUpload, VerificationOutcome
from ..models.types import (
    FaceVerificationResult,
    HealthStatus,
    SignatureComparisonResult,
    SignatureVerificationResult,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_service(request: Request) -> VerificationService:
    return request.app.state.service


async def read_upload(upload: UploadFile, max_bytes: int) -> ImageUpload:
    """Read an uploaded file, never more than one byte past the limit.

    The normalizer rejects anything longer than ``max_bytes`` before it
    tries to decode it.
    """
    data = await upload.read(max_bytes + 1)
    return ImageUpload(data=data, mime_type=upload.content_type, filename=upload.filename or "")


def _results(outcome: VerificationOutcome) -> list:
    return [
        {
            'sourceId': r.source_id,
            'isMatch': r.is_match,
            'similarity': round(r.similarity, 4),
            'reason': r.reason.value if r.reason else None,
        }
        for r in outcome.results
    ]


@router.get("/api/health", response_model=HealthStatus)
async def health() -> Dict:
    return {'status': 'healthy'}


@router.post("/compare-signatures", response_model=SignatureComparisonResult)
async def compare_signatures(
    signature1: UploadFile = File(...),
    signature2: UploadFile = File(...),
    service: VerificationService = Depends(get_service),
) -> Dict:
    """Compare two uploaded signature images.

    Args:
        signature1: First signature image (jpeg/png).
        signature2: Second signature image (jpeg/png).

    Returns:
        Dictionary with the similarity formatted to 4 decimals,
        e.g. {"similarity": "0.9876"}.
    """
    max_bytes = service.settings.max_upload_bytes
    first = await read_upload(signature1, max_bytes)
    second = await read_upload(signature2, max_bytes)

    similarity = await service.compare_signatures(first, second)
    return {'similarity': format_similarity(similarity)}


@router.post("/compare-faces", response_model=FaceVerificationResult)
async def compare_faces(
    accountNumber: str = Form(...),
    livePhoto: UploadFile = File(...),
    service: VerificationService = Depends(get_service),
) -> Dict:
    """Match a live photo against the faces enrolled for an account.

    Args:
        accountNumber: Account whose reference photos are used.
        livePhoto: Freshly captured photo (jpeg/png).

    Returns:
        Dictionary containing match results:
            - isMatch: True if any reference photo matches
            - bestSimilarity: Highest similarity (1 - distance)
            - faces: One entry per reference photo with sourceId, isMatch,
              similarity and the reason it could not be compared, if any
    """
    logger.info("Face verification requested for account %s", accountNumber)
    live = await read_upload(livePhoto, service.settings.max_upload_bytes)

    outcome = await service.verify_face(accountNumber, live)
    return {
        'isMatch': outcome.is_match,
        'bestSimilarity': round(outcome.best_similarity, 4),
        'faces': _results(outcome),
    }


@router.post("/verify-signature", response_model=SignatureVerificationResult)
async def verify_signature(
    accountNumber: str = Form(...),
    signature: UploadFile = File(...),
    service: VerificationService = Depends(get_service),
) -> Dict:
    """Match an uploaded signature against the signatures enrolled for an account."""
    logger.info("Signature verification requested for account %s", accountNumber)
    upload = await read_upload(signature, service.settings.max_upload_bytes)

    outcome = await service.verify_signature(accountNumber, upload)
    return {
        'isMatch': outcome.is_match,
        'bestSimilarity': round(outcome.best_similarity, 4),
        'signatures': _results(outcome),
    }
