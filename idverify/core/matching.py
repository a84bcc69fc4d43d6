"""Face and signature match aggregation.

One live descriptor is compared to every candidate of an account. The
account is accepted when ANY candidate matches: an account may enrol
several reference images and a valid match against one of them suffices.
Candidates that could not be compared stay in the result sequence with
similarity 0 and their failure reason.
"""

import logging
from typing import Iterable, List, Optional, Sequence

import numpy as np

from ..errors import (
    DescriptorMismatchError,
    DimensionMismatchError,
    EmptyCandidateSetError,
    NoLiveFaceError,
)
from ..models.domain import (
    CanonicalImage,
    FaceCandidate,
    FaceDescriptor,
    FailureReason,
    MatchResult,
    SignatureCandidate,
    VerificationOutcome,
)
from .signature import compare_signatures

logger = logging.getLogger(__name__)

DEFAULT_MATCH_THRESHOLD = 0.5
DEFAULT_SIGNATURE_THRESHOLD = 0.85


def euclidean_distance(first: FaceDescriptor, second: FaceDescriptor) -> float:
    """Euclidean distance between two descriptors of the same provider.

    Raises:
        DescriptorMismatchError: If the descriptors come from different
            providers or have different dimensionality.
    """
    if first.provider != second.provider:
        raise DescriptorMismatchError(
            f"Cannot compare descriptors from {first.provider!r} and {second.provider!r}"
        )
    if first.dimension != second.dimension:
        raise DescriptorMismatchError(
            f"Descriptor dimensions differ ({first.dimension} vs {second.dimension})"
        )
    return float(np.linalg.norm(first.vector - second.vector))


def compare_face(live: FaceDescriptor, candidate: FaceCandidate,
                 threshold: float = DEFAULT_MATCH_THRESHOLD) -> MatchResult:
    if candidate.descriptor is None:
        return MatchResult(
            source_id=candidate.source_id,
            similarity=0.0,
            is_match=False,
            reason=candidate.reason,
        )

    distance = euclidean_distance(live, candidate.descriptor)
    # not clamped: very dissimilar pairs give negative similarity
    similarity = 1.0 - distance
    return MatchResult(
        source_id=candidate.source_id,
        similarity=similarity,
        is_match=distance < threshold,
    )


def summarize(results: Iterable[MatchResult]) -> VerificationOutcome:
    """Fold match results into an outcome (any-match policy)."""
    results = tuple(results)
    if not results:
        raise EmptyCandidateSetError("No reference images available for comparison")
    return VerificationOutcome(
        is_match=any(r.is_match for r in results),
        best_similarity=max(r.similarity for r in results),
        results=results,
    )


def aggregate_faces(live: Optional[FaceDescriptor], candidates: Sequence[FaceCandidate],
                    threshold: float = DEFAULT_MATCH_THRESHOLD) -> VerificationOutcome:
    """Compare the live descriptor against every candidate.

    Args:
        live: Descriptor of the live image, or None if no face was found.
        candidates: Candidates in fetch order.
        threshold: Distance below which a candidate matches.

    Returns:
        The verification outcome; results keep the candidate order.

    Raises:
        NoLiveFaceError: If ``live`` is None.
        EmptyCandidateSetError: If ``candidates`` is empty.
    """
    if live is None:
        raise NoLiveFaceError("No face detected in the live photo")
    if not candidates:
        raise EmptyCandidateSetError("No reference images available for comparison")

    results: List[MatchResult] = [compare_face(live, c, threshold) for c in candidates]
    outcome = summarize(results)

    failed = sum(1 for r in results if r.reason is not None)
    logger.info(
        "Face aggregation: candidates=%d failed=%d isMatch=%s bestSimilarity=%.4f",
        len(results), failed, outcome.is_match, outcome.best_similarity,
    )
    return outcome


def compare_signature_candidate(live: CanonicalImage, candidate: SignatureCandidate,
                                threshold: float = DEFAULT_SIGNATURE_THRESHOLD) -> MatchResult:
    if candidate.image is None:
        return MatchResult(candidate.source_id, 0.0, False, candidate.reason)
    try:
        similarity = compare_signatures(live, candidate.image)
    except DimensionMismatchError:
        logger.warning("Signature %s has mismatched dimensions", candidate.source_id)
        return MatchResult(candidate.source_id, 0.0, False, FailureReason.DIMENSION_MISMATCH)
    return MatchResult(candidate.source_id, similarity, similarity >= threshold)


def aggregate_signatures(live: CanonicalImage, candidates: Sequence[SignatureCandidate],
                         threshold: float = DEFAULT_SIGNATURE_THRESHOLD) -> VerificationOutcome:
    """Same any-match policy applied to an account's enrolled signatures."""
    if not candidates:
        raise EmptyCandidateSetError("No reference signatures available for comparison")
    results = [compare_signature_candidate(live, c, threshold) for c in candidates]
    outcome = summarize(results)
    logger.info(
        "Signature aggregation: candidates=%d isMatch=%s bestSimilarity=%.4f",
        len(outcome.results), outcome.is_match, outcome.best_similarity,
    )
    return outcome
