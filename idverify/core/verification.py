"""Verification orchestration.

This module coordinates the matching pipeline for one request: it fetches
an account's reference records, normalizes every image, extracts face
descriptors and hands the results to the aggregators.

The live image is fail-fast: any error on it aborts the request. Reference
images are processed concurrently and fail-soft: each task turns its own
pipeline error into a failure reason, so the fan-out always settles with
one candidate per reference record, in fetch order.
"""

import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, TypeVar

from ..clients.account_store import AccountStore
from ..config import Settings
from ..errors import (
    ExternalCollaboratorUnavailableError,
    ImageDecodeError,
    NoLiveFaceError,
    OversizeInputError,
    UnsupportedFormatError,
)
from ..models.domain import (
    CanonicalImage,
    FaceCandidate,
    FaceDescriptor,
    FailureReason,
    ImageUpload,
    ReferenceEntry,
    SignatureCandidate,
    VerificationOutcome,
)
from ..utils.image import decode_base64_image, normalize_face, normalize_signature
from .face_detection import DetectionConfig, EmbeddingProvider, extract_descriptor
from .matching import aggregate_faces, aggregate_signatures
from .signature import compare_signatures

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _failure_reason(error: Exception) -> FailureReason:
    if isinstance(error, UnsupportedFormatError):
        return FailureReason.UNSUPPORTED_FORMAT
    if isinstance(error, OversizeInputError):
        return FailureReason.OVERSIZE_INPUT
    return FailureReason.DECODE_ERROR


class VerificationService:
    """Face and signature verification for bank accounts.

    Provider calls run on a dedicated, bounded thread pool, separate from
    the default executor that normalizes images. Call ``close`` when the
    service is retired.
    """

    def __init__(self, provider: EmbeddingProvider, account_store: AccountStore,
                 settings: Settings):
        self.provider = provider
        self.account_store = account_store
        self.settings = settings
        self.detection = DetectionConfig(
            input_size=settings.detection_input_size,
            score_threshold=settings.detection_score_threshold,
        )
        self._provider_pool = ThreadPoolExecutor(
            max_workers=settings.provider_workers, thread_name_prefix="embedding"
        )

    def close(self) -> None:
        # timed-out provider calls are abandoned, not joined
        self._provider_pool.shutdown(wait=False)

    async def _in_thread(self, fn: Callable[..., T], *args) -> T:
        return await asyncio.to_thread(fn, *args)

    async def _extract(self, image: CanonicalImage, prefix: str) -> Optional[FaceDescriptor]:
        loop = asyncio.get_running_loop()
        call = functools.partial(extract_descriptor, self.provider, image, self.detection, prefix)
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(self._provider_pool, call),
                timeout=self.settings.provider_timeout,
            )
        except asyncio.TimeoutError:
            raise
        except Exception as e:
            logger.exception("%sembedding provider failed", prefix)
            raise ExternalCollaboratorUnavailableError(f"Embedding provider failed: {e}") from e

    async def _live_descriptor(self, upload: ImageUpload) -> FaceDescriptor:
        prefix = f"Live ({upload.filename}): " if upload.filename else "Live: "
        image = await self._in_thread(
            normalize_face, upload.data, upload.mime_type, self.settings.max_upload_bytes
        )
        try:
            descriptor = await self._extract(image, prefix)
        except asyncio.TimeoutError:
            logger.error("%sembedding provider timed out", prefix)
            raise ExternalCollaboratorUnavailableError("Embedding provider timed out")
        if descriptor is None:
            raise NoLiveFaceError("No face detected in the live photo")
        return descriptor

    async def _face_candidate(self, entry: ReferenceEntry) -> FaceCandidate:
        prefix = f"Reference {entry.source_id}: "
        try:
            data, mime_type = decode_base64_image(entry.photo or "")
            image = await self._in_thread(
                normalize_face, data, mime_type, self.settings.max_upload_bytes
            )
            descriptor = await self._extract(image, prefix)
        except asyncio.TimeoutError:
            logger.warning("%sembedding provider timed out", prefix)
            return FaceCandidate(entry.source_id, reason=FailureReason.PROVIDER_TIMEOUT)
        except ExternalCollaboratorUnavailableError:
            return FaceCandidate(entry.source_id, reason=FailureReason.PROVIDER_ERROR)
        except (UnsupportedFormatError, OversizeInputError, ImageDecodeError) as e:
            logger.warning("%s%s", prefix, e)
            return FaceCandidate(entry.source_id, reason=_failure_reason(e))

        if descriptor is None:
            return FaceCandidate(entry.source_id, reason=FailureReason.NO_FACE_DETECTED)
        return FaceCandidate(entry.source_id, descriptor=descriptor)

    async def _signature_candidate(self, entry: ReferenceEntry) -> SignatureCandidate:
        try:
            data, mime_type = decode_base64_image(entry.signature or "")
            image = await self._in_thread(
                normalize_signature, data, mime_type, self.settings.max_upload_bytes
            )
        except (UnsupportedFormatError, OversizeInputError, ImageDecodeError) as e:
            logger.warning("Reference %s: %s", entry.source_id, e)
            return SignatureCandidate(entry.source_id, reason=_failure_reason(e))
        return SignatureCandidate(entry.source_id, image=image)

    async def verify_face(self, account_id: str, live: ImageUpload) -> VerificationOutcome:
        """Match a live photo against every enrolled face of an account.

        Args:
            account_id: Account number.
            live: The freshly captured photo.

        Returns:
            The verification outcome, one result per reference record.

        Raises:
            VerificationError: On any failure of the live image or of the
                account store. Per-reference failures never raise.
        """
        live_descriptor = await self._live_descriptor(live)
        entries = await self.account_store.fetch_references(account_id)

        candidates: List[FaceCandidate] = list(await asyncio.gather(
            *(self._face_candidate(entry) for entry in entries)
        ))
        outcome = aggregate_faces(live_descriptor, candidates, self.settings.face_match_threshold)
        logger.info(
            "Face comparison for account %s: isMatch=%s, bestSimilarity=%.4f",
            account_id, outcome.is_match, outcome.best_similarity,
        )
        return outcome

    async def compare_signatures(self, first: ImageUpload, second: ImageUpload) -> float:
        """Similarity between two directly uploaded signatures."""
        max_bytes = self.settings.max_upload_bytes
        image1, image2 = await asyncio.gather(
            self._in_thread(normalize_signature, first.data, first.mime_type, max_bytes),
            self._in_thread(normalize_signature, second.data, second.mime_type, max_bytes),
        )
        similarity = compare_signatures(image1, image2)
        logger.info("Signature comparison completed, similarity: %.4f", similarity)
        return similarity

    async def verify_signature(self, account_id: str, upload: ImageUpload) -> VerificationOutcome:
        """Match an uploaded signature against the account's enrolled signatures."""
        live = await self._in_thread(
            normalize_signature, upload.data, upload.mime_type, self.settings.max_upload_bytes
        )
        entries = await self.account_store.fetch_references(account_id)

        candidates = list(await asyncio.gather(
            *(self._signature_candidate(entry) for entry in entries)
        ))
        outcome = aggregate_signatures(live, candidates, self.settings.signature_match_threshold)
        logger.info(
            "Signature verification for account %s: isMatch=%s, bestSimilarity=%.4f",
            account_id, outcome.is_match, outcome.best_similarity,
        )
        return outcome
