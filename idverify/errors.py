"""Error taxonomy for the verification pipeline.

Every error that can abort a request derives from :class:`VerificationError`
and carries a machine-readable ``kind`` plus the HTTP status the API layer
should answer with. Per-candidate failures are not exceptions; they are
recorded as :class:`~idverify.models.domain.FailureReason` values.
"""


class VerificationError(Exception):
    """Base exception for verification pipeline errors."""

    kind = "VerificationError"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class ImageProcessingError(VerificationError):
    """Base exception for image processing errors."""

    kind = "ImageProcessingError"
    status_code = 400


class UnsupportedFormatError(ImageProcessingError):
    """Exception raised when the declared MIME type is not allowed."""

    kind = "UnsupportedFormat"
    status_code = 415


class ImageDecodeError(ImageProcessingError):
    """Exception raised when image bytes cannot be decoded."""

    kind = "DecodeError"
    status_code = 400


class OversizeInputError(ImageProcessingError):
    """Exception raised when an image buffer exceeds the byte limit."""

    kind = "OversizeInput"
    status_code = 413


class DimensionMismatchError(VerificationError):
    """Exception raised when two canonical images differ in shape."""

    kind = "DimensionMismatch"
    status_code = 400


class DescriptorMismatchError(VerificationError):
    """Exception raised when descriptors come from different providers."""

    kind = "DescriptorMismatch"
    status_code = 500


class NoLiveFaceError(VerificationError):
    """Exception raised when no face is detected in the live image."""

    kind = "NoLiveFace"
    status_code = 400


class EmptyCandidateSetError(VerificationError):
    """Exception raised when an account has no reference images."""

    kind = "EmptyCandidateSet"
    status_code = 404


class AccountNotFoundError(VerificationError):
    kind = "AccountNotFound"
    status_code = 404


class ExternalCollaboratorUnavailableError(VerificationError):
    """Exception raised when the record store or the provider cannot be reached."""

    kind = "ExternalCollaboratorUnavailable"
    status_code = 503
