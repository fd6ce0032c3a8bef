"""
Exception hierarchy for the onboarding wizard.

Every failure is scoped to a single wizard session; nothing here is fatal to
the process. Remote failures are never retried by this package.
"""
from typing import List, Optional, Sequence


class OnboardingError(Exception):
    """Base exception for onboarding operations."""
    pass


class MappingValidationError(OnboardingError):
    """Raised when a submission is attempted while the mapping has errors."""

    def __init__(self, errors: Sequence[str]):
        self.errors: List[str] = list(errors)
        super().__init__("; ".join(self.errors) or "Mapping is invalid")


class MissingUploadIdError(OnboardingError):
    """Raised when mappings are submitted before a successful upload."""

    def __init__(self, message: str = "No upload ID found. Please re-upload your files."):
        super().__init__(message)


class SubmissionError(OnboardingError):
    """
    Raised when one or more per-file-type submissions fail.

    Submissions that already succeeded are not rolled back; their file types
    are listed in ``succeeded_file_types`` so callers can surface the partial
    persistence.
    """

    def __init__(self, cause: BaseException, succeeded_file_types: Optional[Sequence[str]] = None):
        self.cause = cause
        self.succeeded_file_types: List[str] = list(succeeded_file_types or [])
        super().__init__(str(cause) or "An error occurred while submitting mappings.")


class PollingTransportError(OnboardingError):
    """Raised when a status fetch fails; tracking stops immediately."""

    def __init__(self, upload_id: str, cause: BaseException):
        self.upload_id = upload_id
        self.cause = cause
        super().__init__(f"Status check for upload {upload_id} failed: {cause}")


class OperationCancelledError(OnboardingError):
    """Raised when a caller cancels submission or status tracking."""
    pass


class StepTransitionError(OnboardingError):
    """Raised when a wizard transition guard fails or the transition is not allowed."""
    pass


class InvalidUploadError(OnboardingError):
    """Raised when a file is rejected before it is sent (extension or size)."""
    pass


class UploadFailedError(OnboardingError):
    """Raised when the upload or field detection call for a file fails."""

    def __init__(self, file_type: str, cause: BaseException):
        self.file_type = file_type
        self.cause = cause
        super().__init__(str(cause) or "An error occurred during upload.")


class RetryNotSupportedError(OnboardingError):
    """Raised for per-job retries, which the transform backend does not offer yet."""

    def __init__(self, file_type: str):
        self.file_type = file_type
        super().__init__("Retry functionality will be available in a future update.")


class ApiClientError(OnboardingError):
    """Raised when a call to the transform backend fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)
