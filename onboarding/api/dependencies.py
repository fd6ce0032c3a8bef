"""
Shared dependencies, state, and utility functions for the API.

Wizard sessions live in process memory only; restarting the service drops
them, which matches the session-scoped lifetime of an upload.
"""
import logging
from typing import Dict, NoReturn, Optional

from fastapi import HTTPException

from onboarding.domain.errors import (
    ApiClientError,
    InvalidUploadError,
    MappingValidationError,
    MissingUploadIdError,
    OnboardingError,
    PollingTransportError,
    RetryNotSupportedError,
    StepTransitionError,
    SubmissionError,
    UploadFailedError,
)
from onboarding.domain.wizard import WizardController
from onboarding.integrations.transform_api import TransformApiClient, TransformBackend, get_transform_client

logger = logging.getLogger(__name__)

# Global session storage (in production, use Redis or database)
wizard_sessions: Dict[str, WizardController] = {}

_transform_client: Optional[TransformApiClient] = None


def get_transform_backend() -> TransformBackend:
    """Shared client for the transform backend, created on first use."""
    global _transform_client
    if _transform_client is None:
        _transform_client = get_transform_client()
    return _transform_client


async def close_transform_backend() -> None:
    global _transform_client
    if _transform_client is not None:
        await _transform_client.aclose()
        _transform_client = None


def get_wizard_session(session_id: str) -> WizardController:
    """
    Look up a wizard session.

    Raises:
    - HTTPException 404: If the session does not exist
    """
    controller = wizard_sessions.get(session_id)
    if controller is None:
        raise HTTPException(status_code=404, detail="Wizard session not found")
    return controller


def raise_http_error(error: OnboardingError) -> NoReturn:
    """Translate an onboarding failure into the matching HTTP error."""
    if isinstance(error, MappingValidationError):
        raise HTTPException(status_code=400, detail={"message": "Please fix all mapping errors before proceeding.", "errors": error.errors})
    if isinstance(error, (InvalidUploadError, MissingUploadIdError)):
        raise HTTPException(status_code=400, detail=str(error))
    if isinstance(error, StepTransitionError):
        raise HTTPException(status_code=409, detail=str(error))
    if isinstance(error, RetryNotSupportedError):
        raise HTTPException(status_code=501, detail=str(error))
    if isinstance(error, SubmissionError):
        raise HTTPException(
            status_code=502,
            detail={"message": str(error), "succeeded_file_types": error.succeeded_file_types},
        )
    if isinstance(error, (UploadFailedError, ApiClientError, PollingTransportError)):
        raise HTTPException(status_code=502, detail=str(error))

    logger.error("Unhandled onboarding error: %s", error)
    raise HTTPException(status_code=500, detail=str(error))
