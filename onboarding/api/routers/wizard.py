"""
Wizard session endpoints.

Each session wraps one ``WizardController``. Clients walk it through the
checklist, upload, mapping and processing steps and poll the session view
for job progress while the controller tracks the transform jobs in the
background.
"""
import logging
import uuid

from fastapi import APIRouter, Depends, File, UploadFile

from onboarding.api.dependencies import (
    get_transform_backend,
    get_wizard_session,
    raise_http_error,
    wizard_sessions,
)
from onboarding.api.schemas.shared import (
    AssignMappingRequest,
    SubmitMappingsResponse,
    UploadFileResponse,
    ValidationResponse,
    WizardSessionResponse,
)
from onboarding.domain.errors import OnboardingError
from onboarding.domain.processing.poller import overall_progress
from onboarding.domain.wizard import WizardController, WizardStep
from onboarding.integrations.transform_api import TransformBackend
from onboarding.schemas import FileType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/wizard", tags=["wizard"])


def _session_view(session_id: str, controller: WizardController) -> WizardSessionResponse:
    in_mapping = controller.step == WizardStep.MAPPING and controller.mapping_state is not None
    return WizardSessionResponse(
        session_id=session_id,
        step=controller.step.value,
        step_title=controller.step_title(),
        step_progress=controller.step_progress(),
        upload_id=controller.upload_id,
        files=controller.uploaded_files,
        can_proceed_to_mapping=controller.can_proceed_to_mapping(),
        mappings=list(controller.mapping_state.all()) if in_mapping else [],
        completion_percentage=controller.mapping_state.completion_percentage() if in_mapping else None,
        validation=controller.validation() if in_mapping else None,
        submitted_mappings=controller.submitted_mappings,
        jobs=controller.jobs,
        overall=controller.overall,
        overall_progress=overall_progress(controller.jobs),
        is_tracking=controller.is_tracking,
        tracking_error=controller.tracking_error,
    )


@router.post("/sessions", response_model=WizardSessionResponse)
async def create_session_endpoint(backend: TransformBackend = Depends(get_transform_backend)):
    session_id = str(uuid.uuid4())
    controller = WizardController(backend)
    wizard_sessions[session_id] = controller
    logger.info("Created wizard session %s", session_id)
    return _session_view(session_id, controller)


@router.get("/sessions/{session_id}", response_model=WizardSessionResponse)
async def get_session_endpoint(session_id: str):
    return _session_view(session_id, get_wizard_session(session_id))


@router.delete("/sessions/{session_id}")
async def delete_session_endpoint(session_id: str):
    controller = get_wizard_session(session_id)
    controller.cancel_tracking("Session deleted")
    del wizard_sessions[session_id]
    return {"success": True, "message": "Session deleted"}


@router.post("/sessions/{session_id}/continue", response_model=WizardSessionResponse)
async def continue_to_upload_endpoint(session_id: str):
    controller = get_wizard_session(session_id)
    try:
        controller.continue_to_upload()
    except OnboardingError as e:
        raise_http_error(e)
    return _session_view(session_id, controller)


@router.post("/sessions/{session_id}/back", response_model=WizardSessionResponse)
async def back_endpoint(session_id: str):
    controller = get_wizard_session(session_id)
    try:
        controller.back()
    except OnboardingError as e:
        raise_http_error(e)
    return _session_view(session_id, controller)


@router.post("/sessions/{session_id}/files/{file_type}", response_model=UploadFileResponse)
async def upload_file_endpoint(session_id: str, file_type: FileType, file: UploadFile = File(...)):
    """
    Upload a policy, claim or cancel file and run field detection on it.

    Parameters:
    - file_type: Which slot the file fills; an earlier file of the same type is replaced
    - file: CSV or Excel file
    """
    controller = get_wizard_session(session_id)
    content = await file.read()
    try:
        uploaded = await controller.upload_file(file_type, file.filename or "", content)
    except OnboardingError as e:
        raise_http_error(e)
    return UploadFileResponse(
        success=True,
        message=f"{uploaded.name} has been processed and is ready for mapping.",
        file=uploaded,
        upload_id=controller.upload_id,
    )


@router.post("/sessions/{session_id}/proceed", response_model=WizardSessionResponse)
async def proceed_to_mapping_endpoint(session_id: str):
    controller = get_wizard_session(session_id)
    try:
        controller.proceed_to_mapping()
    except OnboardingError as e:
        raise_http_error(e)
    return _session_view(session_id, controller)


@router.put("/sessions/{session_id}/mappings/{file_type}/{source_field}", response_model=ValidationResponse)
async def assign_mapping_endpoint(
    session_id: str,
    file_type: FileType,
    source_field: str,
    request: AssignMappingRequest,
):
    controller = get_wizard_session(session_id)
    try:
        validation = controller.assign(file_type, source_field, request.canonical_field)
    except OnboardingError as e:
        raise_http_error(e)
    return ValidationResponse(success=True, validation=validation)


@router.delete("/sessions/{session_id}/mappings/{file_type}/{source_field}", response_model=ValidationResponse)
async def unassign_mapping_endpoint(session_id: str, file_type: FileType, source_field: str):
    controller = get_wizard_session(session_id)
    try:
        validation = controller.unassign(file_type, source_field)
    except OnboardingError as e:
        raise_http_error(e)
    return ValidationResponse(success=True, validation=validation)


@router.get("/sessions/{session_id}/validation", response_model=ValidationResponse)
async def validation_endpoint(session_id: str):
    controller = get_wizard_session(session_id)
    try:
        validation = controller.validation()
    except OnboardingError as e:
        raise_http_error(e)
    return ValidationResponse(success=True, validation=validation)


@router.post("/sessions/{session_id}/submit", response_model=SubmitMappingsResponse)
async def submit_mappings_endpoint(session_id: str):
    """
    Submit the mappings and start tracking the transform jobs.

    Returns 400 with the validation errors when the mapping is not
    submittable, and 502 when a per-file-type submission fails.
    """
    controller = get_wizard_session(session_id)
    try:
        submitted = await controller.submit_mappings()
    except OnboardingError as e:
        raise_http_error(e)
    return SubmitMappingsResponse(
        success=True,
        message="Transform started. Please wait while files are processed...",
        mappings=submitted,
    )


@router.post("/sessions/{session_id}/cancel", response_model=WizardSessionResponse)
async def cancel_tracking_endpoint(session_id: str):
    controller = get_wizard_session(session_id)
    controller.cancel_tracking("Cancelled by client")
    return _session_view(session_id, controller)


@router.post("/sessions/{session_id}/jobs/{file_type}/retry")
async def retry_job_endpoint(session_id: str, file_type: FileType):
    controller = get_wizard_session(session_id)
    try:
        controller.retry_job(file_type)
    except OnboardingError as e:
        raise_http_error(e)
