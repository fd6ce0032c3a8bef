"""
Upload wizard state machine.

Steps run ``checklist -> upload -> mapping -> processing -> complete``. The
only backward moves are ``mapping -> upload`` and ``upload -> checklist``;
once mappings are submitted the wizard never goes back.

The controller owns the uploaded files, the mapping state and the tracked
job statuses, and reports everything that happens through ``WizardEvent``
notifications to its subscribers.
"""
import asyncio
import logging
import os
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from onboarding.core.config import settings
from onboarding.domain.errors import (
    InvalidUploadError,
    MappingValidationError,
    OnboardingError,
    OperationCancelledError,
    PollingTransportError,
    RetryNotSupportedError,
    StepTransitionError,
    UploadFailedError,
)
from onboarding.domain.mapping import validator
from onboarding.domain.mapping.state import MappingState
from onboarding.domain.mapping.submitter import MappingSubmitter
from onboarding.domain.processing.poller import StatusPoller
from onboarding.integrations.transform_api import TransformBackend
from onboarding.schemas import (
    FileType,
    JobState,
    JobStatus,
    OverallStatus,
    SubmittedMapping,
    UploadedFileRef,
    UploadSession,
    UploadStatus,
    ValidationResult,
)
from onboarding.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)


class WizardStep(str, Enum):
    CHECKLIST = "checklist"
    UPLOAD = "upload"
    MAPPING = "mapping"
    PROCESSING = "processing"
    COMPLETE = "complete"


STEP_ORDER = [
    WizardStep.CHECKLIST,
    WizardStep.UPLOAD,
    WizardStep.MAPPING,
    WizardStep.PROCESSING,
    WizardStep.COMPLETE,
]

STEP_TITLES = {
    WizardStep.CHECKLIST: "Pre-Upload Checklist",
    WizardStep.UPLOAD: "Upload Files",
    WizardStep.MAPPING: "Field Mapping",
    WizardStep.PROCESSING: "Processing",
    WizardStep.COMPLETE: "Complete",
}

BACK_TRANSITIONS = {
    WizardStep.UPLOAD: WizardStep.CHECKLIST,
    WizardStep.MAPPING: WizardStep.UPLOAD,
}


@dataclass(frozen=True)
class WizardEvent:
    kind: str
    step: WizardStep
    detail: Dict[str, Any] = field(default_factory=dict)


WizardListener = Callable[[WizardEvent], None]


class WizardController:
    """Sequences upload, mapping, submission and status tracking for one session."""

    def __init__(
        self,
        client: TransformBackend,
        *,
        submitter: Optional[MappingSubmitter] = None,
        poller: Optional[StatusPoller] = None,
    ):
        self._client = client
        self._submitter = submitter or MappingSubmitter(client)
        self._poller = poller or StatusPoller(client)
        self._listeners: List[WizardListener] = []

        self.step = WizardStep.CHECKLIST
        self.upload_id: Optional[str] = None
        self.uploaded_files: List[UploadedFileRef] = []
        self.mapping_state: Optional[MappingState] = None
        self.submitted_mappings: Dict[str, SubmittedMapping] = {}
        self.jobs: List[JobStatus] = []
        self.overall: OverallStatus = OverallStatus.PENDING
        self.tracking_error: Optional[str] = None
        self._submitting = False

        self._tracking_task: Optional["asyncio.Task[None]"] = None
        self._tracking_token: Optional[CancellationToken] = None

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def subscribe(self, listener: WizardListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: str, **detail: Any) -> None:
        event = WizardEvent(kind=kind, step=self.step, detail=detail)
        for listener in list(self._listeners):
            listener(event)

    def _set_step(self, step: WizardStep) -> None:
        previous = self.step
        self.step = step
        logger.info("Wizard step %s -> %s", previous.value, step.value)
        self._emit("step_changed", previous=previous.value)

    def _require_step(self, step: WizardStep, action: str) -> None:
        if self.step != step:
            raise StepTransitionError(
                f"Cannot {action} during the {self.step.value} step (expected {step.value})"
            )

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def step_progress(self) -> float:
        """Position in the wizard as a percentage (first step is 20%)."""
        return (STEP_ORDER.index(self.step) + 1) / len(STEP_ORDER) * 100

    def step_title(self) -> str:
        return STEP_TITLES[self.step]

    def continue_to_upload(self) -> None:
        self._require_step(WizardStep.CHECKLIST, "continue to upload")
        self._set_step(WizardStep.UPLOAD)

    def back(self) -> None:
        target = BACK_TRANSITIONS.get(self.step)
        if target is None:
            raise StepTransitionError(f"Cannot go back from the {self.step.value} step")
        if self._submitting:
            raise StepTransitionError("Cannot go back while mappings are being submitted")
        if self.step == WizardStep.MAPPING:
            # Mapping edits are rebuilt from the suggestions on re-entry
            self.mapping_state = None
        self._set_step(target)

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    def _check_upload(self, filename: str, content: bytes) -> None:
        extension = os.path.splitext(filename.lower())[1]
        if extension not in settings.allowed_upload_extensions:
            raise InvalidUploadError("Please upload CSV or Excel files only.")
        max_bytes = settings.upload_max_file_size_mb * 1024 * 1024
        if len(content) > max_bytes:
            raise InvalidUploadError(
                f"File exceeds the maximum size of {settings.upload_max_file_size_mb}MB."
            )

    def _replace_file(self, uploaded: UploadedFileRef) -> None:
        for index, existing in enumerate(self.uploaded_files):
            if existing.id == uploaded.id:
                self.uploaded_files[index] = uploaded
                return
        self.uploaded_files = [f for f in self.uploaded_files if f.file_type != uploaded.file_type]
        self.uploaded_files.append(uploaded)

    async def upload_file(self, file_type: Union[FileType, str], filename: str, content: bytes) -> UploadedFileRef:
        """
        Upload one file and fetch its field detection suggestions.

        A file replaces any earlier file of the same type. The first upload id
        returned by the backend is kept for the whole session.

        Raises:
            StepTransitionError: Not in the upload step
            InvalidUploadError: Unsupported extension or oversized file
            UploadFailedError: The upload or detection call failed
        """
        self._require_step(WizardStep.UPLOAD, "upload files")
        file_type = FileType(file_type)
        self._check_upload(filename, content)

        uploaded = UploadedFileRef(
            id=uuid.uuid4().hex[:9],
            file_type=file_type,
            name=filename,
            status=UploadStatus.PROCESSING,
        )
        self._replace_file(uploaded)

        try:
            upload_id = await self._client.upload_files({file_type: (filename, content)})
            if not self.upload_id:
                self.upload_id = upload_id
            suggestions = await self._client.detect_fields(upload_id, file_type)
        except OnboardingError as e:
            logger.error("Upload of %s (%s) failed: %s", filename, file_type.value, e)
            self._replace_file(uploaded.model_copy(update={"status": UploadStatus.ERROR}))
            self._emit("upload_failed", file_type=file_type.value, file_name=filename, error=str(e))
            raise UploadFailedError(file_type.value, e) from e

        completed = uploaded.model_copy(
            update={"status": UploadStatus.COMPLETED, "suggestions": suggestions}
        )
        self._replace_file(completed)
        logger.info("%s is ready for mapping (%d detected field(s))", filename, len(suggestions))
        self._emit("file_uploaded", file_type=file_type.value, file_name=filename, fields=len(suggestions))
        return completed

    def completed_files(self) -> List[UploadedFileRef]:
        return [f for f in self.uploaded_files if f.status == UploadStatus.COMPLETED]

    def can_proceed_to_mapping(self) -> bool:
        # Only the policy file is mandatory; claim and cancel files are optional
        return any(
            f.file_type == FileType.POLICY and f.status == UploadStatus.COMPLETED
            for f in self.uploaded_files
        )

    def proceed_to_mapping(self) -> MappingState:
        self._require_step(WizardStep.UPLOAD, "proceed to mapping")
        if not self.can_proceed_to_mapping():
            raise StepTransitionError("Please upload at least a policy file before proceeding.")
        self.mapping_state = MappingState.initialize(self.completed_files())
        self._set_step(WizardStep.MAPPING)
        return self.mapping_state

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    def _require_mapping_state(self) -> MappingState:
        self._require_step(WizardStep.MAPPING, "edit mappings")
        if self.mapping_state is None:
            self.mapping_state = MappingState.initialize(self.completed_files())
        return self.mapping_state

    def assign(self, file_type: Union[FileType, str], source_field: str, canonical_field: Optional[str]) -> ValidationResult:
        self._require_mapping_state().assign(file_type, source_field, canonical_field)
        return self.validation()

    def unassign(self, file_type: Union[FileType, str], source_field: str) -> ValidationResult:
        self._require_mapping_state().unassign(file_type, source_field)
        return self.validation()

    def validation(self) -> ValidationResult:
        return validator.evaluate(self._require_mapping_state(), self.completed_files())

    async def submit_mappings(
        self, *, cancel_token: Optional[CancellationToken] = None
    ) -> Dict[str, SubmittedMapping]:
        """
        Validate, submit and start tracking the transformation jobs.

        Raises:
            MappingValidationError: The mapping has errors; nothing is sent
            MissingUploadIdError: No upload id was ever received
            SubmissionError: A per-file-type submission failed
            StepTransitionError: A submission is already in flight
        """
        state = self._require_mapping_state()
        result = validator.evaluate(state, self.completed_files())
        if not result.is_valid:
            self._emit("validation_failed", errors=result.errors)
            raise MappingValidationError(result.errors)

        if self._submitting:
            raise StepTransitionError("Mappings are already being submitted")
        self._submitting = True
        try:
            submitted = await self._submitter.submit(self.upload_id, state, cancel_token=cancel_token)
        except OnboardingError as e:
            self._emit("submission_failed", error=str(e))
            raise
        finally:
            self._submitting = False

        self.submitted_mappings = submitted
        self.mapping_state = None
        self.jobs = []
        self.overall = OverallStatus.PENDING
        self.tracking_error = None
        self._set_step(WizardStep.PROCESSING)
        self._emit("mappings_submitted", fields=len(submitted))
        self.start_tracking()
        return submitted

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def start_tracking(self) -> "asyncio.Task[None]":
        """Start the status poller as a background task on the running loop."""
        self._require_step(WizardStep.PROCESSING, "track processing")
        if self._tracking_task is not None and not self._tracking_task.done():
            return self._tracking_task
        self._tracking_token = CancellationToken()
        self._tracking_task = asyncio.get_running_loop().create_task(self._track(self._tracking_token))
        return self._tracking_task

    async def _track(self, token: CancellationToken) -> None:
        upload_id = self.upload_id or ""
        try:
            await self._poller.poll(upload_id, self._on_status, cancel_token=token)
        except PollingTransportError as e:
            self.tracking_error = str(e)
            self._emit(
                "tracking_failed",
                error="Unable to check processing status. Please refresh the page.",
                cause=str(e.cause),
            )
        except OperationCancelledError:
            self._emit("tracking_cancelled", reason=token.reason)
        except Exception as e:
            logger.exception("Status tracking for upload %s stopped unexpectedly", upload_id)
            self.tracking_error = str(e)
            self._emit(
                "tracking_failed",
                error="Unable to check processing status. Please refresh the page.",
                cause=str(e),
            )

    def _on_status(self, session: UploadSession) -> None:
        self.jobs = list(session.jobs)
        self.overall = session.overall
        self._emit("status_updated", overall=session.overall.value, jobs=len(session.jobs))

        if session.overall == OverallStatus.DONE and self.step == WizardStep.PROCESSING:
            self._set_step(WizardStep.COMPLETE)
            self._emit("processing_complete")
        elif session.overall == OverallStatus.FAILED:
            # Failure keeps the wizard in the processing step
            failed = [job.file_type.value for job in session.jobs if job.status == JobState.FAILED]
            self._emit("processing_failed", file_types=failed)

    async def wait_for_tracking(self) -> None:
        if self._tracking_task is not None:
            await self._tracking_task

    @property
    def is_tracking(self) -> bool:
        return self._tracking_task is not None and not self._tracking_task.done()

    def cancel_tracking(self, reason: Optional[str] = None) -> bool:
        """Stop status tracking; returns False when nothing was being tracked."""
        if not self.is_tracking or self._tracking_token is None:
            return False
        self._tracking_token.cancel(reason or "Tracking cancelled by caller")
        return True

    def retry_job(self, file_type: Union[FileType, str]) -> None:
        raise RetryNotSupportedError(FileType(file_type).value)
