"""
In-memory stand-in for the transform backend used across the test suite.

Status responses are served from a queue; the last queued entry repeats once
the queue runs dry. Queue an exception instance to make a fetch fail.
"""

import asyncio
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from onboarding.domain.errors import ApiClientError
from onboarding.schemas import (
    DetectedField,
    FileType,
    JobStatus,
    MappingEntry,
    MappingResponse,
    UploadedFileRef,
    UploadSession,
    UploadStatus,
)


def suggestion(source, canonical, confidence=0.9, populated_pct=100.0, detected_type="string") -> DetectedField:
    return DetectedField(
        source_field=source,
        suggested_canonical=canonical,
        populated_pct=populated_pct,
        detected_type=detected_type,
        confidence=confidence,
    )


DEFAULT_SUGGESTIONS: Dict[FileType, List[DetectedField]] = {
    FileType.POLICY: [
        suggestion("PolicyNo", "policy_number", 0.95, 99.8),
        suggestion("StartDate", "effective_date", 0.92, 100, "date"),
        suggestion("EndDate", "expiration_date", 0.92, 100, "date"),
        suggestion("Premium", "premium_written", 0.88, 98.5, "decimal"),
        suggestion("ProductType", "product_type", 0.90, 95.2),
        suggestion("Coverage", "coverage_code", 0.85, 87.3),
    ],
    FileType.CLAIM: [
        suggestion("ClaimID", "claim_number", 0.98),
        suggestion("PolicyNumber", "policy_number", 0.95),
        suggestion("ReportedDate", "report_date", 0.90, 99.1, "date"),
        suggestion("SettlementDate", "paid_date", 0.85, 78.5, "date"),
        suggestion("Amount", "paid_amount", 0.92, 89.2, "decimal"),
    ],
    FileType.CANCEL: [
        suggestion("PolicyNo", "policy_number", 0.95),
        suggestion("CancelDate", "cancel_date", 0.93, 100, "date"),
        suggestion("RefundAmount", "refund_premium", 0.88, 92.3, "decimal"),
    ],
}


def job(file_type, status, progress=0.0, message="") -> JobStatus:
    return JobStatus(file_type=file_type, status=status, progress=progress, message=message)


def session(upload_id="upload-1", overall="running", jobs: Sequence[JobStatus] = ()) -> UploadSession:
    return UploadSession(upload_id=upload_id, overall=overall, jobs=list(jobs))


StatusEntry = Union[UploadSession, Exception]


class FakeTransformBackend:
    def __init__(
        self,
        suggestions: Optional[Mapping[FileType, List[DetectedField]]] = None,
        statuses: Optional[Sequence[StatusEntry]] = None,
    ):
        self.suggestions = dict(DEFAULT_SUGGESTIONS if suggestions is None else suggestions)
        self.statuses: List[StatusEntry] = list(statuses or [])
        self.upload_calls: List[Dict[FileType, Tuple[str, bytes]]] = []
        self.detect_calls: List[Tuple[str, FileType]] = []
        self.submissions: List[Tuple[str, FileType, Dict[str, MappingEntry]]] = []
        self.status_calls = 0
        self.submit_errors: Dict[FileType, Exception] = {}
        self.upload_error: Optional[Exception] = None
        self.detect_error: Optional[Exception] = None
        self.submit_delay = 0.0

    async def upload_files(self, files):
        self.upload_calls.append(dict(files))
        if self.upload_error is not None:
            raise self.upload_error
        return f"upload-{len(self.upload_calls)}"

    async def detect_fields(self, upload_id, file_type):
        self.detect_calls.append((upload_id, file_type))
        if self.detect_error is not None:
            raise self.detect_error
        return list(self.suggestions.get(file_type, []))

    async def submit_mapping(self, upload_id, file_type, mappings):
        await asyncio.sleep(self.submit_delay)
        if file_type in self.submit_errors:
            raise self.submit_errors[file_type]
        self.submissions.append((upload_id, file_type, dict(mappings)))
        return MappingResponse(status="queued", message=f"{file_type.value} mapping saved")

    async def get_status(self, upload_id):
        self.status_calls += 1
        if not self.statuses:
            raise ApiClientError("Status check failed: Not Found", status_code=404)
        entry = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(entry, Exception):
            raise entry
        return entry.model_copy(update={"upload_id": upload_id})


def uploaded_file(file_type, suggestions=None, file_id=None, status=UploadStatus.COMPLETED) -> UploadedFileRef:
    file_type = FileType(file_type)
    return UploadedFileRef(
        id=file_id or f"{file_type.value}-file",
        file_type=file_type,
        name=f"{file_type.value}.csv",
        status=status,
        suggestions=list(DEFAULT_SUGGESTIONS[file_type] if suggestions is None else suggestions),
    )
