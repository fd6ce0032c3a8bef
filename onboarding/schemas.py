from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FileType(str, Enum):
    POLICY = "policy"
    CLAIM = "claim"
    CANCEL = "cancel"


class SemanticType(str, Enum):
    STRING = "string"
    DATE = "date"
    DECIMAL = "decimal"
    INTEGER = "integer"
    ENUM = "enum"


class UploadStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class JobState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class OverallStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    UNKNOWN = "unknown"


TERMINAL_STATUSES = frozenset({OverallStatus.DONE, OverallStatus.FAILED})


class CanonicalFieldSpec(BaseModel):
    """A target column of the canonical schema for one file type."""
    model_config = ConfigDict(frozen=True)

    name: str
    semantic_type: SemanticType
    required: bool
    file_type: FileType
    description: str = ""


class DetectedField(BaseModel):
    """A source column found by field detection, with its suggested target."""
    source_field: str
    suggested_canonical: str
    populated_pct: float = Field(ge=0, le=100)
    detected_type: str
    confidence: float = Field(ge=0, le=1)


class FieldMapping(BaseModel):
    source_field: str
    canonical_field: Optional[str] = None
    file_type: FileType
    populated_pct: float = Field(ge=0, le=100)
    detected_type: str
    confidence: float = Field(ge=0, le=1)
    required: bool = False  # Derived from the catalog when the mapping is created


class UploadedFileRef(BaseModel):
    id: str
    file_type: FileType
    status: UploadStatus = UploadStatus.PENDING
    name: Optional[str] = None
    suggestions: List[DetectedField] = Field(default_factory=list)


class JobStatus(BaseModel):
    file_type: FileType
    status: JobState
    progress: float = Field(default=0.0, ge=0, le=1)
    message: str = ""
    updated_at: Optional[datetime] = None


class UploadSession(BaseModel):
    upload_id: str
    jobs: List[JobStatus] = Field(default_factory=list)
    overall: OverallStatus = OverallStatus.UNKNOWN

    @property
    def is_terminal(self) -> bool:
        return self.overall in TERMINAL_STATUSES


class ValidationResult(BaseModel):
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    is_valid: bool = True


class MappingEntry(BaseModel):
    """Per-source-field payload sent to the transform backend."""
    canonical_field: str
    populated_pct: Optional[float] = None
    detected_type: Optional[str] = None
    confidence: Optional[float] = None


class SubmittedMapping(MappingEntry):
    file_type: FileType


class MappingResponse(BaseModel):
    status: str
    message: str = ""
