from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from onboarding.schemas import (
    CanonicalFieldSpec,
    FieldMapping,
    JobStatus,
    OverallStatus,
    SubmittedMapping,
    UploadedFileRef,
    ValidationResult,
)


class CatalogResponse(BaseModel):
    success: bool
    file_types: Dict[str, List[CanonicalFieldSpec]]


class FileTypeCatalogResponse(BaseModel):
    success: bool
    file_type: str
    fields: List[CanonicalFieldSpec]
    required_fields: List[str]


class WizardSessionResponse(BaseModel):
    """Full view of one wizard session, as rendered by a client."""
    success: bool = True
    session_id: str
    step: str
    step_title: str
    step_progress: float
    upload_id: Optional[str] = None
    files: List[UploadedFileRef] = Field(default_factory=list)
    can_proceed_to_mapping: bool = False
    mappings: List[FieldMapping] = Field(default_factory=list)
    completion_percentage: Optional[int] = None
    validation: Optional[ValidationResult] = None
    submitted_mappings: Dict[str, SubmittedMapping] = Field(default_factory=dict)
    jobs: List[JobStatus] = Field(default_factory=list)
    overall: OverallStatus = OverallStatus.PENDING
    overall_progress: float = 0.0
    is_tracking: bool = False
    tracking_error: Optional[str] = None


class AssignMappingRequest(BaseModel):
    canonical_field: Optional[str] = None  # None clears the assignment


class ValidationResponse(BaseModel):
    success: bool
    validation: ValidationResult


class SubmitMappingsResponse(BaseModel):
    success: bool
    message: str
    mappings: Dict[str, SubmittedMapping]


class UploadFileResponse(BaseModel):
    success: bool
    message: str
    file: UploadedFileRef
    upload_id: Optional[str] = None
