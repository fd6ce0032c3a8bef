"""
Mapping validation.

``evaluate`` recomputes every error and warning from scratch on each call.
"""
import logging
from typing import Dict, List, Optional, Sequence

from onboarding.core.config import settings
from onboarding.domain.mapping import catalog
from onboarding.domain.mapping.state import MappingState
from onboarding.schemas import FileType, UploadedFileRef, ValidationResult

logger = logging.getLogger(__name__)


def _uploaded_file_types(uploaded_files: Sequence[UploadedFileRef]) -> List[FileType]:
    seen: Dict[FileType, None] = {}
    for uploaded in uploaded_files:
        seen.setdefault(uploaded.file_type, None)
    return list(seen)


def missing_required_fields(mapping_state: MappingState, file_type: FileType) -> List[str]:
    """Required canonical fields of a file type that no source field targets."""
    mapped = {m.canonical_field for m in mapping_state.mappings_for(file_type) if m.canonical_field}
    return [name for name in catalog.required_field_names(file_type) if name not in mapped]


def duplicate_mapping_keys(mapping_state: MappingState) -> List[str]:
    """
    Every repeated ``<fileType>_<canonicalField>`` key, once per extra occurrence.

    Three source fields on the same target yield the key twice.
    """
    seen = set()
    duplicates: List[str] = []
    for mapping in mapping_state.all():
        if not mapping.canonical_field:
            continue
        key = f"{mapping.file_type.value}_{mapping.canonical_field}"
        if key in seen:
            duplicates.append(key)
        else:
            seen.add(key)
    return duplicates


def evaluate(
    mapping_state: MappingState,
    uploaded_files: Sequence[UploadedFileRef],
    *,
    low_confidence_threshold: Optional[float] = None,
) -> ValidationResult:
    """
    Compute errors and warnings for the current mapping table.

    Args:
        mapping_state: Current assignments
        uploaded_files: Files whose types must satisfy their required fields
        low_confidence_threshold: Confidence under which a mapping is flagged;
            defaults to the configured threshold

    Returns:
        ValidationResult; only errors block submission
    """
    threshold = settings.low_confidence_threshold if low_confidence_threshold is None else low_confidence_threshold
    errors: List[str] = []
    warnings: List[str] = []

    for file_type in _uploaded_file_types(uploaded_files):
        for name in missing_required_fields(mapping_state, file_type):
            errors.append(f'Required field "{name}" not mapped in {file_type.value} file')

    for key in duplicate_mapping_keys(mapping_state):
        errors.append(f"Duplicate mapping detected: {key}")

    for mapping in mapping_state.all():
        if mapping.canonical_field and mapping.confidence < threshold:
            warnings.append(
                f'Low confidence mapping for "{mapping.source_field}" -> "{mapping.canonical_field}"'
            )

    if errors:
        logger.debug("Mapping validation found %d error(s), %d warning(s)", len(errors), len(warnings))

    return ValidationResult(errors=errors, warnings=warnings, is_valid=not errors)
