"""
Canonical field catalog for policy, claim and cancel files.

This module is the single source of truth for which canonical fields exist
per file type, their semantic types and whether they must be mapped. The
validator, the mapping state, the HTTP API and the console all read from it.
"""
from typing import Dict, FrozenSet, Optional, Tuple, Union

from onboarding.schemas import CanonicalFieldSpec, FileType, SemanticType


def _field(file_type: FileType, name: str, semantic_type: SemanticType, required: bool, description: str) -> CanonicalFieldSpec:
    return CanonicalFieldSpec(
        name=name,
        semantic_type=semantic_type,
        required=required,
        file_type=file_type,
        description=description,
    )


_P, _C, _X = FileType.POLICY, FileType.CLAIM, FileType.CANCEL

CANONICAL_FIELDS: Dict[FileType, Tuple[CanonicalFieldSpec, ...]] = {
    FileType.POLICY: (
        _field(_P, "policy_number", SemanticType.STRING, True, "Unique contract identifier"),
        _field(_P, "effective_date", SemanticType.DATE, True, "Start of coverage period"),
        _field(_P, "expiration_date", SemanticType.DATE, True, "End of coverage period"),
        _field(_P, "premium_written", SemanticType.DECIMAL, True, "Gross written premium amount"),
        _field(_P, "product_type", SemanticType.STRING, True, "Product category (e.g., TV, appliance, auto)"),
        _field(_P, "coverage_code", SemanticType.STRING, False, "SKU or plan code for reporting"),
        _field(_P, "coverage_term_months", SemanticType.INTEGER, False, "Coverage period in months (auto-derived if missing)"),
        _field(_P, "status", SemanticType.ENUM, False, "Policy status (Open/Cancelled) - derived from cancel file"),
    ),
    FileType.CLAIM: (
        _field(_C, "claim_number", SemanticType.STRING, True, "Unique claim identifier"),
        _field(_C, "policy_number", SemanticType.STRING, True, "Foreign key to Policy file"),
        _field(_C, "paid_date", SemanticType.DATE, True, "Date claim was fully settled and paid"),
        _field(_C, "report_date", SemanticType.DATE, True, "First Notice of Loss (FNOL) date"),
        _field(_C, "paid_amount", SemanticType.DECIMAL, True, "Cumulative amount paid to date"),
        _field(_C, "claim_resolution", SemanticType.STRING, False, "Resolution type (repair, replace, settlement)"),
    ),
    FileType.CANCEL: (
        _field(_X, "policy_number", SemanticType.STRING, True, "Contract to cancel"),
        _field(_X, "cancel_date", SemanticType.DATE, True, "Effective date of cancellation"),
        _field(_X, "refund_premium", SemanticType.DECIMAL, True, "Unearned premium returned (negative)"),
    ),
}


def coerce_file_type(file_type: Union[FileType, str]) -> Optional[FileType]:
    if isinstance(file_type, FileType):
        return file_type
    try:
        return FileType(file_type)
    except ValueError:
        return None


def file_types() -> Tuple[FileType, ...]:
    """Return the supported file types in display order."""
    return tuple(CANONICAL_FIELDS.keys())


def fields_for(file_type: Union[FileType, str]) -> Tuple[CanonicalFieldSpec, ...]:
    """
    Get the canonical fields for a file type in display order.

    Args:
        file_type: File type enum member or its string value

    Returns:
        Ordered tuple of field specs; empty for an unknown file type
    """
    resolved = coerce_file_type(file_type)
    if resolved is None:
        return ()
    return CANONICAL_FIELDS.get(resolved, ())


def required_fields_for(file_type: Union[FileType, str]) -> FrozenSet[str]:
    """Return the names of the canonical fields that must be mapped."""
    return frozenset(spec.name for spec in fields_for(file_type) if spec.required)


def required_field_names(file_type: Union[FileType, str]) -> Tuple[str, ...]:
    """Required field names in catalog order, for stable error listings."""
    return tuple(spec.name for spec in fields_for(file_type) if spec.required)


def get_field(file_type: Union[FileType, str], name: Optional[str]) -> Optional[CanonicalFieldSpec]:
    """Look up a single canonical field spec by name."""
    if not name:
        return None
    for spec in fields_for(file_type):
        if spec.name == name:
            return spec
    return None
