"""
Observable assignment table of source fields to canonical fields.

The table is seeded from field detection suggestions and then mutated only
through ``assign`` and ``unassign``. Writes never enforce uniqueness; a user
may pass through invalid states while editing and the validator reports them.
Subscribers receive a ``MappingChange`` after every effective change.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from onboarding.domain.mapping import catalog
from onboarding.schemas import (
    CanonicalFieldSpec,
    DetectedField,
    FieldMapping,
    FileType,
    UploadedFileRef,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MappingChange:
    kind: str  # "initialized", "assigned" or "unassigned"
    file_type: Optional[FileType] = None
    source_field: Optional[str] = None
    canonical_field: Optional[str] = None
    previous: Optional[str] = None


MappingListener = Callable[["MappingState", MappingChange], None]


def build_field_mapping(file_type: FileType, suggestion: DetectedField) -> FieldMapping:
    """Create the pre-populated mapping for one detected source field."""
    spec = catalog.get_field(file_type, suggestion.suggested_canonical)
    return FieldMapping(
        source_field=suggestion.source_field,
        canonical_field=suggestion.suggested_canonical or None,
        file_type=file_type,
        populated_pct=suggestion.populated_pct,
        detected_type=suggestion.detected_type,
        confidence=suggestion.confidence,
        required=spec.required if spec else False,
    )


class MappingState:
    """In-memory mapping table owned by the wizard for the mapping step."""

    def __init__(self, mappings: Optional[Iterable[FieldMapping]] = None):
        self._mappings: List[FieldMapping] = list(mappings or [])
        self._listeners: List[MappingListener] = []

    @classmethod
    def initialize(
        cls,
        uploaded_files: Sequence[UploadedFileRef],
        suggestions_by_file: Optional[Mapping[str, Sequence[DetectedField]]] = None,
    ) -> "MappingState":
        """
        Seed one mapping per detection suggestion of every uploaded file.

        Args:
            uploaded_files: Files whose suggestions should be mapped
            suggestions_by_file: Suggestions keyed by file id; files missing
                from it fall back to the suggestions stored on the file

        Returns:
            New mapping state with ``canonical_field`` set to each suggestion
        """
        suggestions_by_file = suggestions_by_file or {}
        mappings: List[FieldMapping] = []
        for uploaded in uploaded_files:
            suggestions = suggestions_by_file.get(uploaded.id, uploaded.suggestions)
            for suggestion in suggestions:
                mappings.append(build_field_mapping(uploaded.file_type, suggestion))

        logger.info(
            "Initialized mapping state with %d field(s) across %d file(s)",
            len(mappings),
            len(uploaded_files),
        )
        state = cls(mappings)
        state._emit(MappingChange(kind="initialized"))
        return state

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def subscribe(self, listener: MappingListener) -> Callable[[], None]:
        """Register a change listener and return a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, change: MappingChange) -> None:
        for listener in list(self._listeners):
            listener(self, change)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def assign(self, file_type: Union[FileType, str], source_field: str, canonical_field: Optional[str]) -> None:
        """Point a source field at a canonical field (last writer wins)."""
        self._set(catalog.coerce_file_type(file_type), source_field, canonical_field or None)

    def unassign(self, file_type: Union[FileType, str], source_field: str) -> None:
        """Clear the canonical field of a source field."""
        self._set(catalog.coerce_file_type(file_type), source_field, None)

    def _set(self, file_type: Optional[FileType], source_field: str, canonical_field: Optional[str]) -> None:
        if file_type is None:
            return
        previous: Optional[str] = None
        changed = False
        found = False
        for index, mapping in enumerate(self._mappings):
            if mapping.file_type != file_type or mapping.source_field != source_field:
                continue
            found = True
            if mapping.canonical_field == canonical_field:
                continue
            previous = mapping.canonical_field
            self._mappings[index] = mapping.model_copy(update={"canonical_field": canonical_field})
            changed = True

        if not found:
            logger.debug("Ignoring assignment for unknown source field %s/%s", file_type.value, source_field)
            return
        if not changed:
            return

        kind = "assigned" if canonical_field else "unassigned"
        logger.debug("%s %s/%s: %s -> %s", kind, file_type.value, source_field, previous, canonical_field)
        self._emit(
            MappingChange(
                kind=kind,
                file_type=file_type,
                source_field=source_field,
                canonical_field=canonical_field,
                previous=previous,
            )
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def all(self) -> Tuple[FieldMapping, ...]:
        return tuple(self._mappings)

    def snapshot(self) -> Tuple[FieldMapping, ...]:
        """Detached copies of every mapping; later edits do not affect them."""
        return tuple(mapping.model_copy(deep=True) for mapping in self._mappings)

    def mappings_for(self, file_type: Union[FileType, str]) -> Tuple[FieldMapping, ...]:
        resolved = catalog.coerce_file_type(file_type)
        return tuple(m for m in self._mappings if m.file_type == resolved)

    def get(self, file_type: Union[FileType, str], source_field: str) -> Optional[FieldMapping]:
        for mapping in self.mappings_for(file_type):
            if mapping.source_field == source_field:
                return mapping
        return None

    def file_types(self) -> Tuple[FileType, ...]:
        seen: Dict[FileType, None] = {}
        for mapping in self._mappings:
            seen.setdefault(mapping.file_type, None)
        return tuple(seen)

    def resolved_field(self, file_type: Union[FileType, str], canonical_name: Optional[str]) -> Optional[CanonicalFieldSpec]:
        """Full catalog spec for a currently assigned canonical name."""
        return catalog.get_field(file_type, canonical_name)

    def source_options(self, file_type: Union[FileType, str]) -> List[str]:
        """Unique source fields of a file type, in detection order."""
        options: Dict[str, None] = {}
        for mapping in self.mappings_for(file_type):
            options.setdefault(mapping.source_field, None)
        return list(options)

    def unmapped_canonical_fields(self, file_type: Union[FileType, str]) -> List[CanonicalFieldSpec]:
        """Catalog fields no source field currently targets."""
        targeted = {m.canonical_field for m in self.mappings_for(file_type) if m.canonical_field}
        return [spec for spec in catalog.fields_for(file_type) if spec.name not in targeted]

    def completion_percentage(self) -> int:
        """Share of source fields that have a canonical field, as a whole percent."""
        if not self._mappings:
            return 0
        mapped = sum(1 for m in self._mappings if m.canonical_field)
        return round(mapped / len(self._mappings) * 100)

    def __len__(self) -> int:
        return len(self._mappings)
