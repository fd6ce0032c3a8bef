"""
Submission of validated mappings to the transform backend.

One request is sent per file type, all of them concurrently. The payloads
are built from a single snapshot of the mapping state before anything is
dispatched, so edits made while requests are in flight never leak into them.
"""
import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from onboarding.domain.errors import MissingUploadIdError, SubmissionError
from onboarding.domain.mapping.state import MappingState
from onboarding.integrations.transform_api import TransformBackend
from onboarding.schemas import FieldMapping, FileType, MappingEntry, SubmittedMapping
from onboarding.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)


def group_mappings(mappings: Iterable[FieldMapping]) -> Dict[FileType, Dict[str, MappingEntry]]:
    """
    Group assigned mappings by file type, keyed by source field.

    Mappings without a canonical field are left out; file types with no
    assigned mapping do not appear in the result.
    """
    grouped: Dict[FileType, Dict[str, MappingEntry]] = {}
    for mapping in mappings:
        if not mapping.canonical_field:
            continue
        grouped.setdefault(mapping.file_type, {})[mapping.source_field] = MappingEntry(
            canonical_field=mapping.canonical_field,
            populated_pct=mapping.populated_pct,
            detected_type=mapping.detected_type,
            confidence=mapping.confidence,
        )
    return grouped


def flatten_grouped(grouped: Dict[FileType, Dict[str, MappingEntry]]) -> Dict[str, SubmittedMapping]:
    """Merge per-file-type tables into one ``source_field -> entry`` table."""
    flattened: Dict[str, SubmittedMapping] = {}
    for file_type, entries in grouped.items():
        for source_field, entry in entries.items():
            flattened[source_field] = SubmittedMapping(**entry.model_dump(), file_type=file_type)
    return flattened


class MappingSubmitter:
    """Fan-out/fan-in submission of one mapping table per file type."""

    def __init__(self, client: TransformBackend):
        self._client = client

    async def submit(
        self,
        upload_id: Optional[str],
        mapping_state: MappingState,
        *,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Dict[str, SubmittedMapping]:
        """
        Submit every assigned mapping, one request per file type.

        The caller is expected to have validated the mapping state first;
        nothing is re-validated here.

        Args:
            upload_id: Upload the mappings belong to
            mapping_state: Current assignments (snapshotted once)
            cancel_token: Optional token that abandons in-flight requests

        Returns:
            Flattened ``source_field -> SubmittedMapping`` table

        Raises:
            MissingUploadIdError: No upload id; nothing is sent
            SubmissionError: At least one request failed. Requests that
                succeeded are not rolled back.
            OperationCancelledError: The token fired before completion
        """
        if not upload_id:
            raise MissingUploadIdError()

        grouped = group_mappings(mapping_state.snapshot())
        if not grouped:
            logger.warning("No assigned mappings to submit for upload %s", upload_id)
            return {}

        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        file_types: List[FileType] = list(grouped)
        logger.info(
            "Submitting mappings for upload %s: %s",
            upload_id,
            ", ".join(f"{ft.value}({len(grouped[ft])})" for ft in file_types),
        )

        gathered = asyncio.gather(
            *(self._client.submit_mapping(upload_id, ft, grouped[ft]) for ft in file_types),
            return_exceptions=True,
        )
        if cancel_token is not None:
            results = await cancel_token.run(gathered)
        else:
            results = await gathered

        first_error: Optional[BaseException] = None
        succeeded: List[str] = []
        for file_type, result in zip(file_types, results):
            if isinstance(result, BaseException):
                logger.error("Mapping submission for %s failed: %s", file_type.value, result)
                if first_error is None:
                    first_error = result
            else:
                succeeded.append(file_type.value)

        if first_error is not None:
            if succeeded:
                logger.warning(
                    "Mappings for %s were persisted before the failure and are not rolled back",
                    ", ".join(succeeded),
                )
            raise SubmissionError(first_error, succeeded_file_types=succeeded) from first_error

        logger.info("Submitted mappings for upload %s", upload_id)
        return flatten_grouped(grouped)
