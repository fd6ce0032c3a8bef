"""
HTTP client for the transform backend (upload, field detection, mapping
submission and job status).

The wizard only depends on the four coroutine methods; any object offering
them (see ``TransformBackend``) can stand in for this client.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from onboarding.core.config import settings
from onboarding.domain.errors import ApiClientError
from onboarding.schemas import (
    DetectedField,
    FileType,
    MappingEntry,
    MappingResponse,
    UploadSession,
)

logger = logging.getLogger(__name__)

# (filename, content) for a single multipart part
FilePayload = Tuple[str, bytes]

ModelT = TypeVar("ModelT", bound=BaseModel)


class TransformBackend(Protocol):
    async def upload_files(self, files: Mapping[FileType, FilePayload]) -> str: ...

    async def detect_fields(self, upload_id: str, file_type: FileType) -> List[DetectedField]: ...

    async def submit_mapping(
        self, upload_id: str, file_type: FileType, mappings: Mapping[str, MappingEntry]
    ) -> MappingResponse: ...

    async def get_status(self, upload_id: str) -> UploadSession: ...


class TransformApiClient:
    """Async client for the transform backend's JSON API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else settings.api_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "TransformApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, operation: str, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error("%s request to %s failed: %s", operation, path, e)
            raise ApiClientError(f"{operation} failed: {e}") from e

        if response.is_error:
            logger.error("%s returned HTTP %s for %s", operation, response.status_code, path)
            raise ApiClientError(
                f"{operation} failed: {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ApiClientError(f"{operation} failed: invalid JSON response") from e

    @staticmethod
    def _parse(operation: str, model: Type[ModelT], payload: Any) -> ModelT:
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            raise ApiClientError(f"{operation} failed: unexpected response shape") from e

    async def upload_files(self, files: Mapping[FileType, FilePayload]) -> str:
        """
        Upload one or more files in a single multipart request.

        Parameters:
        - files: filename/content pairs keyed by file type; the part name is
          the file type value

        Returns:
        - The upload id assigned by the backend
        """
        parts = {FileType(ft).value: (name, content) for ft, (name, content) in files.items()}
        payload = await self._request("Upload", "POST", "/api/upload", files=parts)
        upload_id = payload.get("upload_id") if isinstance(payload, dict) else None
        if not upload_id:
            raise ApiClientError("Upload failed: response did not include an upload_id")
        logger.info("Uploaded %s as upload %s", ", ".join(parts), upload_id)
        return upload_id

    async def detect_fields(self, upload_id: str, file_type: FileType) -> List[DetectedField]:
        payload = await self._request(
            "Field detection",
            "POST",
            f"/api/detect/{upload_id}/{FileType(file_type).value}",
        )
        return [self._parse("Field detection", DetectedField, item) for item in payload or []]

    async def submit_mapping(
        self, upload_id: str, file_type: FileType, mappings: Mapping[str, MappingEntry]
    ) -> MappingResponse:
        body: Dict[str, Any] = {
            "upload_id": upload_id,
            "file_type": FileType(file_type).value,
            "mappings": {source: entry.model_dump() for source, entry in mappings.items()},
        }
        payload = await self._request("Mapping submission", "POST", "/api/mapping", json=body)
        return self._parse("Mapping submission", MappingResponse, payload)

    async def get_status(self, upload_id: str) -> UploadSession:
        payload = await self._request("Status check", "GET", f"/api/status/{upload_id}")
        return self._parse("Status check", UploadSession, payload)


def get_transform_client(base_url: Optional[str] = None) -> TransformApiClient:
    """Build a client against the configured backend."""
    return TransformApiClient(base_url=base_url)
