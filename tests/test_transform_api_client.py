import json

import httpx
import pytest

from onboarding.domain.errors import ApiClientError
from onboarding.integrations.transform_api import TransformApiClient
from onboarding.schemas import FileType, JobState, MappingEntry, OverallStatus


def make_client(handler):
    return TransformApiClient("http://transform.test/", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_upload_files_sends_multipart_parts_named_by_file_type():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["body"] = request.content
        return httpx.Response(200, json={"upload_id": "u-42"})

    async with make_client(handler) as client:
        upload_id = await client.upload_files({FileType.POLICY: ("policies.csv", b"PolicyNo\nP1\n")})

    assert upload_id == "u-42"
    assert captured["path"] == "/api/upload"
    assert b'name="policy"' in captured["body"]
    assert b'filename="policies.csv"' in captured["body"]


@pytest.mark.asyncio
async def test_upload_without_upload_id_is_an_error():
    async with make_client(lambda request: httpx.Response(200, json={})) as client:
        with pytest.raises(ApiClientError, match="Upload failed"):
            await client.upload_files({FileType.POLICY: ("p.csv", b"x")})


@pytest.mark.asyncio
async def test_detect_fields_parses_suggestions():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.url.path == "/api/detect/u-1/claim"
        return httpx.Response(
            200,
            json=[
                {
                    "source_field": "ClaimID",
                    "suggested_canonical": "claim_number",
                    "populated_pct": 100,
                    "detected_type": "string",
                    "confidence": 0.98,
                }
            ],
        )

    async with make_client(handler) as client:
        fields = await client.detect_fields("u-1", FileType.CLAIM)

    assert fields[0].suggested_canonical == "claim_number"
    assert fields[0].confidence == 0.98


@pytest.mark.asyncio
async def test_submit_mapping_posts_json_body():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"status": "queued", "message": "ok"})

    async with make_client(handler) as client:
        response = await client.submit_mapping(
            "u-1",
            FileType.POLICY,
            {"PolicyNo": MappingEntry(canonical_field="policy_number", confidence=0.95)},
        )

    assert response.status == "queued"
    assert captured["body"]["upload_id"] == "u-1"
    assert captured["body"]["file_type"] == "policy"
    assert captured["body"]["mappings"]["PolicyNo"]["canonical_field"] == "policy_number"


@pytest.mark.asyncio
async def test_get_status_parses_session():
    payload = {
        "upload_id": "u-1",
        "overall": "running",
        "jobs": [
            {"file_type": "policy", "status": "running", "progress": 0.5, "message": "Transforming"},
        ],
    }

    async with make_client(lambda request: httpx.Response(200, json=payload)) as client:
        result = await client.get_status("u-1")

    assert result.overall == OverallStatus.RUNNING
    assert result.jobs[0].status == JobState.RUNNING


@pytest.mark.asyncio
async def test_http_error_status_becomes_api_client_error():
    async with make_client(lambda request: httpx.Response(503)) as client:
        with pytest.raises(ApiClientError) as exc_info:
            await client.get_status("u-1")

    assert exc_info.value.status_code == 503
    assert str(exc_info.value) == "Status check failed: Service Unavailable"


@pytest.mark.asyncio
async def test_transport_failure_becomes_api_client_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with make_client(handler) as client:
        with pytest.raises(ApiClientError, match="Mapping submission failed") as exc_info:
            await client.submit_mapping("u-1", FileType.CANCEL, {})

    assert exc_info.value.status_code is None


@pytest.mark.asyncio
async def test_unexpected_payload_shape_is_rejected():
    async with make_client(lambda request: httpx.Response(200, json={"jobs": "nope"})) as client:
        with pytest.raises(ApiClientError, match="unexpected response shape"):
            await client.get_status("u-1")
