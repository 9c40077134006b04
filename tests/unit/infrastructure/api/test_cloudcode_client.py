import asyncio
import json
from urllib.parse import parse_qs

import httpx
import pytest

from agimage.domain.exceptions import AuthError, BackendError, ProjectResolutionError
from agimage.domain.models.generation import OutcomeKind
from agimage.infrastructure.api.cloudcode_client import CloudCodeClient
from agimage.infrastructure.config.settings import OAuthClient

OAUTH = OAuthClient(client_id="client-id", client_secret="client-secret", token_url="https://oauth.test/token")
METADATA = "https://meta.test"
ENDPOINT = "https://gen.test"


def make_client(handler, attempt_timeout_s=120.0):
    return CloudCodeClient(
        oauth=OAUTH,
        metadata_base_url=METADATA,
        attempt_timeout_s=attempt_timeout_s,
        transport=httpx.MockTransport(handler),
    )


def sse_body(png_b64):
    event = {"response": {"candidates": [{"content": {"parts": [{"inlineData": {"mimeType": "image/png", "data": png_b64}}]}}]}}
    return f"data: {json.dumps(event)}\n\n"


# --- Token exchange ---

@pytest.mark.asyncio
async def test_exchange_token_posts_refresh_form():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={"access_token": "ya29.token", "expires_in": 3599})

    async with make_client(handler) as client:
        token = await client.exchange_token("refresh-1")

    assert token == "ya29.token"
    assert seen["url"] == "https://oauth.test/token"
    assert seen["form"]["grant_type"] == ["refresh_token"]
    assert seen["form"]["refresh_token"] == ["refresh-1"]
    assert seen["form"]["client_secret"] == ["client-secret"]


@pytest.mark.asyncio
async def test_exchange_token_rejected():
    async with make_client(lambda request: httpx.Response(400, json={"error": "invalid_grant"})) as client:
        with pytest.raises(AuthError) as exc_info:
            await client.exchange_token("bad")
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_exchange_token_without_access_token():
    async with make_client(lambda request: httpx.Response(200, json={})) as client:
        with pytest.raises(AuthError):
            await client.exchange_token("refresh")


# --- Metadata calls ---

@pytest.mark.asyncio
async def test_resolve_project_id_from_object():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1internal:loadCodeAssist"
        assert request.headers["Authorization"] == "Bearer tok"
        assert json.loads(request.content)["metadata"]["ideType"] == "ANTIGRAVITY"
        return httpx.Response(200, json={"cloudaicompanionProject": {"id": "proj-9"}})

    async with make_client(handler) as client:
        assert await client.resolve_project_id("tok") == "proj-9"


@pytest.mark.asyncio
async def test_resolve_project_id_missing():
    async with make_client(lambda request: httpx.Response(200, json={})) as client:
        with pytest.raises(ProjectResolutionError):
            await client.resolve_project_id("tok")


@pytest.mark.asyncio
async def test_resolve_project_id_http_error():
    async with make_client(lambda request: httpx.Response(403, text="denied")) as client:
        with pytest.raises(BackendError) as exc_info:
            await client.resolve_project_id("tok")
    assert exc_info.value.status_code == 403
    assert exc_info.value.operation == "loadCodeAssist"


@pytest.mark.asyncio
async def test_fetch_available_models():
    models = {"gemini-3-pro-image": {"quotaInfo": {"remainingFraction": 0.5}}}

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1internal:fetchAvailableModels"
        assert json.loads(request.content) == {"project": "proj-1"}
        return httpx.Response(200, json={"models": models})

    async with make_client(handler) as client:
        listing = await client.fetch_available_models("tok", "proj-1")
    assert listing.models == models
    assert listing.quota_for("gemini-3-pro-image") == {"remainingFraction": 0.5}


# --- Generation attempts ---

@pytest.mark.asyncio
async def test_attempt_success(png_b64):
    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == "https://gen.test/v1internal:streamGenerateContent?alt=sse"
        return httpx.Response(200, text=sse_body(png_b64))

    async with make_client(handler) as client:
        outcome = await client.attempt_generation(ENDPOINT, "tok", {"request": {}})

    assert outcome.kind is OutcomeKind.SUCCESS
    assert outcome.status_code == 200
    assert outcome.payload.first.data == png_b64


@pytest.mark.asyncio
@pytest.mark.parametrize("status, kind", [
    (429, OutcomeKind.RATE_LIMITED),
    (503, OutcomeKind.CAPACITY_UNAVAILABLE),
    (500, OutcomeKind.OTHER_ERROR),
    (400, OutcomeKind.OTHER_ERROR),
])
async def test_attempt_classifies_http_errors(status, kind):
    async with make_client(lambda request: httpx.Response(status, text="x" * 1000)) as client:
        outcome = await client.attempt_generation(ENDPOINT, "tok", {})

    assert outcome.kind is kind
    assert outcome.status_code == status
    assert outcome.error == f"HTTP {status}: " + "x" * 300


@pytest.mark.asyncio
async def test_attempt_without_image_is_other_error():
    event = {"response": {"candidates": [{"content": {"parts": [{"text": "no"}]}}]}}
    async with make_client(lambda request: httpx.Response(200, text=f"data: {json.dumps(event)}\n")) as client:
        outcome = await client.attempt_generation(ENDPOINT, "tok", {})
    assert outcome.kind is OutcomeKind.OTHER_ERROR
    assert outcome.error == "No image in response"


@pytest.mark.asyncio
async def test_attempt_with_string_error_event_is_other_error():
    body = f"data: {json.dumps({'error': 'quota exhausted'})}\n"
    async with make_client(lambda request: httpx.Response(200, text=body)) as client:
        outcome = await client.attempt_generation(ENDPOINT, "tok", {})
    assert outcome.kind is OutcomeKind.OTHER_ERROR
    assert outcome.error == "quota exhausted"


@pytest.mark.asyncio
async def test_attempt_times_out():
    async def slow(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200)

    async with make_client(slow, attempt_timeout_s=0.05) as client:
        outcome = await client.attempt_generation(ENDPOINT, "tok", {})
    assert outcome.kind is OutcomeKind.TIMEOUT
    assert outcome.error == "Timeout after 0.05s"


@pytest.mark.asyncio
async def test_attempt_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with make_client(handler) as client:
        outcome = await client.attempt_generation(ENDPOINT, "tok", {})
    assert outcome.kind is OutcomeKind.OTHER_ERROR
    assert "connection refused" in outcome.error
