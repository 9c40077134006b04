import pytest

from agimage.core.services.session_service import SessionService
from agimage.infrastructure.persistence.session_store import JsonSessionStore


@pytest.fixture
def session_service(tmp_path):
    return SessionService(JsonSessionStore(tmp_path / "sessions"))


@pytest.mark.asyncio
async def test_record_exchange_appends_user_and_model_turns(session_service):
    candidates = [{"content": {"parts": [
        {"text": "thinking...", "thought": True},
        {"inlineData": {"mimeType": "image/png", "data": "AAAA"}},
    ]}}]

    await session_service.record_exchange("story", "a knight", candidates)
    await session_service.record_exchange("story", "now at night", [])

    history = await session_service.history("story")
    assert [(t.role, t.parts) for t in history] == [
        ("user", [{"text": "a knight"}]),
        ("model", [{"inlineData": {"mimeType": "image/png", "data": "AAAA"}}]),
        ("user", [{"text": "now at night"}]),
    ]


@pytest.mark.asyncio
async def test_history_of_unknown_session_is_empty(session_service):
    assert await session_service.history("new") == []


@pytest.mark.asyncio
async def test_list_and_delete(session_service):
    await session_service.record_exchange("one", "p", [])
    assert await session_service.list() == ["one"]
    assert await session_service.delete("one") is True
    assert await session_service.delete("one") is False
