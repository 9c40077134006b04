import pytest
from unittest.mock import AsyncMock, MagicMock

from agimage.core.command_handler import CommandHandler, format_failure_report, format_success_report
from agimage.core.services.generation_service import GenerationService
from agimage.core.services.quota_service import QuotaService
from agimage.core.services.session_service import SessionService
from agimage.domain.exceptions import GenerationInputError
from agimage.domain.interfaces.cache import CacheService
from agimage.domain.interfaces.user_interface import UserInterface
from agimage.domain.models.generation import (
    AccountFailure, AccountFailureReason, AccountQuotaStatus, FailureKind,
    GenerationReport, GenerationRequest, QuotaInfo
)


@pytest.fixture
def mock_generation_service():
    service = MagicMock(spec=GenerationService)
    service.generate = AsyncMock()
    return service


@pytest.fixture
def mock_quota_service():
    service = MagicMock(spec=QuotaService)
    service.scheduler = MagicMock()
    service.scheduler.pool = [object(), object()]
    service.check_all = AsyncMock()
    return service


@pytest.fixture
def mock_session_service():
    service = MagicMock(spec=SessionService)
    service.list = AsyncMock(return_value=[])
    service.delete = AsyncMock(return_value=True)
    return service


@pytest.fixture
def mock_cache_service():
    cache = MagicMock(spec=CacheService)
    cache.clear = AsyncMock()
    return cache


@pytest.fixture
def mock_ui():
    return MagicMock(spec=UserInterface)


@pytest.fixture
def command_handler(mock_generation_service, mock_quota_service, mock_session_service, mock_cache_service, mock_ui):
    """Fixture to create CommandHandler with mocked services."""
    return CommandHandler(
        generation_service=mock_generation_service,
        quota_service=mock_quota_service,
        session_service=mock_session_service,
        cache_service=mock_cache_service,
        ui=mock_ui,
        accounts_paths=["/home/u/.config/opencode/antigravity-accounts.json"],
    )


def success_report(**kwargs):
    defaults = dict(
        success=True, account_email="b@x.com", saved_paths=["/work/generated_1.png"],
        mime_type="image/png", size_bytes=2048, total_accounts=2,
    )
    defaults.update(kwargs)
    return GenerationReport(**defaults)


# --- Report formatting ---

def test_format_success_report_single_image():
    text = format_success_report(success_report(
        quota=QuotaInfo("Gemini 3 Pro Image", 0.08), session_id="story", reference_count=2,
    ))
    assert "Image generated successfully! (account: b@x.com)" in text
    assert "Path: /work/generated_1.png" in text
    assert "Size: 2 KB" in text
    assert "Session: story" in text
    assert "References used: 2" in text
    assert "Quota: 8% (low) remaining" in text


def test_format_success_report_variations_and_edit():
    text = format_success_report(success_report(
        saved_paths=["/w/a_1.png", "/w/a_2.png"], edit_mode=True, total_accounts=1,
    ))
    assert text.startswith("Image edited successfully!\n")
    assert "Generated 2 variations:" in text
    assert "Edit mode: used last generated image as reference" in text


def test_format_failure_report_no_accounts_lists_paths():
    report = GenerationReport(success=False, failure_kind=FailureKind.NO_ACCOUNTS_CONFIGURED)
    text = format_failure_report(report, ["/a.json", "/b.json"])
    assert "No Antigravity account found." in text
    assert "  - /a.json" in text


def test_format_failure_report_lists_account_reasons():
    report = GenerationReport(success=False, failure_kind=FailureKind.ALL_ACCOUNTS_FAILED, failures=[
        AccountFailure("a@x.com", AccountFailureReason.RATE_LIMITED, "HTTP 429"),
        AccountFailure("b@x.com", AccountFailureReason.NO_CAPACITY, "HTTP 503"),
        AccountFailure("c@x.com", AccountFailureReason.ERROR, "HTTP 400: bad"),
    ])
    text = format_failure_report(report)
    assert "  - a@x.com: rate-limited" in text
    assert "  - b@x.com: no capacity (503, retries exhausted)" in text
    assert "  - c@x.com: HTTP 400: bad" in text
    assert "503 errors" in text
    assert "wait a few minutes" in text


# --- Handlers ---

@pytest.mark.asyncio
async def test_handle_generate_success(command_handler, mock_generation_service, mock_ui):
    mock_generation_service.generate.return_value = success_report(reference_errors=["/x.pdf: Unsupported"])
    req = GenerationRequest(prompt="a fox", worktree="/work")

    assert await command_handler.handle_generate(req) is True

    mock_generation_service.generate.assert_awaited_once_with(req)
    mock_ui.display_warning.assert_called_once()
    assert "/x.pdf: Unsupported" in mock_ui.display_warning.call_args.args[0]
    mock_ui.display_output.assert_called_once()
    assert mock_ui.display_output.call_args.kwargs["title"] == "Image generated"
    mock_ui.display_error.assert_not_called()


@pytest.mark.asyncio
async def test_handle_generate_failure_report(command_handler, mock_generation_service, mock_ui):
    mock_generation_service.generate.return_value = GenerationReport(
        success=False, failure_kind=FailureKind.ALL_RATE_LIMITED,
        failures=[AccountFailure("a@x.com", AccountFailureReason.RATE_LIMITED)],
    )
    assert await command_handler.handle_generate(GenerationRequest(prompt="p", worktree="/w")) is False
    assert "Every account tried was rate-limited." in mock_ui.display_error.call_args.args[0]


@pytest.mark.asyncio
async def test_handle_generate_input_error(command_handler, mock_generation_service, mock_ui):
    mock_generation_service.generate.side_effect = GenerationInputError("Please provide a prompt")
    assert await command_handler.handle_generate(GenerationRequest(prompt="", worktree="/w")) is False
    mock_ui.display_error.assert_called_once_with("Please provide a prompt")


@pytest.mark.asyncio
async def test_handle_generate_unexpected_error(command_handler, mock_generation_service, mock_ui):
    mock_generation_service.generate.side_effect = OSError("disk full")
    assert await command_handler.handle_generate(GenerationRequest(prompt="p", worktree="/w")) is False
    mock_ui.display_error.assert_called_once_with("Image generation failed: disk full")


@pytest.mark.asyncio
async def test_handle_quota(command_handler, mock_quota_service, mock_ui):
    statuses = [AccountQuotaStatus("a@x.com", QuotaInfo("m", 0.5)), AccountQuotaStatus("b@x.com", None)]
    mock_quota_service.check_all.return_value = statuses

    assert await command_handler.handle_quota() is True
    mock_ui.display_quota.assert_called_once_with(statuses)


@pytest.mark.asyncio
async def test_handle_quota_all_failed(command_handler, mock_quota_service, mock_ui):
    mock_quota_service.check_all.return_value = [AccountQuotaStatus("a@x.com", None)]
    assert await command_handler.handle_quota() is False
    mock_ui.display_error.assert_called_once_with("Could not fetch quota information.")


@pytest.mark.asyncio
async def test_handle_quota_without_accounts(command_handler, mock_quota_service, mock_ui):
    mock_quota_service.scheduler.pool = []
    assert await command_handler.handle_quota() is False
    mock_quota_service.check_all.assert_not_awaited()


@pytest.mark.asyncio
async def test_handle_sessions_list(command_handler, mock_session_service, mock_ui):
    assert await command_handler.handle_sessions_list() is True
    mock_ui.display_info.assert_called_once_with("No sessions found.")

    mock_session_service.list.return_value = ["a", "b"]
    await command_handler.handle_sessions_list()
    mock_ui.display_output.assert_called_once_with("a\nb", title="Sessions (2)")


@pytest.mark.asyncio
async def test_handle_sessions_delete(command_handler, mock_session_service, mock_ui):
    assert await command_handler.handle_sessions_delete("story") is True
    mock_session_service.delete.return_value = False
    assert await command_handler.handle_sessions_delete("story") is False
    mock_ui.display_error.assert_called_once_with("Session 'story' not found.")


@pytest.mark.asyncio
async def test_handle_clear_cache(command_handler, mock_cache_service, mock_ui):
    assert await command_handler.handle_clear_cache("l2") is True
    mock_cache_service.clear.assert_awaited_once_with("l2")
    mock_ui.display_info.assert_called_once_with("Cache level 'l2' cleared successfully.")


@pytest.mark.asyncio
async def test_handle_clear_cache_invalid_level(command_handler, mock_cache_service, mock_ui):
    assert await command_handler.handle_clear_cache("l9") is False
    mock_cache_service.clear.assert_not_awaited()
    mock_ui.display_error.assert_called_once()
