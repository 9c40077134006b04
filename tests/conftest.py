import pytest
from typer.testing import CliRunner

from agimage.domain.models.account import Account, AccountPool, AccountsConfig, CachedQuota
from agimage.domain.models.generation import GeneratedImage, GenerationPayload
from agimage.infrastructure.config import settings

# 1x1 transparent PNG
PNG_B64 = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_config():
    """Keeps test configuration from leaking between tests."""
    settings.clear_test_config()
    yield
    settings.clear_test_config()


def make_account(email, last_used=None, rate_limited_until=None, quota=None, quota_at=0.0, **kwargs):
    """Builds an account; ``quota`` is a remaining fraction observed at ``quota_at``."""
    cached = CachedQuota(remaining_fraction=quota, updated_at=quota_at) if quota is not None else None
    return Account(
        email=email,
        refresh_token=kwargs.pop("refresh_token", f"refresh-{email}"),
        last_used=last_used,
        rate_limited_until=rate_limited_until,
        cached_quota=cached,
        **kwargs,
    )


def make_pool(*accounts):
    return AccountPool(AccountsConfig(accounts=list(accounts)))


def make_payload(count=1, mime_type="image/png"):
    images = [GeneratedImage(data=PNG_B64, mime_type=mime_type, size_bytes=68) for _ in range(count)]
    candidates = [{"content": {"parts": [{"inlineData": {"mimeType": mime_type, "data": PNG_B64}}]}}]
    return GenerationPayload(images=images, candidates=candidates)


@pytest.fixture
def png_b64():
    return PNG_B64


@pytest.fixture
def account_factory():
    return make_account


@pytest.fixture
def pool_factory():
    return make_pool


@pytest.fixture
def payload_factory():
    return make_payload
