"""Core service for reading image model quota per account.

Every successful reading is also fed to the scheduler as a quota observation
so that near-exhausted accounts are deprioritized on the next selection.
"""

import logging
import time
from typing import List, Optional

from agimage.core.services.project_resolver import ProjectResolver
from agimage.domain.exceptions import AgImageError
from agimage.domain.interfaces.image_backend import ImageBackend
from agimage.domain.models.account import Account
from agimage.domain.models.common import AccessToken, ModelId, ProjectId
from agimage.domain.models.generation import AccountQuotaStatus, QuotaInfo
from agimage.infrastructure.api.request_builder import detect_image_model, quota_from_listing
from agimage.infrastructure.config.settings import DEFAULT_IMAGE_MODEL
from agimage.infrastructure.resilience.account_scheduler import AccountScheduler

logger = logging.getLogger(__name__)


class QuotaService:
    """Fetches quota snapshots and records them on the scheduler."""

    def __init__(
        self,
        backend: ImageBackend,
        scheduler: AccountScheduler,
        project_resolver: ProjectResolver,
        default_model: str = DEFAULT_IMAGE_MODEL,
    ):
        self.backend = backend
        self.scheduler = scheduler
        self.project_resolver = project_resolver
        self.default_model = ModelId(default_model)

    async def resolve_model(self, access_token: AccessToken, project_id: ProjectId) -> ModelId:
        """Best image model the account can use; the default when listing fails."""
        try:
            listing = await self.backend.fetch_available_models(access_token, project_id)
        except AgImageError as e:
            logger.warning(f"Model listing failed ({e}); using default model {self.default_model}")
            return self.default_model
        return detect_image_model(listing) or self.default_model

    async def fetch_quota(self, account: Account, access_token: Optional[AccessToken] = None) -> Optional[QuotaInfo]:
        """Quota of the image model for one account, or None if it cannot be read.

        A successful reading is recorded as a quota observation.
        """
        try:
            token = access_token or await self.backend.exchange_token(account.refresh_token)
            project_id = await self.project_resolver.resolve(account, token)
            listing = await self.backend.fetch_available_models(token, project_id)
        except AgImageError as e:
            logger.warning(f"Could not fetch quota for {account.email}: {e}")
            return None

        model = detect_image_model(listing) or self.default_model
        quota = quota_from_listing(listing, model)
        if quota is None:
            logger.info(f"No quota info for model {model} on {account.email}")
            return None

        self.scheduler.record_quota_observation(
            account.email, quota.remaining_fraction, quota.reset_time or None
        )
        return quota

    async def check_all(self) -> List[AccountQuotaStatus]:
        """One status row per configured account, in file order."""
        now = time.time()
        statuses = []
        for account in self.scheduler.pool.snapshot():
            quota = await self.fetch_quota(account)
            statuses.append(AccountQuotaStatus(
                email=account.email,
                quota=quota,
                rate_limited=account.is_cooling_down(now),
            ))
        return statuses
