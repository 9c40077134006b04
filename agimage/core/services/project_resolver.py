"""Finds the CloudCode project an account works in.

Order: the id stored on the account, then the cache, then loadCodeAssist.
A looked-up id is cached per account so later invocations skip the call.
"""

import logging
from typing import Optional

from agimage.domain.interfaces.cache import CacheService
from agimage.domain.interfaces.image_backend import ImageBackend
from agimage.domain.models.account import Account
from agimage.domain.models.common import AccessToken, CacheKey, ProjectId

logger = logging.getLogger(__name__)

PROJECT_CACHE_TTL_SECONDS = 24 * 60 * 60


def project_cache_key(email: str) -> CacheKey:
    return CacheKey(f"project:{email}")


class ProjectResolver:

    def __init__(self, backend: ImageBackend, cache: Optional[CacheService] = None):
        self.backend = backend
        self.cache = cache

    async def resolve(self, account: Account, access_token: AccessToken) -> ProjectId:
        """Returns the project id for ``account``.

        Raises:
            BackendError: If the lookup call fails.
            ProjectResolutionError: If the backend knows no project for the account.
        """
        if account.known_project_id:
            return ProjectId(account.known_project_id)

        key = project_cache_key(account.email)
        if self.cache is not None:
            cached = await self.cache.get(key)
            if cached:
                logger.debug(f"Using cached project id for {account.email}")
                return ProjectId(cached)

        project_id = await self.backend.resolve_project_id(access_token)
        if self.cache is not None:
            await self.cache.set(key, str(project_id), ttl=PROJECT_CACHE_TTL_SECONDS)
        return project_id
