"""Concrete implementation of the ImageBackend interface over the CloudCode API.

Hides the HTTP details (httpx, OAuth form posts, SSE bodies) and translates
responses into domain objects. Single generation attempts are classified into
OutcomeKind values instead of raising.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from agimage.domain.exceptions import AuthError, BackendError, ProjectResolutionError
from agimage.domain.interfaces.image_backend import ImageBackend
from agimage.domain.models.common import AccessToken, EndpointUrl, ProjectId, RequestPayload
from agimage.domain.models.generation import AttemptOutcome, ModelListing, OutcomeKind
from agimage.infrastructure.api.request_builder import USER_AGENT, extract_project_id
from agimage.infrastructure.api.sse_parser import parse_sse_response
from agimage.infrastructure.config.settings import (
    DEFAULT_ATTEMPT_TIMEOUT_S, DEFAULT_METADATA_BASE_URL, OAuthClient
)

logger = logging.getLogger(__name__)

GENERATE_PATH = "/v1internal:streamGenerateContent?alt=sse"
LOAD_CODE_ASSIST_PATH = "/v1internal:loadCodeAssist"
FETCH_MODELS_PATH = "/v1internal:fetchAvailableModels"
ERROR_DETAIL_LIMIT = 300
METADATA_TIMEOUT_S = 30.0

CLOUDCODE_METADATA = {
    "ideType": "ANTIGRAVITY",
    "platform": "PLATFORM_UNSPECIFIED",
    "pluginType": "GEMINI",
}


class CloudCodeClient(ImageBackend):
    """httpx-based CloudCode implementation of the ImageBackend interface."""

    def __init__(
        self,
        oauth: OAuthClient,
        metadata_base_url: str = DEFAULT_METADATA_BASE_URL,
        attempt_timeout_s: float = DEFAULT_ATTEMPT_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initializes the client.

        Args:
            oauth: OAuth client id/secret and token URL for refresh token exchange.
            metadata_base_url: Endpoint used for project lookup and model listing.
            attempt_timeout_s: Hard limit for a single generation attempt.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        self.oauth = oauth
        self.metadata_base_url = metadata_base_url.rstrip("/")
        self.attempt_timeout_s = attempt_timeout_s
        self.client = httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(METADATA_TIMEOUT_S),
            headers={"User-Agent": USER_AGENT},
        )
        if not oauth.client_secret:
            logger.warning("OAuth client secret is not configured; token exchange will likely fail.")
        logger.info(f"CloudCodeClient initialized (metadata: {self.metadata_base_url})")

    async def __aenter__(self) -> "CloudCodeClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    @staticmethod
    def _auth_headers(access_token: AccessToken) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    async def _post_metadata(self, operation: str, path: str, access_token: AccessToken, body: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.metadata_base_url}{path}"
        try:
            response = await self.client.post(url, json=body, headers=self._auth_headers(access_token))
        except httpx.HTTPError as e:
            raise BackendError(operation, detail=str(e) or type(e).__name__) from e
        if response.is_error:
            raise BackendError(operation, status_code=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(operation, status_code=response.status_code, detail="invalid JSON") from e

    async def exchange_token(self, refresh_token: str) -> AccessToken:
        form = {
            "client_id": self.oauth.client_id,
            "client_secret": self.oauth.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        try:
            response = await self.client.post(self.oauth.token_url, data=form)
        except httpx.HTTPError as e:
            raise AuthError(f"Token refresh failed: {str(e) or type(e).__name__}") from e
        if response.is_error:
            raise AuthError(f"Token refresh failed ({response.status_code})", status_code=response.status_code)
        try:
            token = response.json().get("access_token")
        except ValueError as e:
            raise AuthError("Token refresh returned invalid JSON", status_code=response.status_code) from e
        if not token:
            raise AuthError("Token refresh response had no access_token", status_code=response.status_code)
        return AccessToken(token)

    async def resolve_project_id(self, access_token: AccessToken) -> ProjectId:
        data = await self._post_metadata(
            "loadCodeAssist", LOAD_CODE_ASSIST_PATH, access_token, {"metadata": CLOUDCODE_METADATA}
        )
        project_id = extract_project_id(data.get("cloudaicompanionProject"))
        if not project_id:
            raise ProjectResolutionError("Could not determine project ID")
        logger.debug(f"Resolved project id {project_id}")
        return ProjectId(project_id)

    async def fetch_available_models(self, access_token: AccessToken, project_id: Optional[ProjectId]) -> ModelListing:
        body = {"project": project_id} if project_id else {}
        data = await self._post_metadata("fetchAvailableModels", FETCH_MODELS_PATH, access_token, body)
        models = data.get("models") or {}
        logger.debug(f"Account can use {len(models)} model(s)")
        return ModelListing(models=models if isinstance(models, dict) else {})

    async def _send_generation(self, url: str, access_token: AccessToken, payload: RequestPayload) -> httpx.Response:
        return await self.client.post(
            url, json=payload, headers=self._auth_headers(access_token), timeout=None
        )

    async def attempt_generation(
        self, endpoint: EndpointUrl, access_token: AccessToken, payload: RequestPayload
    ) -> AttemptOutcome:
        url = f"{endpoint.rstrip('/')}{GENERATE_PATH}"
        logger.debug(f"POST {url}")
        try:
            # wait_for cancels the request on timeout, which closes its connection
            response = await asyncio.wait_for(
                self._send_generation(url, access_token, payload), timeout=self.attempt_timeout_s
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            return AttemptOutcome.failure(OutcomeKind.TIMEOUT, f"Timeout after {self.attempt_timeout_s:g}s")
        except httpx.HTTPError as e:
            return AttemptOutcome.failure(OutcomeKind.OTHER_ERROR, str(e) or type(e).__name__)

        status = response.status_code
        if response.is_error:
            error = f"HTTP {status}: {response.text[:ERROR_DETAIL_LIMIT]}"
            if status == 429:
                return AttemptOutcome.failure(OutcomeKind.RATE_LIMITED, error, status)
            if status == 503:
                return AttemptOutcome.failure(OutcomeKind.CAPACITY_UNAVAILABLE, error, status)
            return AttemptOutcome.failure(OutcomeKind.OTHER_ERROR, error, status)

        parsed = parse_sse_response(response.text)
        if not parsed.ok:
            return AttemptOutcome.failure(OutcomeKind.OTHER_ERROR, parsed.error, status)
        return AttemptOutcome.success(parsed.payload, status)
