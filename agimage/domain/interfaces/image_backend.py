"""Interface for the remote image generation backend.

Defines the contract for authenticating an account, resolving its project,
listing models and performing a single generation attempt against one
endpoint. Concrete adapters translate HTTP details into domain objects.
"""

import abc

from ..models.common import AccessToken, EndpointUrl, ProjectId, RequestPayload
from ..models.generation import AttemptOutcome, ModelListing


class ImageBackend(abc.ABC):
    """Abstract Base Class for the multimodal generation API."""

    @abc.abstractmethod
    async def exchange_token(self, refresh_token: str) -> AccessToken:
        """Exchanges a long-lived refresh token for a short-lived access token.

        Raises:
            AuthError: If the token endpoint rejects the refresh token.
        """
        pass

    @abc.abstractmethod
    async def resolve_project_id(self, access_token: AccessToken) -> ProjectId:
        """Looks up the project the account is bound to.

        Raises:
            BackendError: If the lookup call fails.
            ProjectResolutionError: If the response carries no project.
        """
        pass

    @abc.abstractmethod
    async def fetch_available_models(self, access_token: AccessToken, project_id: ProjectId) -> ModelListing:
        """Lists models (with quota info) available to the account.

        Raises:
            BackendError: If the listing call fails.
        """
        pass

    @abc.abstractmethod
    async def attempt_generation(
        self, endpoint: EndpointUrl, access_token: AccessToken, payload: RequestPayload
    ) -> AttemptOutcome:
        """Sends one request to one endpoint and classifies the result.

        Never raises for HTTP or transport failures; these become
        RATE_LIMITED, CAPACITY_UNAVAILABLE, TIMEOUT or OTHER_ERROR outcomes.
        """
        pass
