"""Runs one generation request for one account across the endpoint list.

Each failure class has its own policy: 503 (no capacity) is retried on the
same endpoint with exponential backoff, 429 (rate limited) moves straight to
the next endpoint, and a timeout or any other error ends the run. The result
is a structured ExecutionResult, never an exception.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from agimage.domain.events.api_events import (
    AttemptFailed, AttemptInitiated, AttemptSucceeded,
    CapacityRetryScheduled, EndpointSkipped
)
from agimage.domain.interfaces.image_backend import ImageBackend
from agimage.domain.models.common import AccessToken, RequestPayload
from agimage.domain.models.generation import ExecutionResult, OutcomeKind
from agimage.infrastructure.config.settings import ExecutorSettings

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]


def _log_event(event: Any) -> None:
    logger.debug(f"EVENT: {event}")


class ResilientRequestExecutor:
    """Drives the attempt sequence for a single account."""

    def __init__(
        self,
        backend: ImageBackend,
        settings: Optional[ExecutorSettings] = None,
        sleep_func: SleepFunc = asyncio.sleep,
        event_handler: Callable[[Any], None] = _log_event,
    ):
        """Initializes the executor.

        Args:
            backend: Adapter performing and classifying single attempts.
            settings: Endpoint list and retry tunables.
            sleep_func: Awaitable used for backoff delays (injectable for tests).
            event_handler: Receives domain events; logs them by default.
        """
        self.backend = backend
        self.settings = settings or ExecutorSettings()
        self._sleep = sleep_func
        self._dispatch = event_handler
        logger.debug(
            f"ResilientRequestExecutor initialized: {len(self.settings.endpoints)} endpoint(s), "
            f"max_capacity_retries={self.settings.max_capacity_retries}, "
            f"base_delay={self.settings.capacity_retry_base_delay_s}s"
        )

    def backoff_delay(self, retry: int) -> float:
        """Delay before capacity retry number ``retry`` (1-based)."""
        return self.settings.capacity_retry_base_delay_s * (2 ** (retry - 1))

    async def execute(self, access_token: AccessToken, payload: RequestPayload) -> ExecutionResult:
        """Executes the request until success, a hard failure, or all endpoints are spent.

        Args:
            access_token: Bearer token of the selected account.
            payload: Prepared request body.

        Returns:
            ExecutionResult with the payload on success, or the failure flags
            and the last error message.
        """
        result = ExecutionResult()

        for endpoint in self.settings.endpoints:
            for retry in range(self.settings.max_capacity_retries + 1):
                if retry > 0:
                    delay = self.backoff_delay(retry)
                    logger.warning(
                        f"No capacity at {endpoint}, retry {retry}/{self.settings.max_capacity_retries} in {delay:.1f}s"
                    )
                    self._dispatch(CapacityRetryScheduled(endpoint=endpoint, retry_number=retry, delay_seconds=delay))
                    await self._sleep(delay)

                result.attempts += 1
                self._dispatch(AttemptInitiated(endpoint=endpoint, attempt_number=result.attempts))
                start_time = time.perf_counter()
                outcome = await self.backend.attempt_generation(endpoint, access_token, payload)
                latency_ms = (time.perf_counter() - start_time) * 1000
                result.terminal_kind = outcome.kind

                if outcome.kind is OutcomeKind.SUCCESS:
                    result.payload = outcome.payload
                    result.all_endpoints_rate_limited = False
                    result.all_endpoints_capacity_exhausted = False
                    self._dispatch(AttemptSucceeded(
                        endpoint=endpoint, latency_ms=latency_ms, image_count=len(outcome.payload.images)
                    ))
                    logger.info(f"Generation succeeded at {endpoint} after {result.attempts} attempt(s)")
                    return result

                result.last_error = outcome.error

                if outcome.kind is OutcomeKind.CAPACITY_UNAVAILABLE:
                    result.all_endpoints_rate_limited = False
                    continue

                if outcome.kind is OutcomeKind.RATE_LIMITED:
                    result.all_endpoints_capacity_exhausted = False
                    logger.warning(f"Rate limited at {endpoint}, trying next endpoint")
                    self._dispatch(EndpointSkipped(endpoint=endpoint, reason="rate_limited"))
                    break

                # Timeout or any other error: not worth another attempt with this account
                result.all_endpoints_rate_limited = False
                result.all_endpoints_capacity_exhausted = False
                logger.error(f"Attempt at {endpoint} failed ({outcome.kind.value}): {outcome.error}")
                self._dispatch(AttemptFailed(endpoint=endpoint, outcome=outcome.kind.value, error_message=outcome.error))
                return result
            else:
                logger.warning(f"Capacity retries exhausted at {endpoint}, trying next endpoint")
                self._dispatch(EndpointSkipped(endpoint=endpoint, reason="capacity_exhausted"))

        logger.error(
            f"All endpoints failed: rate_limited={result.all_endpoints_rate_limited}, "
            f"capacity_exhausted={result.all_endpoints_capacity_exhausted}, last_error={result.last_error}"
        )
        return result
