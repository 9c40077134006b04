"""Core service that turns one generation request into saved images.

Runs the bounded account failover loop: select an account that has not been
tried in this call, exchange its token, resolve project and model, execute the
request across endpoints, then record the outcome on the scheduler. The first
success is saved to disk; otherwise the report explains why every account
failed.
"""

import asyncio
import copy
import logging
from typing import Any, Callable, List, Optional, Set

from agimage.core.services.project_resolver import ProjectResolver
from agimage.core.services.quota_service import QuotaService
from agimage.core.services.session_service import SessionService
from agimage.domain.events.api_events import AccountFailedOver
from agimage.domain.exceptions import AgImageError, AuthError, GenerationInputError
from agimage.domain.interfaces.filesystem import FileSystem
from agimage.domain.interfaces.image_backend import ImageBackend
from agimage.domain.interfaces.stores import AccountStore
from agimage.domain.models.account import Account
from agimage.domain.models.common import ContentPart, FilePath
from agimage.domain.models.generation import (
    MAX_VARIATIONS, SUPPORTED_ASPECT_RATIOS, SUPPORTED_IMAGE_SIZES,
    AccountFailure, AccountFailureReason, AccountGeneration, FailureKind,
    GenerationReport, GenerationRequest, ImageGenerationOptions
)
from agimage.infrastructure.api.request_builder import build_contents, build_request_body
from agimage.infrastructure.config.settings import DEFAULT_MAX_ACCOUNT_ATTEMPTS
from agimage.infrastructure.resilience.account_scheduler import AccountScheduler
from agimage.infrastructure.resilience.request_executor import ResilientRequestExecutor

logger = logging.getLogger(__name__)


def _log_event(event: Any) -> None:
    logger.debug(f"EVENT: {event}")


def validate_options(options: ImageGenerationOptions) -> ImageGenerationOptions:
    """Rejects unknown aspect ratios and sizes; clamps count to 1..MAX_VARIATIONS."""
    if options.aspect_ratio and options.aspect_ratio not in SUPPORTED_ASPECT_RATIOS:
        raise GenerationInputError(
            f"Unsupported aspect ratio '{options.aspect_ratio}'. Use one of: {', '.join(SUPPORTED_ASPECT_RATIOS)}"
        )
    if options.image_size and options.image_size not in SUPPORTED_IMAGE_SIZES:
        raise GenerationInputError(
            f"Unsupported image size '{options.image_size}'. Use one of: {', '.join(SUPPORTED_IMAGE_SIZES)}"
        )
    count = min(max(options.count or 1, 1), MAX_VARIATIONS)
    return ImageGenerationOptions(
        aspect_ratio=options.aspect_ratio,
        image_size=options.image_size,
        count=count if count > 1 else None,
        extra=dict(options.extra),
    )


def classify_failure(failures: List[AccountFailure], total_accounts: int) -> FailureKind:
    if not failures:
        return FailureKind.NO_ACCOUNTS_CONFIGURED if total_accounts == 0 else FailureKind.NO_ACCOUNTS_AVAILABLE
    reasons = {f.reason for f in failures}
    if reasons == {AccountFailureReason.RATE_LIMITED}:
        return FailureKind.ALL_RATE_LIMITED
    if reasons == {AccountFailureReason.NO_CAPACITY}:
        return FailureKind.ALL_CAPACITY_EXHAUSTED
    return FailureKind.ALL_ACCOUNTS_FAILED


class GenerationService:
    """Orchestrates image generation across accounts."""

    def __init__(
        self,
        backend: ImageBackend,
        scheduler: AccountScheduler,
        executor: ResilientRequestExecutor,
        account_store: AccountStore,
        file_system: FileSystem,
        session_service: SessionService,
        project_resolver: ProjectResolver,
        quota_service: QuotaService,
        max_account_attempts: int = DEFAULT_MAX_ACCOUNT_ATTEMPTS,
        event_handler: Callable[[Any], None] = _log_event,
    ):
        """Initializes the GenerationService with its dependencies."""
        self.backend = backend
        self.scheduler = scheduler
        self.executor = executor
        self.account_store = account_store
        self.file_system = file_system
        self.session_service = session_service
        self.project_resolver = project_resolver
        self.quota_service = quota_service
        self.max_account_attempts = max_account_attempts
        self._dispatch = event_handler
        logger.info(f"GenerationService initialized (max_account_attempts={max_account_attempts})")

    async def _persist_accounts(self) -> None:
        """Writes scheduling state back to the accounts file. Failures are logged only."""
        pool = self.scheduler.pool
        with pool.locked():
            snapshot = copy.deepcopy(pool.config)
        try:
            await asyncio.to_thread(self.account_store.save, snapshot)
        except OSError as e:
            logger.warning(f"Could not save account state: {e}")

    async def _resolve_references(self, request: GenerationRequest) -> List[FilePath]:
        references = list(request.reference_paths)
        if request.edit_mode:
            last_path = await self.file_system.load_last_generated_path()
            if not last_path:
                raise GenerationInputError(
                    "Edit mode needs a previously generated image, but none was found. "
                    "Generate an image first, then use edit mode to refine it."
                )
            references.insert(0, last_path)
        return references

    async def _run_account(
        self, account: Account, contents: List[dict], options: ImageGenerationOptions
    ) -> AccountGeneration:
        """Token, project, model, then the resilient execution for one account."""
        try:
            access_token = await self.backend.exchange_token(account.refresh_token)
            project_id = await self.project_resolver.resolve(account, access_token)
            model = await self.quota_service.resolve_model(access_token, project_id)
        except AuthError as e:
            logger.warning(f"Authentication failed for {account.email}: {e}")
            return AccountGeneration(
                email=account.email, failure=AccountFailure(account.email, AccountFailureReason.AUTH, str(e))
            )
        except AgImageError as e:
            logger.warning(f"Could not prepare request for {account.email}: {e}")
            return AccountGeneration(
                email=account.email, failure=AccountFailure(account.email, AccountFailureReason.ERROR, str(e))
            )

        logger.info(f"Generating with {account.email} (model {model}, project {project_id})")
        payload = build_request_body(project_id, model, contents, options)
        execution = await self.executor.execute(access_token, payload)
        generation = AccountGeneration(email=account.email, execution=execution)

        if execution.success:
            self.scheduler.record_used(account.email)
            generation.quota = await self.quota_service.fetch_quota(account, access_token)
            await self._persist_accounts()
            return generation

        if execution.all_endpoints_rate_limited:
            self.scheduler.record_rate_limited(account.email)
            await self._persist_accounts()
            reason = AccountFailureReason.RATE_LIMITED
        elif execution.all_endpoints_capacity_exhausted:
            reason = AccountFailureReason.NO_CAPACITY
        else:
            reason = AccountFailureReason.ERROR
        generation.failure = AccountFailure(account.email, reason, execution.last_error or "All endpoints failed")
        return generation

    async def generate(self, request: GenerationRequest) -> GenerationReport:
        """Generates (or edits) images for one request.

        Raises:
            GenerationInputError: If the prompt or options are invalid, or edit
                mode was requested with no previous image.
        """
        prompt = (request.prompt or "").strip()
        if not prompt:
            raise GenerationInputError("Please provide a prompt describing the image to generate.")
        options = validate_options(request.options)

        total_accounts = len(self.scheduler.pool)
        report = GenerationReport(
            success=False,
            edit_mode=request.edit_mode,
            session_id=request.session_id,
            total_accounts=total_accounts,
        )
        if total_accounts == 0:
            report.failure_kind = FailureKind.NO_ACCOUNTS_CONFIGURED
            return report

        references = await self._resolve_references(request)
        history = await self.session_service.history(request.session_id) if request.session_id else []

        image_parts: List[ContentPart] = []
        if references:
            image_parts, report.reference_errors = await self.file_system.load_reference_images(references)
        report.reference_count = len(references)
        contents = build_contents(prompt, image_parts, history)

        tried: Set[str] = set()
        success: Optional[AccountGeneration] = None
        for attempt in range(1, self.max_account_attempts + 1):
            account = self.scheduler.select(exclude=tried)
            if account is None:
                logger.info(f"No more accounts to try after {len(tried)} attempt(s)")
                break
            tried.add(account.email)

            generation = await self._run_account(account, contents, options)
            if generation.success:
                success = generation
                break

            report.failures.append(generation.failure)
            self._dispatch(AccountFailedOver(
                email=account.email,
                reason=generation.failure.reason.value,
                next_attempt=attempt + 1 if attempt < self.max_account_attempts else None,
            ))

        if success is None:
            report.failure_kind = classify_failure(report.failures, total_accounts)
            logger.error(f"Image generation failed: {report.failure_kind.value}, {len(report.failures)} account(s) tried")
            return report

        payload = success.execution.payload
        output_dir = request.output_dir or request.worktree
        report.saved_paths = await self.file_system.save_images(payload.images, output_dir, request.filename)
        await self.file_system.save_last_generated_path(report.saved_paths[0])
        if request.session_id:
            await self.session_service.record_exchange(request.session_id, prompt, payload.candidates)

        report.success = True
        report.account_email = success.email
        report.mime_type = payload.first.mime_type
        report.size_bytes = payload.first.size_bytes
        report.quota = success.quota
        return report
