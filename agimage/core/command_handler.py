"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py), delegates the work to
the application services and turns their results into console output. Every
handler returns True on success so main.py can set the exit code.
"""

import logging
from pathlib import Path
from typing import List, Optional

from agimage.core.services.generation_service import GenerationService
from agimage.core.services.quota_service import QuotaService
from agimage.core.services.session_service import SessionService
from agimage.domain.exceptions import GenerationInputError
from agimage.domain.interfaces.cache import CACHE_LEVELS, CacheService
from agimage.domain.interfaces.user_interface import UserInterface
from agimage.domain.models.generation import (
    AccountFailureReason, FailureKind, GenerationReport, GenerationRequest
)
from agimage.infrastructure.cli.display import format_quota, format_size

logger = logging.getLogger(__name__)


def format_success_report(report: GenerationReport) -> str:
    action = "edited" if report.edit_mode else "generated"
    used = f" (account: {report.account_email})" if report.total_accounts > 1 else ""
    lines = [f"Image {action} successfully!{used}", ""]

    if len(report.saved_paths) == 1:
        lines.append(f"Path: {report.saved_paths[0]}")
        lines.append(f"Size: {format_size(report.size_bytes)}")
    else:
        lines.append(f"Generated {len(report.saved_paths)} variations:")
        lines.extend(f"  {path}" for path in report.saved_paths)
    lines.append(f"Format: {report.mime_type}")

    if report.session_id:
        lines.append(f"Session: {report.session_id}")
    if report.edit_mode:
        lines.append("Edit mode: used last generated image as reference")
    elif report.reference_count:
        lines.append(f"References used: {report.reference_count}")
    if report.quota:
        lines.append("")
        lines.append(f"Quota: {format_quota(report.quota.remaining_percent)} remaining")
    return "\n".join(lines)


def format_failure_report(report: GenerationReport, accounts_paths: Optional[List[Path]] = None) -> str:
    if report.failure_kind is FailureKind.NO_ACCOUNTS_CONFIGURED:
        lines = [
            "No Antigravity account found.",
            "",
            "Please install and configure opencode-antigravity-auth first:",
            "  1. Add 'opencode-antigravity-auth' to your opencode plugins",
            "  2. Authenticate with your Google account",
        ]
        if accounts_paths:
            lines += ["", "Checked paths:"] + [f"  - {p}" for p in accounts_paths]
        return "\n".join(lines)

    headline = {
        FailureKind.NO_ACCOUNTS_AVAILABLE: "No accounts available to try (all are cooling down after rate limits).",
        FailureKind.ALL_RATE_LIMITED: "Every account tried was rate-limited.",
        FailureKind.ALL_CAPACITY_EXHAUSTED: "Every account tried hit a server without capacity.",
        FailureKind.ALL_ACCOUNTS_FAILED: "All accounts tried failed.",
    }.get(report.failure_kind, "Image generation failed.")
    lines = ["Image generation failed.", headline, ""]

    if report.failures:
        lines.append("Accounts tried:")
        lines.extend(f"  - {failure.describe()}" for failure in report.failures)
        lines.append("")

    reasons = {f.reason for f in report.failures}
    lines.append("Possible fixes:")
    if AccountFailureReason.NO_CAPACITY in reasons:
        lines.append("  - 503 errors = Google servers overloaded. Wait 30-60 seconds and try again")
    if AccountFailureReason.RATE_LIMITED in reasons or report.failure_kind is FailureKind.NO_ACCOUNTS_AVAILABLE:
        lines.append("  - Rate-limited: wait a few minutes for quota to reset")
    lines.append("  - If project ID errors, open the Antigravity IDE once with that Google account")
    lines.append("  - Run 'agimage quota' to check account status")
    return "\n".join(lines)


class CommandHandler:
    """Handles incoming commands and delegates to appropriate services."""

    def __init__(
        self,
        generation_service: GenerationService,
        quota_service: QuotaService,
        session_service: SessionService,
        cache_service: CacheService,
        ui: UserInterface,
        accounts_paths: Optional[List[Path]] = None,
    ):
        """Initializes the CommandHandler with required services."""
        self.generation_service = generation_service
        self.quota_service = quota_service
        self.session_service = session_service
        self.cache_service = cache_service
        self.ui = ui
        self.accounts_paths = accounts_paths or []

    async def handle_generate(self, request: GenerationRequest) -> bool:
        """Handles the 'generate' command."""
        logger.info(
            f"Handling 'generate' command (edit_mode={request.edit_mode}, "
            f"references={len(request.reference_paths)}, session={request.session_id})"
        )
        try:
            report = await self.generation_service.generate(request)
        except GenerationInputError as e:
            logger.info(f"Rejected generate request: {e}")
            self.ui.display_error(str(e))
            return False
        except Exception as e:
            logger.error(f"Generate command failed: {e}", exc_info=True)
            self.ui.display_error(f"Image generation failed: {e}")
            return False

        if report.reference_errors:
            self.ui.display_warning(
                "Some reference images could not be loaded:\n"
                + "\n".join(f"  - {e}" for e in report.reference_errors)
            )
        if not report.success:
            self.ui.display_error(format_failure_report(report, self.accounts_paths))
            return False

        self.ui.display_output(format_success_report(report), title="Image edited" if report.edit_mode else "Image generated")
        return True

    async def handle_quota(self) -> bool:
        """Handles the 'quota' command."""
        logger.info("Handling 'quota' command")
        if len(self.quota_service.scheduler.pool) == 0:
            self.ui.display_error(
                "No Antigravity account found.\nPlease configure opencode-antigravity-auth first."
            )
            return False
        try:
            statuses = await self.quota_service.check_all()
        except Exception as e:
            logger.error(f"Quota command failed: {e}", exc_info=True)
            self.ui.display_error(f"Failed to check quota: {e}")
            return False

        self.ui.display_quota(statuses)
        if all(s.quota is None for s in statuses):
            self.ui.display_error("Could not fetch quota information.")
            return False
        return True

    async def handle_sessions_list(self) -> bool:
        logger.info("Handling 'sessions list' command")
        try:
            session_ids = await self.session_service.list()
        except OSError as e:
            logger.error(f"Listing sessions failed: {e}", exc_info=True)
            self.ui.display_error(f"Failed to list sessions: {e}")
            return False
        if not session_ids:
            self.ui.display_info("No sessions found.")
        else:
            self.ui.display_output("\n".join(session_ids), title=f"Sessions ({len(session_ids)})")
        return True

    async def handle_sessions_delete(self, session_id: str) -> bool:
        logger.info(f"Handling 'sessions delete' command for: {session_id}")
        if await self.session_service.delete(session_id):
            self.ui.display_info(f"Session '{session_id}' deleted.")
            return True
        self.ui.display_error(f"Session '{session_id}' not found.")
        return False

    async def handle_clear_cache(self, level: str) -> bool:
        """Handles the 'clear-cache' command."""
        logger.info(f"Handling 'clear-cache' command for level: {level}")
        if level not in CACHE_LEVELS:
            self.ui.display_error(f"Invalid cache level. Choose one of: {', '.join(CACHE_LEVELS)}.")
            return False
        try:
            await self.cache_service.clear(level)
        except Exception as e:
            logger.error(f"Failed to clear cache level '{level}': {e}", exc_info=True)
            self.ui.display_error(f"Failed to clear cache: {e}")
            return False
        self.ui.display_info(f"Cache level '{level}' cleared successfully.")
        return True
