"""Main entry point for the agimage application.

Sets up the Typer CLI application, performs dependency injection (Composition
Root), defines CLI commands, and delegates execution to the CommandHandler.
Dependencies are built on first use so that commands can be tested with a
patched ``get_dependencies``.
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Annotated, Any, Coroutine, Dict, List, Optional

import typer

# --- Core Layer ---
from agimage.core.command_handler import CommandHandler
from agimage.core.services.generation_service import GenerationService
from agimage.core.services.project_resolver import ProjectResolver
from agimage.core.services.quota_service import QuotaService
from agimage.core.services.session_service import SessionService

# --- Domain Layer ---
from agimage.domain.models.account import AccountPool, AccountsConfig
from agimage.domain.models.common import FilePath, PromptText, SessionId
from agimage.domain.models.generation import GenerationRequest, ImageGenerationOptions

# --- Infrastructure Layer ---
from agimage.infrastructure.api.cloudcode_client import CloudCodeClient
from agimage.infrastructure.cache.caching_service import CachingServiceImpl
from agimage.infrastructure.cli.display import ConsoleDisplay
from agimage.infrastructure.config.settings import (
    get_accounts_paths, get_cache_dir, get_config, get_default_image_model,
    get_executor_settings, get_max_account_attempts, get_metadata_base_url,
    get_oauth_client, get_scheduler_settings, get_sessions_subdir, get_state_file,
    load_configuration
)
from agimage.infrastructure.filesystem.local_fs import LocalFileSystem
from agimage.infrastructure.monitoring.logger_setup import DEFAULT_LOG_FORMAT, parse_log_level, setup_logging
from agimage.infrastructure.persistence.account_store import JsonAccountStore
from agimage.infrastructure.persistence.session_store import JsonSessionStore
from agimage.infrastructure.resilience.account_scheduler import AccountScheduler
from agimage.infrastructure.resilience.request_executor import ResilientRequestExecutor

logger = logging.getLogger(__name__)

# Set by the app callback before any command runs
_options: Dict[str, Any] = {"worktree": None, "verbose": False}
_dependencies: Dict[str, Any] = {}


# --- Dependency Injection Container (Manual) ---

def create_dependencies(worktree: Path, verbose: bool = False) -> Dict[str, Any]:
    """Creates and wires up all dependencies for the application.

    This acts as the Composition Root.
    """
    load_configuration()
    log_level = logging.DEBUG if verbose else parse_log_level(get_config('logging.level'))
    setup_logging(
        log_level=log_level,
        log_format=get_config('logging.format', DEFAULT_LOG_FORMAT),
        log_file=get_config('logging.file'),
    )
    logger.info(f"Initializing application dependencies (worktree: {worktree})")

    dependencies: Dict[str, Any] = {}
    dependencies['ui'] = ConsoleDisplay()
    dependencies['cache_service'] = CachingServiceImpl(l2_dir=get_cache_dir())
    dependencies['file_system'] = LocalFileSystem(state_file=get_state_file())

    # Accounts and the scheduler that owns them
    accounts_paths = get_accounts_paths()
    dependencies['account_store'] = JsonAccountStore(accounts_paths)
    accounts_config = dependencies['account_store'].load() or AccountsConfig()
    dependencies['scheduler'] = AccountScheduler(AccountPool(accounts_config), get_scheduler_settings())

    # Backend and resilience
    executor_settings = get_executor_settings()
    dependencies['backend'] = CloudCodeClient(
        oauth=get_oauth_client(),
        metadata_base_url=get_metadata_base_url(),
        attempt_timeout_s=executor_settings.attempt_timeout_s,
    )
    dependencies['executor'] = ResilientRequestExecutor(dependencies['backend'], executor_settings)

    # Core services
    dependencies['session_service'] = SessionService(JsonSessionStore(worktree / get_sessions_subdir()))
    dependencies['project_resolver'] = ProjectResolver(dependencies['backend'], dependencies['cache_service'])
    dependencies['quota_service'] = QuotaService(
        backend=dependencies['backend'],
        scheduler=dependencies['scheduler'],
        project_resolver=dependencies['project_resolver'],
        default_model=get_default_image_model(),
    )
    dependencies['generation_service'] = GenerationService(
        backend=dependencies['backend'],
        scheduler=dependencies['scheduler'],
        executor=dependencies['executor'],
        account_store=dependencies['account_store'],
        file_system=dependencies['file_system'],
        session_service=dependencies['session_service'],
        project_resolver=dependencies['project_resolver'],
        quota_service=dependencies['quota_service'],
        max_account_attempts=get_max_account_attempts(),
    )

    dependencies['command_handler'] = CommandHandler(
        generation_service=dependencies['generation_service'],
        quota_service=dependencies['quota_service'],
        session_service=dependencies['session_service'],
        cache_service=dependencies['cache_service'],
        ui=dependencies['ui'],
        accounts_paths=accounts_paths,
    )
    logger.info("All dependencies initialized successfully.")
    return dependencies


def get_dependencies() -> Dict[str, Any]:
    """Returns the wired dependencies, creating them on first use."""
    if not _dependencies:
        worktree = _options["worktree"] or Path.cwd()
        _dependencies.update(create_dependencies(Path(worktree), _options["verbose"]))
    return _dependencies


# --- Typer App Definition ---
app = typer.Typer(
    name="agimage",
    help="agimage: generate and edit images with Gemini image models across several Antigravity accounts.",
    add_completion=False,
)
sessions_app = typer.Typer(help="Manage multi-turn generation sessions.")
app.add_typer(sessions_app, name="sessions")


# --- Helper for Running Async Commands ---
def run_async(coro: Coroutine[Any, Any, bool], dependencies: Dict[str, Any]) -> bool:
    """Runs an async handler and closes the HTTP client on the same loop."""

    async def runner() -> bool:
        try:
            return await coro
        finally:
            backend = dependencies.get('backend')
            if backend is not None:
                await backend.aclose()

    return asyncio.run(runner())


def _finish(ok: bool) -> None:
    if not ok:
        raise typer.Exit(code=1)


def parse_extra_options(values: Optional[List[str]]) -> Dict[str, Any]:
    """Turns ``key=value`` pairs into imageConfig extras; values are JSON when they parse."""
    extra: Dict[str, Any] = {}
    for item in values or []:
        key, sep, raw = item.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"Expected key=value, got '{item}'", param_hint="--option")
        try:
            extra[key.strip()] = json.loads(raw)
        except ValueError:
            extra[key.strip()] = raw
    return extra


# --- CLI Commands ---

@app.command()
def generate(
    prompt: Annotated[str, typer.Argument(help="Text description of the image to generate.")],
    filename: Annotated[Optional[str], typer.Option("--filename", "-f", help="Output filename (default: generated_<timestamp>.<ext>).")] = None,
    output_dir: Annotated[Optional[Path], typer.Option("--output-dir", "-o", help="Directory for the image (default: the worktree).")] = None,
    aspect_ratio: Annotated[Optional[str], typer.Option("--aspect-ratio", "-a", help="1:1, 2:3, 3:2, 3:4, 4:3, 4:5, 5:4, 9:16, 16:9 or 21:9.")] = None,
    image_size: Annotated[Optional[str], typer.Option("--size", "-s", help="Output resolution: 1K, 2K or 4K.")] = None,
    count: Annotated[int, typer.Option("--count", "-n", min=1, max=4, help="Number of variations (1-4).")] = 1,
    references: Annotated[Optional[List[Path]], typer.Option("--reference", "-r", help="Reference image (repeatable, max 10).")] = None,
    edit_mode: Annotated[bool, typer.Option("--edit", "-e", help="Use the last generated image as the first reference.")] = False,
    session_id: Annotated[Optional[str], typer.Option("--session", "-S", help="Session id for multi-turn generation.")] = None,
    extra_options: Annotated[Optional[List[str]], typer.Option("--option", help="Extra imageConfig entry as key=value (repeatable).")] = None,
):
    """Generate (or edit) an image."""
    options = ImageGenerationOptions(
        aspect_ratio=aspect_ratio,
        image_size=image_size,
        count=count,
        extra=parse_extra_options(extra_options),
    )
    deps = get_dependencies()
    worktree = _options["worktree"] or Path.cwd()
    request = GenerationRequest(
        prompt=PromptText(prompt),
        worktree=FilePath(str(worktree)),
        filename=filename,
        output_dir=FilePath(str(output_dir)) if output_dir else None,
        options=options,
        reference_paths=[FilePath(str(p)) for p in references or []],
        edit_mode=edit_mode,
        session_id=SessionId(session_id) if session_id else None,
    )
    handler: CommandHandler = deps['command_handler']
    _finish(run_async(handler.handle_generate(request), deps))


@app.command()
def quota():
    """Show image model quota for every configured account."""
    deps = get_dependencies()
    handler: CommandHandler = deps['command_handler']
    _finish(run_async(handler.handle_quota(), deps))


@sessions_app.command("list")
def sessions_list():
    """List stored sessions in the worktree."""
    deps = get_dependencies()
    handler: CommandHandler = deps['command_handler']
    _finish(run_async(handler.handle_sessions_list(), deps))


@sessions_app.command("delete")
def sessions_delete(
    session_id: Annotated[str, typer.Argument(help="Session id to delete.")],
):
    """Delete a stored session."""
    deps = get_dependencies()
    handler: CommandHandler = deps['command_handler']
    _finish(run_async(handler.handle_sessions_delete(session_id), deps))


@app.command(name="clear-cache")
def clear_cache_command(
    level: Annotated[str, typer.Option(help="Level ('l1', 'l2', 'all').")] = 'all'
):
    """Clears the application cache (cached project ids)."""
    deps = get_dependencies()
    handler: CommandHandler = deps['command_handler']
    _finish(run_async(handler.handle_clear_cache(level), deps))


@app.callback()
def main_callback(
    worktree: Annotated[Optional[Path], typer.Option("--worktree", "-w", help="Project directory for sessions and default output (default: cwd).")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")] = False,
):
    """Generate images through Antigravity accounts with automatic failover."""
    _options["worktree"] = worktree.resolve() if worktree else None
    _options["verbose"] = verbose


# --- Main Execution Guard ---

def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    try:
        app()
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    cli_entry_point()
