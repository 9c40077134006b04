import logging
from typing import Any, List, Optional

from rich.box import HEAVY, ROUNDED, SIMPLE
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from agimage.domain.interfaces.user_interface import UserInterface
from agimage.domain.models.generation import AccountQuotaStatus

logger = logging.getLogger(__name__)

QUOTA_BAR_WIDTH = 20
LOW_QUOTA_PERCENT = 10
MEDIUM_QUOTA_PERCENT = 30


def quota_bar(percent: float, width: int = QUOTA_BAR_WIDTH) -> str:
    """Plain text bar such as ``[#####...............]``."""
    filled = max(0, min(width, round(percent / 100 * width)))
    return "[" + "#" * filled + "." * (width - filled) + "]"


def format_quota(percent: float) -> str:
    if percent <= LOW_QUOTA_PERCENT:
        return f"{percent:.0f}% (low)"
    if percent <= MEDIUM_QUOTA_PERCENT:
        return f"{percent:.0f}% (medium)"
    return f"{percent:.0f}%"


def format_size(size_bytes: int) -> str:
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{round(size_bytes / 1024)} KB"
    return f"{size_bytes / (1024 * 1024):.1f} MB"


def _quota_style(percent: float) -> str:
    if percent <= LOW_QUOTA_PERCENT:
        return "red"
    if percent <= MEDIUM_QUOTA_PERCENT:
        return "yellow"
    return "green"


class ConsoleDisplay(UserInterface):
    """Concrete implementation of UserInterface using the rich library for console output."""

    def __init__(self, console: Optional[Console] = None):
        self._console = console or Console()

    @property
    def console(self) -> Console:
        """Get the Rich console instance for direct operations."""
        return self._console

    def display_output(self, output: str, **kwargs: Any) -> None:
        """Displays a result panel.

        Args:
            output: The text to display.
            **kwargs: ``title`` for the panel header (default: "agimage").
        """
        title = kwargs.get("title", "agimage")
        panel = Panel(
            Text(str(output)),
            title=f"[bold green]{title}[/bold green]",
            title_align="left",
            border_style="green",
            box=ROUNDED,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_error(self, error_message: str, **kwargs: Any) -> None:
        panel = Panel(
            Text(error_message, style="white"),
            title="[bold red]Error[/bold red]",
            border_style="red",
            box=HEAVY,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        panel = Panel(
            Text(info_message, style="white"),
            title="[bold blue]Info[/bold blue]",
            border_style="blue",
            box=SIMPLE,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        logger.warning(f"Display warning: {warning_message}")
        panel = Panel(
            Text(warning_message, style="white"),
            title="[bold yellow]Warning[/bold yellow]",
            border_style="yellow",
            box=HEAVY,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_quota(self, statuses: List[AccountQuotaStatus]) -> None:
        """Displays one row per account with a quota bar and reset time."""
        model_names = {s.quota.model_name for s in statuses if s.quota}
        title = f"Image quota -- {len(statuses)} account(s)"
        if len(model_names) == 1:
            title += f" -- {model_names.pop()}"

        table = Table(title=title, box=ROUNDED, border_style="cyan", padding=(0, 1))
        table.add_column("Account", style="bold")
        table.add_column("Quota")
        table.add_column("Remaining", justify="right")
        table.add_column("Resets in", style="dim")

        for status in statuses:
            account = status.email + (" [rate-limited]" if status.rate_limited else "")
            if status.quota is None:
                table.add_row(Text(account), Text("[error fetching quota]", style="red"), "-", "-")
                continue
            percent = status.quota.remaining_percent
            style = _quota_style(percent)
            table.add_row(
                Text(account),
                Text(quota_bar(percent), style=style),
                Text(f"{percent:.0f}%", style=style),
                status.quota.reset_in,
            )
        self.console.print(table)
