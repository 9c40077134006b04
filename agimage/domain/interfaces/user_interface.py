"""Interface for interacting with the user (output only).

Defines the contract for displaying results, errors, warnings and quota
reports, allowing different UI implementations (console, plain text).
"""

import abc
from typing import Any, List

from agimage.domain.models.generation import AccountQuotaStatus


class UserInterface(abc.ABC):
    """Abstract Base Class for user interaction."""

    @abc.abstractmethod
    def display_output(self, output: str, **kwargs: Any) -> None:
        """Displays standard output to the user.

        Args:
            output: The text to display.
            **kwargs: Additional arguments for formatting (e.g., title, style).
        """
        pass

    @abc.abstractmethod
    def display_error(self, error_message: str, **kwargs: Any) -> None:
        pass

    @abc.abstractmethod
    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        pass

    @abc.abstractmethod
    def display_info(self, info_message: str, **kwargs: Any) -> None:
        pass

    @abc.abstractmethod
    def display_quota(self, statuses: List[AccountQuotaStatus]) -> None:
        """Displays per-account quota with progress bars."""
        pass
