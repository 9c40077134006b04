"""Exception types raised by adapters and services.

The resilience layer never raises for HTTP outcomes; these are for the
collaborators around it (auth, project lookup, file I/O, bad input).
"""


class AgImageError(Exception):
    """Base class for all agimage errors."""


class AuthError(AgImageError):
    """Exchanging a refresh token for an access token failed."""

    def __init__(self, message: str, status_code: int = 0):
        self.status_code = status_code
        super().__init__(message)


class BackendError(AgImageError):
    """A CloudCode metadata call (project lookup, model listing) failed."""

    def __init__(self, operation: str, status_code: int = 0, detail: str = ""):
        self.operation = operation
        self.status_code = status_code
        message = f"{operation} failed ({status_code})" if status_code else f"{operation} failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ProjectResolutionError(AgImageError):
    """No project id could be determined for an account."""


class ReferenceImageError(AgImageError):
    """A reference image could not be loaded."""


class GenerationInputError(AgImageError):
    """The caller's request is invalid (empty prompt, bad option, nothing to edit)."""


class ConfigurationError(AgImageError):
    """Configuration is missing or malformed."""
