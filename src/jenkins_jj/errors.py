"""Error taxonomy shared by every layer of jj.

Each error carries the process exit code the command layer should use, so the
facade can translate any failure without inspecting its message.
"""

from __future__ import annotations


class JJError(Exception):
    """Base exception for jj errors."""

    exit_code = 1


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
class ConfigurationError(JJError):
    """No usable environment or an invalid setting."""

    exit_code = 2


class NoEnvironmentsConfigured(ConfigurationError):
    """The registry holds no environments at all."""

    def __init__(self) -> None:
        super().__init__(
            "There are no Jenkins environments configured. "
            "Use 'jj set NAME' to add one."
        )


class EnvironmentNotFound(ConfigurationError):
    """A named environment lookup missed."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Jenkins '{name}' is not found")
        self.name = name


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------
class AuthenticationError(JJError):
    """The server rejected the configured credentials."""

    exit_code = 3


class Unauthorized(AuthenticationError):
    pass


class NotFoundError(JJError):
    """A job or build does not exist on the server."""

    exit_code = 4


class NotFound(NotFoundError):
    pass


class JobNotFound(NotFoundError):
    def __init__(self, job: str) -> None:
        super().__init__(f"Job '{job}' is not found")
        self.job = job


class BuildNotFound(NotFoundError):
    pass


class TransientNetworkError(JJError):
    """Connection, DNS or timeout failure; retried by pollers up to a bound."""

    exit_code = 5


class Unreachable(TransientNetworkError):
    pass


class RemoteServerError(JJError):
    """The server answered with a 5xx status."""

    exit_code = 6


class ServerError(RemoteServerError):
    pass


class UnexpectedResponse(JJError):
    """Any other non-2xx status or a response that could not be understood."""


class Unexpected(UnexpectedResponse):
    pass


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------
class ResolutionTimeout(JJError):
    """The queue item was not assigned a build number before the deadline."""

    exit_code = 7


class BuildAborted(JJError):
    """The queue item was cancelled before it started executing."""


class MonitorUnreachable(JJError):
    """The server stopped answering while a build was being followed."""

    exit_code = 5


class MonitorTimeout(JJError):
    """The build did not finish before the monitor deadline."""

    exit_code = 7
