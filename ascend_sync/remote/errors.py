"""Errors raised by the remote store client.

Callers decide whether to retry from the exception type alone:
``NetworkError`` is retryable, everything else is terminal for the attempt.
"""


class RemoteError(Exception):
    """Base class for remote store failures."""

    retryable = False

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NotConfiguredError(RemoteError):
    """Remote access has no URL or API key."""


class NetworkError(RemoteError):
    """Transport failure, timeout, or a transient server-side error."""

    retryable = True


class RemoteValidationError(RemoteError):
    """The backend rejected the request (constraint, permission, bad input)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        details: str | None = None,
    ):
        super().__init__(message, status_code)
        self.code = code
        self.details = details

    def __str__(self) -> str:
        prefix = f"HTTP {self.status_code}" if self.status_code else "Rejected"
        if self.code:
            prefix = f"{prefix} [{self.code}]"
        return f"{prefix}: {self.message}"


def is_network_error(error: BaseException) -> bool:
    """Whether a failed remote call should be queued for retry."""
    return isinstance(error, RemoteError) and error.retryable
