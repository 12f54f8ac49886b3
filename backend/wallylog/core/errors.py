"""Error taxonomy shared by the HTTP routes, the dispatch job and the CLI.

Every error carries a human-readable ``message`` (rendered to clients as
``{"error": message}``) and the HTTP status it maps to.
"""

from __future__ import annotations


class WallyLogError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(WallyLogError):
    """A required setting is absent; raised before any network call."""


class ValidationError(WallyLogError):
    status_code = 400


class ConflictError(WallyLogError):
    status_code = 409


class ParseError(WallyLogError):
    """A stored record does not follow the issue body micro-format."""

    status_code = 422


class UpstreamError(WallyLogError):
    """A call to the issue store, mail transport or a content capability failed."""

    status_code = 502

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class AuthError(WallyLogError):
    status_code = 401


class TooManyAttemptsError(AuthError):
    status_code = 429

    def __init__(self, message: str, *, retry_after: int) -> None:
        super().__init__(message)
        self.retry_after = retry_after
