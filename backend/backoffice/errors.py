# Overview: Exception taxonomy shared by the access layer and the import pipeline.

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Fatal misconfiguration (cyclic relation table, missing external URL)."""


class ConnectivityError(RuntimeError):
    """The external source could not be reached or a query against it failed."""


class ReadOnlyViolation(RuntimeError):
    """Something other than a SELECT was sent to the external source."""


class ReferentialSkip(Exception):
    """
    An import row points at a reference entity that does not exist locally.

    Raised only under the skip-on-missing policy. The orchestrator counts the
    row as skipped and moves on.
    """

    def __init__(self, row_kind: str, row_key, missing_kind: str, missing_key):
        self.row_kind = row_kind
        self.row_key = row_key
        self.missing_kind = missing_kind
        self.missing_key = missing_key
        super().__init__(
            f"{row_kind} {row_key} skipped: {missing_kind} {missing_key} not found"
        )


class ConcurrencyConflict(RuntimeError):
    """A natural-key insert lost a race and the winning row could not be read back."""


class ImportAlreadyRunning(RuntimeError):
    """Another orchestrator run holds the lease for this import kind."""


class AuthenticationRequired(Exception):
    """No authenticated principal."""


class AccessDenied(Exception):
    """Authenticated, but not allowed to perform the action."""

    def __init__(self, message: str = "Permission denied", required_permission: str | None = None):
        self.required_permission = required_permission
        super().__init__(message)


class NotFound(Exception):
    """The addressed record does not exist."""
