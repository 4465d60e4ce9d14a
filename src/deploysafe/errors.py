"""Exception taxonomy for deploysafe.

Every error raised by this package derives from :class:`DeploySafeError`
so that boundaries which must never raise (the health aggregator) or
must fail closed (the deployment gate) can catch a single type.  Each
error carries a human-readable message and an optional ``details``
mapping which is rendered by :meth:`DeploySafeError.to_dict`.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class DeploySafeError(Exception):
    """Base class for all package-raised errors."""

    kind: str = "error"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        """Return a structured representation suitable for JSON output."""
        payload: Dict[str, Any] = {"kind": self.kind, "error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ConfigurationError(DeploySafeError):
    """A required setting is absent or malformed."""

    kind = "configuration"


class ConnectivityError(DeploySafeError):
    """An endpoint was unreachable, timed out or answered with a non-2xx status."""

    kind = "connectivity"


class IntegrityError(DeploySafeError):
    """A database failed a consistency check or row counts did not match."""

    kind = "integrity"


class FilesystemError(DeploySafeError):
    """A path is missing, unreadable or unwritable."""

    kind = "filesystem"


class ParseError(DeploySafeError):
    """A JSON document or log line could not be parsed or validated."""

    kind = "parse"


class ConfirmationRequiredError(DeploySafeError):
    """A destructive operation was requested without explicit confirmation."""

    kind = "confirmation"


__all__ = [
    "DeploySafeError",
    "ConfigurationError",
    "ConnectivityError",
    "IntegrityError",
    "FilesystemError",
    "ParseError",
    "ConfirmationRequiredError",
]
