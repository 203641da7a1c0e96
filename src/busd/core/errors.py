"""Daemon exceptions.

These stay inside a component. Where a failure has to cross a collaborator
seam (context construction, address parsing, address announcement) it is
reported through ``busd.error.BusError`` instead.
"""

from __future__ import annotations


class BusdError(Exception):
    """Base for daemon errors."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, object] | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}
        self.original_error = original_error


class ConfigurationError(BusdError):
    """Bus configuration failed validation."""


class UsageError(BusdError):
    """Command line could not be turned into daemon options."""

    def __init__(
        self,
        message: str,
        *,
        show_usage: bool = False,
        code: str | None = None,
        details: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message, code=code, details=details)
        self.show_usage = show_usage


class UsageRequested(UsageError):
    """--help, -h or -?."""

    def __init__(self) -> None:
        super().__init__("", show_usage=True, code="help_requested")


class VersionRequested(BusdError):
    """--version."""

    def __init__(self) -> None:
        super().__init__("", code="version_requested")
