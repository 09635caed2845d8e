"""Exceptions raised by the fallback acquisition layer."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

MAX_REPORTED_ERRORS = 3


class FallbackError(Exception):
    """Base class for every failure raised by rvn-fallback."""


class TransportError(FallbackError):
    """A request could not be completed or returned a non-success status."""

    def __init__(self, message: str, url: str = "", status: int | None = None) -> None:
        """Initialize a transport error.

        Args:
            message: Human readable description
            url: The URL that was requested
            status: HTTP status code, if a response was received

        """
        super().__init__(message)
        self.url: str = url
        self.status: int | None = status


class IndexUnavailableError(TransportError):
    """No (mirror, branch) pair yielded a usable binary package index."""

    def __init__(self, attempted: Iterable[str], errors: Iterable[str]) -> None:
        self.attempted: list[str] = list(attempted)
        self.errors: list[str] = list(errors)
        msg = f"Binary fallback unavailable (could not load package index). Tried: {', '.join(self.attempted)}"
        if self.errors:
            msg += f". Errors: {' | '.join(self.errors[:MAX_REPORTED_ERRORS])}"
        super().__init__(msg)


class FormatError(FallbackError, ValueError):
    """Upstream data could not be decoded (bad JSON envelope, bad archive, ...)."""


class RepositoryError(FallbackError):
    """The source repository reported an application-level error."""


class PackageNotFoundError(FallbackError, LookupError):
    """The requested package does not exist in the repository being queried."""


class BuildError(FallbackError):
    """Building a source package failed."""

    def __init__(self, message: str, package: str = "") -> None:
        super().__init__(message)
        self.package: str = package


class FallbackExhaustedError(FallbackError):
    """Every acquisition path failed for a package."""

    def __init__(self, name: str, reasons: Mapping[str, str]) -> None:
        self.name: str = name
        self.reasons: dict[str, str] = dict(reasons)
        details = "; ".join(f"{path}: {reason}" for path, reason in self.reasons.items())
        super().__init__(f"Package '{name}' could not be acquired from any fallback source ({details})")
