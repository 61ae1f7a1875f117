from __future__ import annotations

from typing import Optional


class RosterError(Exception):
    """Base class for roster pipeline errors."""


class NetworkError(RosterError):
    """Unreachable host, transport failure or non-success HTTP status."""

    def __init__(self, message: str, *, url: Optional[str] = None, status_code: int = 0,
                 blocked_by_robots: bool = False) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.blocked_by_robots = blocked_by_robots


class RenderTimeout(RosterError):
    """The dynamic driver exceeded its time budget at some step."""

    def __init__(self, message: str, *, step: Optional[str] = None) -> None:
        super().__init__(message)
        self.step = step


class ExtractionEmpty(RosterError):
    """Zero candidates survived all extraction strategies."""


class PersistenceError(RosterError):
    """A store read or write failed."""


class InvalidTarget(RosterError):
    """Malformed target descriptor (missing or unparsable URL)."""


class ConfigError(RosterError):
    """Configuration or targets file missing or invalid."""
