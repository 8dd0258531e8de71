"""Error taxonomy shared by the analysis components and the tool boundary."""

from __future__ import annotations

from typing import Dict, Optional


class EngineError(Exception):
    """Base class for errors that are relayed to the caller as ``{"error": ...}``."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Dict[str, str]:
        return {"error": self.message}


class InvalidQuery(EngineError):
    """Caller-supplied parameters are unusable; fixable by adjusting the input."""


class NotFound(EngineError):
    """A referenced place, region or facility does not exist in the dataset."""

    def __init__(self, identifier: str, message: Optional[str] = None) -> None:
        super().__init__(message or f'"{identifier}" was not found.')
        self.identifier = identifier


class RateLimited(EngineError):
    def __init__(self, message: str = "Too many requests. Please wait a moment and try again.") -> None:
        super().__init__(message)
