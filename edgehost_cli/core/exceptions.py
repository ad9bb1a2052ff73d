"""Centralized exception hierarchy for the edge host CLI."""

from __future__ import annotations


class EdgeHostError(Exception):
    """Base exception for all edge host CLI errors."""


class IntakeError(EdgeHostError):
    """Raised when the TOML intake file is invalid or cannot be loaded."""


class HostSelectionError(EdgeHostError):
    """Raised when host filters reference unknown entries."""


class NoHostsSelectedError(EdgeHostError):
    """Raised when an operation needs at least one host and the session has none."""


class HostNotFoundError(EdgeHostError, KeyError):
    """Raised when a host key is not present in the configuration session."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Host not found"


class HostStateError(EdgeHostError):
    """Raised when a host record is mutated in a way its lifecycle forbids."""


class InventoryAPIError(EdgeHostError):
    """Raised when the inventory service rejects a request or cannot be reached."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Inventory API error {status_code}: {message}")


__all__ = [
    "EdgeHostError",
    "HostNotFoundError",
    "HostSelectionError",
    "HostStateError",
    "IntakeError",
    "InventoryAPIError",
    "NoHostsSelectedError",
]
