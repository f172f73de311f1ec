from __future__ import annotations


class UptimeKeeperError(Exception):
    """Base class for errors raised by uptime_keeper."""


class RegistryError(UptimeKeeperError):
    """A registry operation failed in the underlying storage."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"registry {operation} failed: {message}")
        self.operation = operation
