"""Exception taxonomy for the Boxkeeper integration.

Defines a small hierarchy of exceptions used by gateways, storage and the
services layer. These extend Home Assistant's HomeAssistantError so errors
surfaced through the platform behave consistently.

The collection store itself never raises these for persistence failures or
unknown ids; it converts them into the absence of a state change.
"""

from __future__ import annotations

from homeassistant.exceptions import HomeAssistantError


class BoxkeeperError(HomeAssistantError):
    """Base exception for Boxkeeper-related errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ValidationError(BoxkeeperError):
    """Raised when service input fails validation."""


class NotFoundError(BoxkeeperError):
    """Raised by strict lookups when an id is not present in local state."""


class PersistenceError(BoxkeeperError):
    """Raised by a gateway when a single upsert or remove call fails."""


class StorageError(PersistenceError):
    """Raised when storage operations fail or data is corrupted."""
