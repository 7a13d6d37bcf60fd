"""Offline tests for exception taxonomy.

Each test constructs an exception and asserts type relationships and message
round-tripping, ensuring ``str(exc)`` equals the provided message.
"""

from __future__ import annotations

import pytest
from custom_components.boxkeeper.exceptions import (
    BoxkeeperError,
    NotFoundError,
    PersistenceError,
    StorageError,
    ValidationError,
)
from homeassistant.exceptions import HomeAssistantError


@pytest.mark.parametrize(
    ("exc_type", "message"),
    [
        (ValidationError, "invalid payload: name is required"),
        (NotFoundError, "item not found"),
        (PersistenceError, "upstream unavailable"),
        (StorageError, "storage failure"),
    ],
)
def test_error_message_and_type(exc_type: type[BoxkeeperError], message: str) -> None:
    exc = exc_type(message)
    assert isinstance(exc, BoxkeeperError)
    assert isinstance(exc, HomeAssistantError)
    assert str(exc) == message


def test_storage_error_is_a_persistence_error() -> None:
    # Gateways catch StorageError where they would catch any PersistenceError
    with pytest.raises(PersistenceError):
        raise StorageError("disk full")
