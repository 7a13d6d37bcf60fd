"""Constants for the Boxkeeper integration.

Defines the integration domain, the public integration version and storage
identifiers shared across modules.
"""

from typing import Final

# Integration domain used across all modules and service names
DOMAIN: Final[str] = "boxkeeper"

# Public integration version (kept in sync with manifest.json)
INTEGRATION_VERSION: Final[str] = "0.1.0"

# Storage key under which the persisted dataset is saved
STORAGE_KEY: Final[str] = "boxkeeper_store"

# Directions accepted by group swaps
DIRECTION_UP: Final = "up"
DIRECTION_DOWN: Final = "down"
