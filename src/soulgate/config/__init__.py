"""Configuration module for SoulGate."""

from .settings import (
    DatabaseSettings,
    ObservabilitySettings,
    Settings,
    WhitelistSettings,
    get_settings,
)

__all__ = [
    "DatabaseSettings",
    "ObservabilitySettings",
    "Settings",
    "WhitelistSettings",
    "get_settings",
]
