"""Configuration package."""

from .settings import (
    GovernanceSettings,
    ModelSettings,
    ObservabilitySettings,
    Settings,
    get_settings,
)

__all__ = [
    "GovernanceSettings",
    "ModelSettings",
    "ObservabilitySettings",
    "Settings",
    "get_settings",
]
