"""Service layer helpers (settings and configuration)."""

from .settings import DisplaySettings, RoleLabels, Settings, ToolSettings

__all__ = [
    "Settings",
    "RoleLabels",
    "DisplaySettings",
    "ToolSettings",
]
