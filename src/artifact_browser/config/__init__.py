"""Configuration management for ArtifactBrowser."""

from .settings import (
    BrowserConfig,
    ConfigManager,
    DisplayConfig,
    PreprocConfig,
    SelectionConfig,
)

__all__ = [
    "BrowserConfig",
    "DisplayConfig",
    "SelectionConfig",
    "PreprocConfig",
    "ConfigManager",
]
