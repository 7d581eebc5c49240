"""
Configuration package for webchat-driver.

Package defaults ship in defaults.yaml; load_config() merges user overrides
on top and validates the result.
"""

from webchat_driver.config.loader import load_config
from webchat_driver.config.schema import (
    BrowserSettings,
    DriverConfig,
    SelectorSettings,
    TimingSettings,
)

__all__ = [
    "BrowserSettings",
    "DriverConfig",
    "SelectorSettings",
    "TimingSettings",
    "load_config",
]
