"""
Configuration constants for webchat-driver.

This module contains global constants used across the application
to avoid tight coupling between modules.
"""

# Maximum prompt length accepted by the driver
# Keeps per-character typing (the last injection fallback) within the input wait budgets
MAX_PROMPT_LENGTH = 100_000

# Environment variable naming a user configuration file
CONFIG_ENV_VAR = "WEBCHAT_DRIVER_CONFIG"
