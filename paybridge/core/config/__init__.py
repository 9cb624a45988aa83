"""Configuration module for paybridge.

Provides centralized configuration management with type-safe enums.

Usage:
    from paybridge.core.config import settings, Environment

    if settings.ENVIRONMENT == Environment.PRD:
        ...
"""

from paybridge.core.config.enums import Environment, PaddleEnvironment, PayTabsRegion
from paybridge.core.config.settings import Settings

__all__ = [
    "Settings",
    "Environment",
    "PaddleEnvironment",
    "PayTabsRegion",
    "settings",
]

# Singleton settings instance
settings = Settings()
