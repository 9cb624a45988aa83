"""Configuration enums for type-safe settings.

These enums provide type safety and IDE autocomplete for configuration values.
They inherit from str to maintain JSON serialization compatibility.
"""

from enum import Enum


class Environment(str, Enum):
    """Deployment environments.

    Controls environment-specific behavior like log formatting and
    which gateway sandbox hosts are used by default.
    """

    LOCAL = "local"
    TEST = "test"
    DEV = "dev"
    PRD = "prd"


class PaddleEnvironment(str, Enum):
    """Paddle Billing API environments."""

    SANDBOX = "sandbox"
    PRODUCTION = "production"


class PayTabsRegion(str, Enum):
    """PayTabs merchant regions.

    Each region has its own API host and settlement currency.
    """

    ARE = "ARE"
    SAU = "SAU"
    EGY = "EGY"
    OMN = "OMN"
    JOR = "JOR"
    BHR = "BHR"
    GLOBAL = "GLOBAL"
