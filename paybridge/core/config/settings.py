"""Application settings.

All values are read from the environment (and an optional ``.env`` file)
by pydantic-settings. Gateway credentials are optional: a gateway whose
credentials are missing is simply reported as not configured.
"""

from typing import Optional

from pydantic import PostgresDsn, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from paybridge.core.config.enums import Environment, PaddleEnvironment, PayTabsRegion


class Settings(BaseSettings):
    """Paybridge settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "Paybridge"
    ENVIRONMENT: Environment = Environment.LOCAL
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    # Public URL of the application, used for checkout redirects
    APP_URL: str = "http://localhost:3000"
    API_URL: str = "http://localhost:8001"

    # -------------------------------------------------------------------------
    # Database
    # -------------------------------------------------------------------------

    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "paybridge"
    POSTGRES_PASSWORD: str = "paybridge"
    POSTGRES_DB: str = "paybridge"
    RUN_ALEMBIC_MIGRATIONS: bool = False

    db_pool_size: int = 10
    db_pool_max_overflow: int = 20

    @computed_field  # type: ignore[prop-decorator]
    @property
    def SQLALCHEMY_ASYNC_DATABASE_URI(self) -> str:  # noqa: N802
        """Async SQLAlchemy URI built from the POSTGRES_* fields."""
        return str(
            PostgresDsn.build(
                scheme="postgresql+asyncpg",
                username=self.POSTGRES_USER,
                password=self.POSTGRES_PASSWORD,
                host=self.POSTGRES_HOST,
                port=self.POSTGRES_PORT,
                path=self.POSTGRES_DB,
            )
        )

    # -------------------------------------------------------------------------
    # Gateway: Stripe
    # -------------------------------------------------------------------------

    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300
    STRIPE_PRICE_PRO_MONTHLY: Optional[str] = None
    STRIPE_PRICE_PRO_YEARLY: Optional[str] = None
    STRIPE_PRICE_TEAM_MONTHLY: Optional[str] = None
    STRIPE_PRICE_TEAM_YEARLY: Optional[str] = None
    STRIPE_PRICE_ENTERPRISE_MONTHLY: Optional[str] = None
    STRIPE_PRICE_ENTERPRISE_YEARLY: Optional[str] = None

    # -------------------------------------------------------------------------
    # Gateway: Paddle
    # -------------------------------------------------------------------------

    PADDLE_API_KEY: Optional[str] = None
    PADDLE_CLIENT_TOKEN: Optional[str] = None
    PADDLE_WEBHOOK_SECRET: Optional[str] = None
    PADDLE_ENVIRONMENT: PaddleEnvironment = PaddleEnvironment.SANDBOX
    PADDLE_PRICE_PRO_MONTHLY: Optional[str] = None
    PADDLE_PRICE_PRO_YEARLY: Optional[str] = None
    PADDLE_PRICE_TEAM_MONTHLY: Optional[str] = None
    PADDLE_PRICE_TEAM_YEARLY: Optional[str] = None
    PADDLE_PRICE_ENTERPRISE_MONTHLY: Optional[str] = None
    PADDLE_PRICE_ENTERPRISE_YEARLY: Optional[str] = None

    # -------------------------------------------------------------------------
    # Gateway: Paymob
    # -------------------------------------------------------------------------

    PAYMOB_SECRET_KEY: Optional[str] = None
    PAYMOB_PUBLIC_KEY: Optional[str] = None
    PAYMOB_HMAC_SECRET: Optional[str] = None
    PAYMOB_INTEGRATION_ID_CARD: Optional[int] = None
    PAYMOB_INTEGRATION_ID_WALLET: Optional[int] = None
    PAYMOB_CURRENCY: str = "EGP"

    # -------------------------------------------------------------------------
    # Gateway: PayTabs
    # -------------------------------------------------------------------------

    PAYTABS_PROFILE_ID: Optional[str] = None
    PAYTABS_SERVER_KEY: Optional[str] = None
    PAYTABS_CLIENT_KEY: Optional[str] = None
    PAYTABS_REGION: PayTabsRegion = PayTabsRegion.ARE

    # -------------------------------------------------------------------------
    # Gateway transport and pricing
    # -------------------------------------------------------------------------

    GATEWAY_HTTP_TIMEOUT_SECONDS: float = 10.0
    PRICE_CONFIG_TTL_SECONDS: int = 300

    # -------------------------------------------------------------------------
    # Webhook ledger
    # -------------------------------------------------------------------------

    WEBHOOK_EVENT_TTL_DAYS: int = 30

    # -------------------------------------------------------------------------
    # Metrics sidecar
    # -------------------------------------------------------------------------

    METRICS_HOST: str = "0.0.0.0"
    METRICS_PORT: int = 9090

    # -------------------------------------------------------------------------
    # Email
    # -------------------------------------------------------------------------

    RESEND_API_KEY: Optional[str] = None
    EMAIL_FROM: str = "Paybridge <billing@paybridge.dev>"

    @property
    def local_development(self) -> bool:
        """True when running on a developer machine."""
        return self.ENVIRONMENT == Environment.LOCAL
