"""Customer model."""

from typing import Optional

from sqlalchemy import Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from paybridge.models._base import Base


class Customer(Base):
    """Mapping between a user and their customer object at one gateway."""

    __tablename__ = "customer"

    # Provider customer id, or the email address for regional gateways
    gateway_customer_id: Mapped[str] = mapped_column(String(255), nullable=False)
    gateway: Mapped[str] = mapped_column(String(20), nullable=False)
    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    provider_metadata: Mapped[dict] = mapped_column(
        "metadata", JSONB, nullable=False, default=dict
    )

    __table_args__ = (
        Index("uq_customer_gateway_customer", "gateway", "gateway_customer_id", unique=True),
    )
