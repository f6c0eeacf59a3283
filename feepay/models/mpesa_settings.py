"""M-Pesa settings model — Daraja credentials managed by school admins."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from feepay.core.database import Base


class MpesaSettings(Base):
    """Credentials and shortcode used to talk to the Daraja API.

    Only the row flagged ``is_active`` is ever consulted.
    """

    __tablename__ = "mpesa_settings"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    consumer_key: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    consumer_secret: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    business_short_code: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    passkey: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    callback_url: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
    )
    environment: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="sandbox",
        comment="sandbox | production",
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<MpesaSettings(short_code={self.business_short_code!r}, "
            f"environment={self.environment!r}, is_active={self.is_active})>"
        )
