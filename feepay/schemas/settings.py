"""Pydantic schemas for the M-Pesa settings admin endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


def mask_secret(value: Optional[str]) -> Optional[str]:
    """Keep the last four characters of a secret, e.g. ``****abcd``."""
    if not value:
        return value
    if len(value) <= 4:
        return "*" * len(value)
    return "*" * (len(value) - 4) + value[-4:]


class MpesaSettingsUpdate(BaseModel):
    """Request body to create or replace the active settings."""

    consumer_key: str = Field(..., min_length=1, max_length=255)
    consumer_secret: str = Field(..., min_length=1, max_length=255)
    business_short_code: str = Field(..., min_length=1, max_length=20)
    passkey: str = Field(..., min_length=1, max_length=255)
    callback_url: Optional[str] = Field(None, max_length=500)
    environment: str = Field("sandbox", description="sandbox | production")
    is_active: bool = True

    @field_validator("environment")
    @classmethod
    def _check_environment(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in ("sandbox", "production"):
            raise ValueError("environment must be 'sandbox' or 'production'")
        return value


class MpesaSettingsResponse(BaseModel):
    """Stored settings with secrets masked."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    consumer_key: str
    consumer_secret: str
    business_short_code: str
    passkey: str
    callback_url: Optional[str] = None
    environment: str
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    @field_validator("consumer_secret", "passkey")
    @classmethod
    def _mask(cls, value: str) -> str:
        return mask_secret(value)
