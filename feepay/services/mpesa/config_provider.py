"""Provider settings lookup.

Services never query the ``mpesa_settings`` table themselves; they are
handed a ``SettingsProvider`` and receive a typed ``MpesaConfig``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from feepay.core.exceptions import ConfigurationError, PersistenceError
from feepay.core.logging import get_logger
from feepay.models.mpesa_settings import MpesaSettings

logger = get_logger(__name__)

SANDBOX_BASE_URL = "https://sandbox.safaricom.co.ke"
PRODUCTION_BASE_URL = "https://api.safaricom.co.ke"


def base_url_for(environment: Optional[str]) -> str:
    """Daraja host for the given environment; anything but production is sandbox."""
    if (environment or "").strip().lower() == "production":
        return PRODUCTION_BASE_URL
    return SANDBOX_BASE_URL


@dataclass(frozen=True)
class MpesaConfig:
    """Credentials and shortcode for one Daraja integration."""

    consumer_key: str
    consumer_secret: str
    business_short_code: str = ""
    passkey: str = ""
    callback_url: Optional[str] = None
    environment: str = "sandbox"

    @property
    def base_url(self) -> str:
        return base_url_for(self.environment)

    @classmethod
    def from_model(cls, row: MpesaSettings) -> MpesaConfig:
        return cls(
            consumer_key=row.consumer_key,
            consumer_secret=row.consumer_secret,
            business_short_code=row.business_short_code,
            passkey=row.passkey,
            callback_url=row.callback_url or None,
            environment=row.environment or "sandbox",
        )


class SettingsProvider(ABC):
    """Source of the currently active M-Pesa configuration."""

    @abstractmethod
    def get_active(self) -> MpesaConfig:
        """Return the active configuration.

        Raises:
            ConfigurationError: If M-Pesa is not configured or inactive.
        """
        pass


class DatabaseSettingsProvider(SettingsProvider):
    """Reads the single active row from ``mpesa_settings``."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_active(self) -> MpesaConfig:
        try:
            row = (
                self.db.query(MpesaSettings)
                .filter(MpesaSettings.is_active.is_(True))
                .order_by(MpesaSettings.created_at.desc())
                .first()
            )
        except SQLAlchemyError as exc:
            logger.error("Failed to load M-Pesa settings: %s", exc)
            raise PersistenceError("Failed to load M-Pesa settings") from exc

        if row is None:
            logger.error("No active M-Pesa settings found")
            raise ConfigurationError("M-Pesa is not configured or inactive")
        return MpesaConfig.from_model(row)
