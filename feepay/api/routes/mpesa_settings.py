"""M-Pesa settings admin endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from feepay.core.database import get_db
from feepay.core.logging import get_logger
from feepay.models.mpesa_settings import MpesaSettings
from feepay.schemas.settings import MpesaSettingsResponse, MpesaSettingsUpdate

logger = get_logger(__name__)

router = APIRouter()


def _current(db: Session) -> MpesaSettings | None:
    return db.query(MpesaSettings).order_by(MpesaSettings.created_at.desc()).first()


@router.get("", response_model=MpesaSettingsResponse)
def get_settings(db: Session = Depends(get_db)) -> MpesaSettings:
    """Return the stored settings with secrets masked."""
    row = _current(db)
    if row is None:
        raise HTTPException(status_code=404, detail="M-Pesa settings not found")
    return row


@router.put("", response_model=MpesaSettingsResponse)
def upsert_settings(
    body: MpesaSettingsUpdate,
    db: Session = Depends(get_db),
) -> MpesaSettings:
    """Create the settings row, or overwrite the existing one."""
    row = _current(db)
    if row is None:
        row = MpesaSettings(**body.model_dump())
        db.add(row)
        logger.info("M-Pesa settings created: short_code=%s", body.business_short_code)
    else:
        for name, value in body.model_dump().items():
            setattr(row, name, value)
        logger.info("M-Pesa settings updated: short_code=%s", body.business_short_code)

    db.commit()
    db.refresh(row)
    return row
