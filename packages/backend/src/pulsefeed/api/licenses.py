"""Licenses API: purchase a key, check a key's status.

Status never errors. Anything that goes wrong while checking a key answers
{"active": false}.
"""

from datetime import datetime
from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from pulsefeed.api.deps import get_license_service
from pulsefeed.services.license_service import InvalidTierError, LicenseService

logger = structlog.get_logger()
router = APIRouter(prefix="/license")


# ─── Schemas ─────────────────────────────────────────────


class LicensePurchase(BaseModel):
    # Any JSON value; the service rejects anything but a known tier name
    tier: Optional[Any] = None


class LicensePurchaseRead(BaseModel):
    license_key: str = Field(alias="licenseKey")
    tier: str
    expires_at: datetime = Field(alias="expiresAt")

    model_config = {"populate_by_name": True}


class LicenseStatusRead(BaseModel):
    active: bool
    tier: Optional[str] = None
    expires_at: Optional[datetime] = Field(default=None, alias="expiresAt")

    model_config = {"populate_by_name": True}


# ─── Routes ──────────────────────────────────────────────


@router.post("/purchase", response_model=LicensePurchaseRead)
async def purchase_license(
    body: Optional[LicensePurchase] = None,
    service: LicenseService = Depends(get_license_service),
):
    try:
        lic = await service.purchase(body.tier if body else None)
    except InvalidTierError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("license.purchase_failed", error=str(e))
        return JSONResponse(status_code=500, content={"error": "Failed to purchase license"})
    return LicensePurchaseRead(
        license_key=lic.license_key,
        tier=lic.tier,
        expires_at=lic.expires_at,
    )


@router.get(
    "/status",
    response_model=LicenseStatusRead,
    response_model_exclude_none=True,
)
async def license_status(
    key: Optional[str] = None,
    service: LicenseService = Depends(get_license_service),
):
    try:
        status = await service.status(key)
    except Exception as e:
        logger.error("license.status_failed", error=str(e))
        return LicenseStatusRead(active=False)
    return LicenseStatusRead(**status)
