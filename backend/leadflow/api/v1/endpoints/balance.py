"""
Balance API Endpoints
Prepaid call balance and auto-refill settings
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from leadflow.domain.models.policy import DialerPolicy
from leadflow.domain.services.admission_controller import AdmissionController
from leadflow.api.v1.dependencies import get_admission_controller, get_policy

router = APIRouter(prefix="/balance", tags=["balance"])


class AutoRefillRequest(BaseModel):
    enabled: bool
    amount: Optional[float] = None
    threshold: Optional[float] = None


@router.get("/{account_id}")
async def get_balance(
    account_id: str,
    admission: AdmissionController = Depends(get_admission_controller),
    policy: DialerPolicy = Depends(get_policy)
):
    """Current balance and auto-refill settings (created with defaults on first read)."""
    balance = await admission.get_or_create_balance(account_id)
    return {
        **balance.to_dict(),
        "allowed_refill_amounts": policy.auto_refill_amounts,
    }


@router.put("/{account_id}/auto-refill")
async def update_auto_refill(
    account_id: str,
    request: AutoRefillRequest,
    admission: AdmissionController = Depends(get_admission_controller)
):
    """
    Update auto-refill settings.

    The amount must be one of the allowed tiers (25, 50, 100, 200, 400).
    """
    balance = await admission.configure_auto_refill(
        account_id,
        enabled=request.enabled,
        amount=request.amount,
        threshold=request.threshold,
    )
    return balance.to_dict()
