"""
Appointments API Endpoints
Appointment outcome changes and their revenue-ledger effects
"""
from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel

from leadflow.domain.services.notification_outbox import NotificationOutbox
from leadflow.domain.services.revenue_reconciliation import (
    ReconciliationResult,
    RevenueReconciliationService,
)
from leadflow.api.v1.dependencies import get_outbox, get_revenue_service

router = APIRouter(prefix="/appointments", tags=["appointments"])


class SoldRequest(BaseModel):
    monthly_payment: float


class RescheduleRequest(BaseModel):
    scheduled_at: datetime


def _response(result: ReconciliationResult) -> dict:
    return result.model_dump(mode="json")


@router.post("/{account_id}/{appointment_id}/sold")
async def mark_sold(
    account_id: str,
    appointment_id: str,
    request: SoldRequest,
    background_tasks: BackgroundTasks,
    revenue: RevenueReconciliationService = Depends(get_revenue_service),
    outbox: NotificationOutbox = Depends(get_outbox)
):
    """Record a sale at a monthly payment; revenue is booked annualized."""
    result = await revenue.mark_sold(account_id, appointment_id, request.monthly_payment)
    background_tasks.add_task(outbox.drain)
    return _response(result)


@router.post("/{account_id}/{appointment_id}/completed")
async def mark_completed(
    account_id: str,
    appointment_id: str,
    background_tasks: BackgroundTasks,
    revenue: RevenueReconciliationService = Depends(get_revenue_service),
    outbox: NotificationOutbox = Depends(get_outbox)
):
    result = await revenue.mark_completed(account_id, appointment_id)
    background_tasks.add_task(outbox.drain)
    return _response(result)


@router.post("/{account_id}/{appointment_id}/no-show")
async def mark_no_show(
    account_id: str,
    appointment_id: str,
    background_tasks: BackgroundTasks,
    revenue: RevenueReconciliationService = Depends(get_revenue_service),
    outbox: NotificationOutbox = Depends(get_outbox)
):
    result = await revenue.mark_no_show(account_id, appointment_id)
    background_tasks.add_task(outbox.drain)
    return _response(result)


@router.post("/{account_id}/{appointment_id}/cancel")
async def cancel_sale(
    account_id: str,
    appointment_id: str,
    background_tasks: BackgroundTasks,
    revenue: RevenueReconciliationService = Depends(get_revenue_service),
    outbox: NotificationOutbox = Depends(get_outbox)
):
    result = await revenue.cancel_sale(account_id, appointment_id)
    background_tasks.add_task(outbox.drain)
    return _response(result)


@router.post("/{account_id}/{appointment_id}/reschedule")
async def reschedule(
    account_id: str,
    appointment_id: str,
    request: RescheduleRequest,
    background_tasks: BackgroundTasks,
    revenue: RevenueReconciliationService = Depends(get_revenue_service),
    outbox: NotificationOutbox = Depends(get_outbox)
):
    result = await revenue.reschedule(account_id, appointment_id, request.scheduled_at)
    background_tasks.add_task(outbox.drain)
    return _response(result)
