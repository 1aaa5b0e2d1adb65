"""
API Router
Combines all endpoint routers
"""
from fastapi import APIRouter
from leadflow.api.v1.endpoints import (
    dialer,
    webhooks,
    appointments,
    balance,
    cron,
    health,
)

api_router = APIRouter()

# Session control
api_router.include_router(dialer.router)
api_router.include_router(webhooks.router)

# Revenue & billing
api_router.include_router(appointments.router)
api_router.include_router(balance.router)

# Automation
api_router.include_router(cron.router)
api_router.include_router(health.router)
