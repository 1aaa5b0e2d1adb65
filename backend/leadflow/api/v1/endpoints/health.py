"""
Health Check Endpoint
"""
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, status

from leadflow.domain.interfaces.store import DialerStore
from leadflow.domain.services.notification_outbox import NotificationOutbox
from leadflow.api.v1.dependencies import get_outbox, get_store

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(
    store: DialerStore = Depends(get_store),
    outbox: NotificationOutbox = Depends(get_outbox)
) -> Dict[str, Any]:
    """Service status with store type and outbox backlog."""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "service": "leadflow-dialer",
        "store": type(store).__name__,
        "outbox_pending": await outbox.pending(),
    }
