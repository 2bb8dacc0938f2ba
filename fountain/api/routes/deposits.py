"""Deposit Routes — deposit notification intake and handshake status.

Invariants:
    - Redelivered notifications (same source_event_id) return the existing row
    - Intake returns 202: issuance completes asynchronously
"""

import logging

from fastapi import APIRouter, Depends, status

from fountain.api.dependencies import get_container
from fountain.schemas.deposits import DepositNotification
from fountain.services.container import ServiceContainer

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/deposits", tags=["deposits"])


@router.post("/notifications", status_code=status.HTTP_202_ACCEPTED)
async def notify_deposit(
    body: DepositNotification,
    container: ServiceContainer = Depends(get_container),
):
    return await container.relay.handle(body)


@router.post("/reconcile")
async def reconcile_deposits(container: ServiceContainer = Depends(get_container)):
    """Settle handshakes whose issuance finished after the relay stopped waiting."""
    return {"settled": await container.relay.reconcile_pending()}


@router.get("/{source_event_id}")
async def get_deposit(
    source_event_id: str,
    container: ServiceContainer = Depends(get_container),
):
    return await container.status.get_deposit_status(source_event_id)
