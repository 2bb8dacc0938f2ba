"""Credential Routes — holder status and protocol-wide statistics."""

import logging

from fastapi import APIRouter, Depends, Query

from fountain.api.dependencies import get_container
from fountain.services.container import ServiceContainer

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["credentials"])


@router.get("/credentials/{holder}")
async def get_credential(
    holder: str,
    history_limit: int = Query(10, ge=1, le=100),
    container: ServiceContainer = Depends(get_container),
):
    """Stage, quota usage, available actions and recent history."""
    return await container.status.get_credential_status(holder, history_limit)


@router.get("/credentials/{holder}/operations")
async def list_operations(
    holder: str,
    limit: int = Query(20, ge=1, le=100),
    container: ServiceContainer = Depends(get_container),
):
    return await container.operations.list_for_holder(holder, limit)


@router.get("/stats")
async def get_stats(container: ServiceContainer = Depends(get_container)):
    return await container.status.get_protocol_stats()
