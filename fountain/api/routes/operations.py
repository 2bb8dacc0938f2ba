"""Operation Routes — submit intents and poll Operation Records.

Invariants:
    - POST returns 202 once the intent is on the consensus log (execution is async)
    - A nonce that already completed returns 200 with the cached result
    - GET /{nonce} is read-only and 404s on unknown nonces
"""

import logging

from fastapi import APIRouter, Depends, Response, status

from fountain.api.dependencies import get_container
from fountain.schemas.operations import (
    AccrueRequest, IssueRequest, SubmissionReceipt, TerminateRequest,
)
from fountain.services.container import ServiceContainer

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/operations", tags=["operations"])


def _respond(receipt: dict, response: Response) -> SubmissionReceipt:
    if receipt["status"] == "COMPLETED":
        response.status_code = status.HTTP_200_OK
    return SubmissionReceipt(**receipt)


@router.post(
    "/issue", response_model=SubmissionReceipt, status_code=status.HTTP_202_ACCEPTED,
)
async def submit_issue(
    body: IssueRequest, response: Response,
    container: ServiceContainer = Depends(get_container),
):
    receipt = await container.coordinator.submit_issue(
        body.holder, body.deposit_amount, body.nonce,
    )
    return _respond(receipt, response)


@router.post(
    "/accrue", response_model=SubmissionReceipt, status_code=status.HTTP_202_ACCEPTED,
)
async def submit_accrue(
    body: AccrueRequest, response: Response,
    container: ServiceContainer = Depends(get_container),
):
    receipt = await container.coordinator.submit_accrue(
        body.holder, body.amount, body.nonce,
    )
    return _respond(receipt, response)


@router.post(
    "/terminate", response_model=SubmissionReceipt, status_code=status.HTTP_202_ACCEPTED,
)
async def submit_terminate(
    body: TerminateRequest, response: Response,
    container: ServiceContainer = Depends(get_container),
):
    receipt = await container.coordinator.submit_terminate(body.holder, body.nonce)
    return _respond(receipt, response)


@router.get("/{nonce}")
async def get_operation(
    nonce: str, container: ServiceContainer = Depends(get_container),
):
    return await container.status.get_operation_status(nonce)
