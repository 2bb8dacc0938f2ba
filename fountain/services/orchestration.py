"""Membership Orchestrator — submit-and-wait flows with one aggregated result.

Invariants:
    - Every flow returns a FlowResult; domain errors never escape as exceptions
    - status is the Operation Record status, or REJECTED (pre-submission) / TIMED_OUT
    - A timeout leaves the submitted intent in flight; the nonce stays pollable
"""

import logging
from collections.abc import Awaitable
from dataclasses import dataclass, asdict

from fountain.core.domain_types import OperationStatus, RelayStatus
from fountain.core.errors import ConsensusTimeoutError, FountainError
from fountain.schemas.deposits import DepositNotification
from fountain.services.completion import CompletionWaiter
from fountain.services.coordinator import Coordinator
from fountain.services.deposit_relay import DepositRelay

logger = logging.getLogger(__name__)

REJECTED = "REJECTED"
TIMED_OUT = "TIMED_OUT"


@dataclass
class FlowResult:
    success: bool
    nonce: str | None
    status: str
    result: dict | None = None
    error: str | None = None
    error_code: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


class MembershipOrchestrator:
    """End-to-end helper used by scripts, demos and integration tests."""

    def __init__(
        self,
        coordinator: Coordinator,
        relay: DepositRelay,
        waiter: CompletionWaiter,
        timeout_seconds: float = 30.0,
    ):
        self.coordinator = coordinator
        self.relay = relay
        self.waiter = waiter
        self.timeout_seconds = timeout_seconds

    async def issue_and_wait(
        self, holder: str, deposit_amount: int, nonce: str, timeout: float | None = None,
    ) -> FlowResult:
        return await self._submit_and_wait(
            nonce, self.coordinator.submit_issue(holder, deposit_amount, nonce), timeout,
        )

    async def accrue_and_wait(
        self, holder: str, amount: int, nonce: str, timeout: float | None = None,
    ) -> FlowResult:
        return await self._submit_and_wait(
            nonce, self.coordinator.submit_accrue(holder, amount, nonce), timeout,
        )

    async def terminate_and_wait(
        self, holder: str, nonce: str, timeout: float | None = None,
    ) -> FlowResult:
        return await self._submit_and_wait(
            nonce, self.coordinator.submit_terminate(holder, nonce), timeout,
        )

    async def deposit_and_wait(
        self, notification: DepositNotification | dict, timeout: float | None = None,
    ) -> FlowResult:
        """Relay a deposit and wait for the resulting issuance."""
        try:
            row = await self.relay.handle(notification)
        except FountainError as e:
            return FlowResult(False, None, REJECTED, error=e.message, error_code=e.code)

        nonce = row["coordinator_nonce"]
        if row["status"] == RelayStatus.FAILED.value:
            return FlowResult(False, nonce, REJECTED, error=row["error"])
        return await self._wait(nonce, timeout)

    async def _submit_and_wait(
        self, nonce: str, submission: Awaitable[dict], timeout: float | None,
    ) -> FlowResult:
        try:
            receipt = await submission
        except FountainError as e:
            logger.info(
                f"Flow {nonce} rejected: {e.message}",
                extra={"nonce": nonce, "error_code": e.code},
            )
            return FlowResult(False, nonce, REJECTED, error=e.message, error_code=e.code)

        if receipt["status"] == OperationStatus.COMPLETED.value:
            return FlowResult(True, nonce, receipt["status"], result=receipt.get("result"))
        return await self._wait(nonce, timeout)

    async def _wait(self, nonce: str, timeout: float | None) -> FlowResult:
        try:
            record = await self.waiter.wait_for_terminal(
                nonce, timeout if timeout is not None else self.timeout_seconds,
            )
        except ConsensusTimeoutError as e:
            return FlowResult(False, nonce, TIMED_OUT, error=e.message, error_code=e.code)
        return FlowResult(
            success=record["status"] == OperationStatus.COMPLETED.value,
            nonce=nonce,
            status=record["status"],
            result=record["result"],
            error=record["error"],
            error_code=record["error_code"],
        )
