"""Deposit Relay — turns observed deposits into ISSUE submissions and reports back.

Invariants:
    - One RelayedDeposit row per source event id: redelivered notifications are
      counted as duplicates and never resubmitted once the row left RECEIVED
    - Each deposit gets exactly one coordinator nonce, generated once and persisted
    - Handshake: RECEIVED -> COORDINATOR_SUBMITTED -> COMPLETED | FAILED
    - A row still RECEIVED (submission interrupted) is resumed with its persisted
      nonce by the next redelivery or by reconcile_pending()
    - A wait timeout leaves the row COORDINATOR_SUBMITTED (the intent may still
      execute); reconcile_pending() settles it later from the Operation Record
    - Row transitions for one event id happen under its KeyedLock entry

Design Decisions:
    - Completion tracked in background tasks via CompletionWaiter: handle() returns
      as soon as the submission is acknowledged
    - Rejections before submission (wrong amount, holder not eligible) fail the
      deposit immediately; refunding it is the depositor-facing entry point's job
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, asdict
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select

from fountain.core.domain_types import OperationStatus, RelayStatus, TERMINAL_STATUSES
from fountain.core.errors import (
    ConsensusTimeoutError, ErrorContext, FountainError, ValidationError,
)
from fountain.core.repository_protocols import DepositReporter
from fountain.infrastructure.database import DatabaseSessionManager
from fountain.models.relayed_deposit import RelayedDeposit
from fountain.schemas.deposits import DepositNotification
from fountain.services.completion import CompletionWaiter
from fountain.services.coordinator import Coordinator
from fountain.services.keyed_lock import KeyedLock

logger = logging.getLogger(__name__)

_TERMINAL_VALUES = {s.value for s in TERMINAL_STATUSES}


@dataclass
class RelayStats:
    received: int = 0
    processed: int = 0
    failed: int = 0
    duplicates: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class DepositRelay:
    """Deduplicating bridge from deposit notifications to the Coordinator."""

    def __init__(
        self,
        db_manager: DatabaseSessionManager,
        coordinator: Coordinator,
        waiter: CompletionWaiter,
        reporter: DepositReporter,
        issuance_price: int,
        wait_timeout_seconds: float = 60.0,
    ):
        self.db_manager = db_manager
        self.coordinator = coordinator
        self.waiter = waiter
        self.reporter = reporter
        self.issuance_price = issuance_price
        self.wait_timeout_seconds = wait_timeout_seconds
        self.stats = RelayStats()
        self._locks = KeyedLock()
        self._tracking: set[asyncio.Task] = set()

    # ─── Intake ──────────────────────────────────────────────────

    async def handle(self, notification: DepositNotification | dict) -> dict:
        """Process one notification; returns the relay row as a dict."""
        self.stats.received += 1
        if not isinstance(notification, DepositNotification):
            try:
                notification = DepositNotification.model_validate(notification)
            except PydanticValidationError as e:
                self.stats.failed += 1
                raise ValidationError(
                    f"Invalid deposit notification: {e.error_count()} field error(s)",
                    "notification",
                    ErrorContext(debug_info={"errors": e.errors(include_url=False)}),
                )

        event_id = notification.source_event_id
        async with self._locks.hold(event_id):
            existing = await self.get_deposit(event_id)
            if existing is not None and existing["status"] != RelayStatus.RECEIVED.value:
                self.stats.duplicates += 1
                logger.info(
                    f"Duplicate deposit notification {event_id}",
                    extra={"source_event_id": event_id},
                )
                return {**existing, "duplicate": True}
            if existing is None:
                row = await self._insert(notification, f"relay-{uuid4().hex}")
                logger.info(
                    f"Deposit {event_id} received from {notification.depositor}",
                    extra={
                        "source_event_id": event_id, "holder": notification.depositor,
                        "nonce": row["coordinator_nonce"],
                    },
                )
            else:
                self.stats.duplicates += 1
                row = existing
                logger.warning(
                    f"Deposit {event_id} was never submitted, resuming",
                    extra={"source_event_id": event_id, "nonce": row["coordinator_nonce"]},
                )
            return await self._submit(row)

    async def _submit(self, row: dict) -> dict:
        """Drive a RECEIVED row to COORDINATOR_SUBMITTED (or FAILED).

        Called with the event lock held. Reuses the persisted nonce, so a
        resumed submission lands on the same Operation Record.
        """
        event_id, nonce = row["source_event_id"], row["coordinator_nonce"]
        if row["amount"] != self.issuance_price:
            reason = (
                f"Deposit amount {row['amount']} does not match the "
                f"issuance price {self.issuance_price}"
            )
            return await self._fail(event_id, reason)

        record = await self.coordinator.operations.get(nonce)
        settled = record is not None and record["status"] in _TERMINAL_VALUES
        if not settled:
            try:
                await self.coordinator.submit_issue(row["depositor"], row["amount"], nonce)
            except FountainError as e:
                return await self._fail(event_id, e.message)

        submitted = await self._update(event_id, status=RelayStatus.COORDINATOR_SUBMITTED)
        await self.reporter.acknowledge(event_id, nonce)
        if settled:
            return await self._settle(event_id, record)
        self._track(event_id, nonce)
        return submitted

    async def run(self, source: AsyncIterator[dict]) -> None:
        """Consume a notification stream until it ends."""
        async for raw in source:
            try:
                await self.handle(raw)
            except FountainError as e:
                logger.error(
                    f"Deposit notification rejected: {e.message}",
                    extra={"error_code": e.code},
                )

    # ─── Completion tracking ─────────────────────────────────────

    def _track(self, event_id: str, nonce: str) -> None:
        task = asyncio.create_task(self._await_completion(event_id, nonce))
        self._tracking.add(task)
        task.add_done_callback(self._tracking.discard)

    async def _await_completion(self, event_id: str, nonce: str) -> None:
        try:
            record = await self.waiter.wait_for_terminal(nonce, self.wait_timeout_seconds)
        except ConsensusTimeoutError:
            logger.warning(
                f"Deposit {event_id} still pending after {self.wait_timeout_seconds}s",
                extra={"source_event_id": event_id, "nonce": nonce},
            )
            return
        async with self._locks.hold(event_id):
            row = await self.get_deposit(event_id)
            # reconcile_pending may have settled it meanwhile
            if row["status"] == RelayStatus.COORDINATOR_SUBMITTED.value:
                await self._settle(event_id, record)

    async def _settle(self, event_id: str, record: dict) -> dict:
        if record["status"] == OperationStatus.COMPLETED.value:
            row = await self._update(
                event_id, status=RelayStatus.COMPLETED, result=record["result"],
            )
            self.stats.processed += 1
            await self.reporter.confirm_completed(event_id, record["result"] or {})
            return row
        return await self._fail(event_id, record["error"] or "issuance failed")

    async def reconcile_pending(self) -> int:
        """Resubmit RECEIVED rows and settle COORDINATOR_SUBMITTED rows that finished.

        Returns how many rows moved forward.
        """
        async with self.db_manager.session() as db:
            result = await db.execute(
                select(RelayedDeposit.source_event_id, RelayedDeposit.coordinator_nonce)
                .where(RelayedDeposit.status.in_([
                    RelayStatus.RECEIVED.value,
                    RelayStatus.COORDINATOR_SUBMITTED.value,
                ])),
            )
            pending = result.all()

        moved = 0
        for event_id, nonce in pending:
            async with self._locks.hold(event_id):
                row = await self.get_deposit(event_id)
                if row["status"] == RelayStatus.RECEIVED.value:
                    logger.warning(
                        f"Resubmitting deposit {event_id} left in RECEIVED",
                        extra={"source_event_id": event_id, "nonce": nonce},
                    )
                    await self._submit(row)
                    moved += 1
                    continue
                if row["status"] != RelayStatus.COORDINATOR_SUBMITTED.value:
                    continue
                record = await self.coordinator.operations.get(nonce)
                if record is not None and record["status"] in _TERMINAL_VALUES:
                    await self._settle(event_id, record)
                    moved += 1
        if moved:
            logger.info(f"Reconciled {moved} pending deposit(s)")
        return moved

    async def drain(self) -> None:
        while self._tracking:
            await asyncio.gather(*list(self._tracking), return_exceptions=True)

    async def stop(self) -> None:
        for task in list(self._tracking):
            task.cancel()
        await self.drain()

    # ─── Queries ─────────────────────────────────────────────────

    async def get_deposit(self, source_event_id: str) -> dict | None:
        async with self.db_manager.session() as db:
            row = await db.get(RelayedDeposit, source_event_id)
            return row.to_dict() if row else None

    async def get_stats(self) -> dict:
        async with self.db_manager.session() as db:
            pending = await db.scalar(
                select(func.count()).select_from(RelayedDeposit).where(
                    RelayedDeposit.status.in_([
                        RelayStatus.RECEIVED.value,
                        RelayStatus.COORDINATOR_SUBMITTED.value,
                    ]),
                ),
            )
        return {**self.stats.to_dict(), "pending_handshakes": pending or 0}

    # ─── Persistence ─────────────────────────────────────────────

    async def _insert(self, notification: DepositNotification, nonce: str) -> dict:
        async with self.db_manager.session() as db:
            row = RelayedDeposit(
                source_event_id=notification.source_event_id,
                depositor=notification.depositor,
                amount=notification.amount,
                deposit_tx_id=notification.deposit_tx_id,
                status=RelayStatus.RECEIVED.value,
                coordinator_nonce=nonce,
            )
            db.add(row)
            await db.commit()
            return row.to_dict()

    async def _update(
        self, event_id: str, status: RelayStatus,
        result: dict | None = None, error: str | None = None,
    ) -> dict:
        async with self.db_manager.session() as db:
            row = await db.get(RelayedDeposit, event_id)
            row.status = status.value
            if result is not None:
                row.result_json = result
            row.error = error
            await db.commit()
            return row.to_dict()

    async def _fail(self, event_id: str, reason: str) -> dict:
        row = await self._update(event_id, status=RelayStatus.FAILED, error=reason)
        self.stats.failed += 1
        await self.reporter.report_failure(event_id, reason)
        return row
