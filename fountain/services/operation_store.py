"""Operation Store — persistence for per-nonce Operation Records.

Invariants:
    - One row per nonce; status only moves forward
      (SUBMITTED -> EXECUTING -> COMPLETED | FAILED)
    - Terminal rows are never modified again
    - discard() only removes rows still SUBMITTED (append never happened)

Design Decisions:
    - Records returned as plain dicts (Operation.to_dict): safe to hand to the
      completion broker and API layer without detached-instance surprises
    - Per-nonce asyncio lock around get-or-create paths: the submitting task and
      the confirmation consumer may both create the same row
"""

import logging

from sqlalchemy import func, select

from fountain.core.domain_types import (
    OperationStatus, OperationTrigger, TERMINAL_STATUSES,
)
from fountain.core.errors import ConcurrencyError, ErrorContext
from fountain.core.intents import Intent
from fountain.infrastructure.database import DatabaseSessionManager
from fountain.models.operation import Operation
from fountain.services.keyed_lock import KeyedLock

logger = logging.getLogger(__name__)

_TERMINAL_VALUES = {s.value for s in TERMINAL_STATUSES}


class OperationStore:
    """CRUD over the operations table."""

    def __init__(self, db_manager: DatabaseSessionManager):
        self.db_manager = db_manager
        self._locks = KeyedLock()

    async def get(self, nonce: str) -> dict | None:
        async with self.db_manager.session() as db:
            row = await db.get(Operation, nonce)
            return row.to_dict() if row else None

    async def create_submitted(
        self,
        intent: Intent,
        trigger: OperationTrigger = OperationTrigger.CLIENT,
        parent_nonce: str | None = None,
    ) -> dict:
        async with self._locks.hold(intent.nonce):
            async with self.db_manager.session() as db:
                row = self._new_row(intent, OperationStatus.SUBMITTED, trigger, parent_nonce)
                db.add(row)
                await db.commit()
                return row.to_dict()

    async def set_position(self, nonce: str, position: int) -> None:
        async with self.db_manager.session() as db:
            row = await db.get(Operation, nonce)
            if row is not None and row.consensus_position is None:
                row.consensus_position = position
                await db.commit()

    async def discard(self, nonce: str) -> None:
        """Drop a SUBMITTED row whose log append failed."""
        async with self._locks.hold(nonce):
            async with self.db_manager.session() as db:
                row = await db.get(Operation, nonce)
                if row is not None and row.status == OperationStatus.SUBMITTED.value:
                    await db.delete(row)
                    await db.commit()

    async def mark_executing(
        self,
        intent: Intent,
        position: int | None,
        trigger: OperationTrigger = OperationTrigger.CLIENT,
        parent_nonce: str | None = None,
    ) -> dict:
        """Move to EXECUTING, creating the row if another process appended the intent."""
        async with self._locks.hold(intent.nonce):
            async with self.db_manager.session() as db:
                row = await db.get(Operation, intent.nonce)
                if row is None:
                    row = self._new_row(intent, OperationStatus.EXECUTING, trigger, parent_nonce)
                    db.add(row)
                elif row.status != OperationStatus.SUBMITTED.value:
                    raise ConcurrencyError(
                        f"Operation '{intent.nonce}' is already {row.status}",
                        ErrorContext(nonce=intent.nonce, holder=intent.holder),
                    )
                row.status = OperationStatus.EXECUTING.value
                if position is not None:
                    row.consensus_position = position
                await db.commit()
                return row.to_dict()

    async def mark_completed(self, nonce: str, result: dict) -> dict:
        return await self._finish(nonce, OperationStatus.COMPLETED, result=result)

    async def mark_failed(
        self, nonce: str, error: str, error_code: str, result: dict | None = None,
    ) -> dict:
        return await self._finish(
            nonce, OperationStatus.FAILED,
            result=result, error=error, error_code=error_code,
        )

    async def list_for_holder(self, holder: str, limit: int = 20) -> list[dict]:
        async with self.db_manager.session() as db:
            result = await db.execute(
                select(Operation)
                .where(Operation.holder == holder)
                .order_by(Operation.created_at.desc())
                .limit(limit),
            )
            return [row.to_dict() for row in result.scalars()]

    async def count_by_status(self) -> dict[str, int]:
        async with self.db_manager.session() as db:
            result = await db.execute(
                select(Operation.status, func.count()).group_by(Operation.status),
            )
            counts = {status.value: 0 for status in OperationStatus}
            counts.update({status: count for status, count in result.all()})
            return counts

    async def _finish(
        self,
        nonce: str,
        status: OperationStatus,
        result: dict | None = None,
        error: str | None = None,
        error_code: str | None = None,
    ) -> dict:
        async with self.db_manager.session() as db:
            row = await db.get(Operation, nonce)
            if row is None:
                raise ConcurrencyError(
                    f"Operation '{nonce}' vanished before completion",
                    ErrorContext(nonce=nonce),
                )
            if row.status in _TERMINAL_VALUES:
                raise ConcurrencyError(
                    f"Operation '{nonce}' already settled as {row.status}",
                    ErrorContext(nonce=nonce, holder=row.holder),
                )
            row.status = status.value
            row.result_json = result
            row.error = error
            row.error_code = error_code
            await db.commit()
            record = row.to_dict()

        log = logger.info if status == OperationStatus.COMPLETED else logger.warning
        log(
            f"Operation {nonce} {status.value}",
            extra={
                "nonce": nonce, "holder": record["holder"], "op_type": record["type"],
                "status": status.value, "error_code": error_code,
            },
        )
        return record

    @staticmethod
    def _new_row(
        intent: Intent,
        status: OperationStatus,
        trigger: OperationTrigger,
        parent_nonce: str | None,
    ) -> Operation:
        return Operation(
            nonce=intent.nonce,
            type=intent.type,
            holder=intent.holder,
            status=status.value,
            trigger=trigger.value,
            parent_nonce=parent_nonce,
            intent_json=intent.model_dump(mode="json"),
        )
