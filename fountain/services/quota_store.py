"""Quota Store — persistent credential state, quota counters and append-only history.

Invariants:
    - Sole writer of credentials, accrual_events and termination_events
    - Every mutation is one DB transaction: counters and history row commit together
    - Per-holder mutations serialized (KeyedLock + SELECT ... FOR UPDATE)
    - remaining_quota + total_accrued == max_quota after every commit
    - Archived rows: active=False, counters zeroed, lifecycle_count incremented

Design Decisions:
    - Returns CredentialSnapshot, never ORM rows: callers cannot mutate state by accident
    - History inserts take the caller's session so they join the counter update transaction
    - FOR UPDATE is a no-op on SQLite; the asyncio lock covers single-process runs
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fountain.core.credential_state import CredentialSnapshot
from fountain.core.errors import (
    ErrorContext, NotEligibleError, QuotaExceededError, ValidationError,
)
from fountain.infrastructure.database import DatabaseSessionManager
from fountain.models.accrual_event import AccrualEvent
from fountain.models.credential import Credential
from fountain.models.termination_event import TerminationEvent
from fountain.services.keyed_lock import KeyedLock

logger = logging.getLogger(__name__)


class QuotaStore:
    """Credential and quota bookkeeping backed by SQLAlchemy."""

    def __init__(self, db_manager: DatabaseSessionManager):
        self.db_manager = db_manager
        self._locks = KeyedLock()

    # ─── Reads ───────────────────────────────────────────────────

    async def get_credential(self, holder: str) -> CredentialSnapshot | None:
        async with self.db_manager.session() as db:
            row = await db.get(Credential, holder)
            return row.snapshot() if row else None

    async def accrual_history(self, holder: str, limit: int = 20) -> list[dict]:
        """Most recent accruals first."""
        async with self.db_manager.session() as db:
            result = await db.execute(
                select(AccrualEvent)
                .where(AccrualEvent.holder == holder)
                .order_by(AccrualEvent.occurred_at.desc(), AccrualEvent.cumulative.desc())
                .limit(limit),
            )
            return [
                {
                    "amount": e.amount,
                    "cumulative": e.cumulative,
                    "remaining": e.remaining,
                    "lifecycle_count": e.lifecycle_count,
                    "op_nonce": e.op_nonce,
                    "occurred_at": e.occurred_at.isoformat(),
                }
                for e in result.scalars()
            ]

    async def termination_history(self, holder: str, limit: int = 20) -> list[dict]:
        async with self.db_manager.session() as db:
            result = await db.execute(
                select(TerminationEvent)
                .where(TerminationEvent.holder == holder)
                .order_by(TerminationEvent.occurred_at.desc())
                .limit(limit),
            )
            return [
                {
                    "refund_amount": e.refund_amount,
                    "fee_amount": e.fee_amount,
                    "total_accrued": e.total_accrued,
                    "lifecycle_count": e.lifecycle_count,
                    "automatic": e.automatic,
                    "op_nonce": e.op_nonce,
                    "occurred_at": e.occurred_at.isoformat(),
                }
                for e in result.scalars()
            ]

    async def get_stats(self) -> dict:
        """Aggregate counters for the protocol statistics report."""
        async with self.db_manager.session() as db:
            total = await db.scalar(select(func.count()).select_from(Credential))
            active = await db.scalar(
                select(func.count()).select_from(Credential)
                .where(Credential.active.is_(True)),
            )
            at_cap = await db.scalar(
                select(func.count()).select_from(Credential)
                .where(Credential.active.is_(True), Credential.cap_reached.is_(True)),
            )
            accrued = await db.scalar(
                select(func.coalesce(func.sum(AccrualEvent.amount), 0)),
            )
            terminations = await db.scalar(
                select(func.count()).select_from(TerminationEvent),
            )
            refunded = await db.scalar(
                select(func.coalesce(func.sum(TerminationEvent.refund_amount), 0)),
            )
            fees = await db.scalar(
                select(func.coalesce(func.sum(TerminationEvent.fee_amount), 0)),
            )
        return {
            "holders": total or 0,
            "active_credentials": active or 0,
            "credentials_at_cap": at_cap or 0,
            "total_accrued": int(accrued or 0),
            "terminations": terminations or 0,
            "total_refunded": int(refunded or 0),
            "total_fees": int(fees or 0),
        }

    # ─── Mutations ───────────────────────────────────────────────

    async def create_credential(
        self,
        holder: str,
        max_quota: int,
        op_nonce: str | None = None,
        issued_at: datetime | None = None,
    ) -> CredentialSnapshot:
        """Create (or re-issue over an archived row) an active credential."""
        now = issued_at or datetime.now(timezone.utc)
        async with self._locks.hold(holder):
            async with self.db_manager.session() as db:
                row = await self._locked_row(db, holder)
                if row is not None and row.active:
                    raise NotEligibleError(
                        f"Holder {holder} already has an active credential",
                        ErrorContext(holder=holder, nonce=op_nonce, op_type="ISSUE"),
                    )
                if row is None:
                    row = Credential(holder=holder, lifecycle_count=0)
                    db.add(row)
                else:
                    row.lifecycle_count += 1
                row.max_quota = max_quota
                row.total_accrued = 0
                row.remaining_quota = max_quota
                row.cap_reached = False
                row.active = True
                row.issue_nonce = op_nonce
                row.issued_at = now
                row.terminated_at = None
                row.updated_at = now
                await db.commit()
                snapshot = row.snapshot()

        logger.info(
            f"Credential issued to {holder} (lifecycle {snapshot.lifecycle_count})",
            extra={"holder": holder, "nonce": op_nonce},
        )
        return snapshot

    async def apply_accrual(
        self, holder: str, amount: int, op_nonce: str,
    ) -> CredentialSnapshot:
        """Atomically move `amount` from remaining to accrued and log the event."""
        ctx = ErrorContext(holder=holder, nonce=op_nonce, op_type="ACCRUE")
        if amount < 1:
            raise ValidationError(f"Accrue amount must be >= 1, got {amount}", "amount", ctx)

        async with self._locks.hold(holder):
            async with self.db_manager.session() as db:
                row = await self._locked_row(db, holder)
                if row is None or not row.active:
                    raise NotEligibleError(f"Holder {holder} has no active credential", ctx)
                if row.cap_reached:
                    raise NotEligibleError(
                        f"Holder {holder} has reached the {row.max_quota} lifetime cap", ctx,
                    )
                if amount > row.remaining_quota:
                    raise QuotaExceededError(amount, row.remaining_quota, ctx)

                row.total_accrued += amount
                row.remaining_quota -= amount
                row.cap_reached = row.remaining_quota == 0
                row.updated_at = datetime.now(timezone.utc)
                await self.record_accrual_event(
                    db,
                    holder=holder,
                    amount=amount,
                    cumulative=row.total_accrued,
                    remaining=row.remaining_quota,
                    lifecycle_count=row.lifecycle_count,
                    op_nonce=op_nonce,
                )
                await db.commit()
                snapshot = row.snapshot()

        logger.info(
            f"Accrued {amount} for {holder}: {snapshot.total_accrued}/{snapshot.max_quota}",
            extra={"holder": holder, "nonce": op_nonce},
        )
        return snapshot

    async def apply_termination(
        self,
        holder: str,
        op_nonce: str,
        refund_amount: int,
        fee_amount: int,
        automatic: bool = False,
    ) -> CredentialSnapshot:
        """Archive the active credential and log the settlement."""
        ctx = ErrorContext(holder=holder, nonce=op_nonce, op_type="TERMINATE")
        async with self._locks.hold(holder):
            async with self.db_manager.session() as db:
                row = await self._locked_row(db, holder)
                if row is None or not row.active:
                    raise NotEligibleError(f"Holder {holder} has no active credential", ctx)

                now = datetime.now(timezone.utc)
                await self.record_termination_event(
                    db,
                    holder=holder,
                    refund_amount=refund_amount,
                    fee_amount=fee_amount,
                    total_accrued=row.total_accrued,
                    lifecycle_count=row.lifecycle_count + 1,
                    automatic=automatic,
                    op_nonce=op_nonce,
                )
                row.active = False
                row.lifecycle_count += 1
                row.max_quota = 0
                row.total_accrued = 0
                row.remaining_quota = 0
                row.cap_reached = True
                row.terminated_at = now
                row.updated_at = now
                await db.commit()
                snapshot = row.snapshot()

        logger.info(
            f"Credential of {holder} archived (lifecycle {snapshot.lifecycle_count})",
            extra={"holder": holder, "nonce": op_nonce},
        )
        return snapshot

    # ─── History inserts (caller's transaction) ──────────────────

    async def record_accrual_event(
        self, db: AsyncSession, *, holder: str, amount: int, cumulative: int,
        remaining: int, lifecycle_count: int, op_nonce: str,
    ) -> AccrualEvent:
        event = AccrualEvent(
            holder=holder, amount=amount, cumulative=cumulative,
            remaining=remaining, lifecycle_count=lifecycle_count,
            op_nonce=op_nonce,
        )
        db.add(event)
        return event

    async def record_termination_event(
        self, db: AsyncSession, *, holder: str, refund_amount: int,
        fee_amount: int, total_accrued: int, lifecycle_count: int,
        automatic: bool, op_nonce: str,
    ) -> TerminationEvent:
        event = TerminationEvent(
            holder=holder, refund_amount=refund_amount, fee_amount=fee_amount,
            total_accrued=total_accrued, lifecycle_count=lifecycle_count,
            automatic=automatic, op_nonce=op_nonce,
        )
        db.add(event)
        return event

    @staticmethod
    async def _locked_row(db: AsyncSession, holder: str) -> Credential | None:
        result = await db.execute(
            select(Credential)
            .where(Credential.holder == holder)
            .with_for_update(),
        )
        return result.scalar_one_or_none()
