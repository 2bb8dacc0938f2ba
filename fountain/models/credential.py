"""Credential ORM — persists one holder's membership credential and quota counters.

Invariants:
    - holder is the primary key: at most one row, therefore at most one active credential
    - CHECK constraints mirror the quota invariants so a buggy writer fails at commit
    - lifecycle_count survives archival and re-issue

Design Decisions:
    - Archive in place (active=False, counters zeroed) instead of moving rows:
      history lives in accrual_events / termination_events
"""

from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger, Boolean, CheckConstraint, DateTime, Integer, String,
)
from sqlalchemy.orm import Mapped, mapped_column

from fountain.core.credential_state import CredentialSnapshot
from fountain.db.base import Base


class Credential(Base):
    """Per-holder credential row, owned exclusively by the Quota Store."""
    __tablename__ = "credentials"
    __table_args__ = (
        CheckConstraint(
            "remaining_quota + total_accrued = max_quota",
            name="ck_credentials_quota_balance",
        ),
        CheckConstraint("remaining_quota >= 0", name="ck_credentials_remaining_nonneg"),
        CheckConstraint("total_accrued >= 0", name="ck_credentials_accrued_nonneg"),
    )

    holder: Mapped[str] = mapped_column(String(64), primary_key=True)
    max_quota: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_accrued: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0,
    )
    remaining_quota: Mapped[int] = mapped_column(BigInteger, nullable=False)
    cap_reached: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    lifecycle_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    issue_nonce: Mapped[str | None] = mapped_column(String(128), nullable=True)
    issued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    terminated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def snapshot(self) -> CredentialSnapshot:
        return CredentialSnapshot(
            holder=self.holder,
            issued_at=self.issued_at,
            max_quota=self.max_quota,
            total_accrued=self.total_accrued,
            remaining_quota=self.remaining_quota,
            cap_reached=self.cap_reached,
            active=self.active,
            lifecycle_count=self.lifecycle_count,
        )
