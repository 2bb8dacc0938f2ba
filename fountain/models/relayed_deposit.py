"""RelayedDeposit ORM — relay dedup set and handshake state per inbound deposit.

Invariants:
    - source_event_id is the primary key: redelivered notifications hit the same row
    - coordinator_nonce is generated once and reused for every redelivery
    - status transitions: RECEIVED -> COORDINATOR_SUBMITTED -> COMPLETED | FAILED
"""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fountain.db.base import Base


class RelayedDeposit(Base):
    """Deposit notification as seen by the relay."""
    __tablename__ = "relayed_deposits"

    source_event_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    depositor: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    deposit_tx_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="RECEIVED", index=True,
    )
    coordinator_nonce: Mapped[str | None] = mapped_column(
        String(128), nullable=True, unique=True,
    )
    result_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "source_event_id": self.source_event_id,
            "depositor": self.depositor,
            "amount": self.amount,
            "deposit_tx_id": self.deposit_tx_id,
            "status": self.status,
            "coordinator_nonce": self.coordinator_nonce,
            "result": self.result_json,
            "error": self.error,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
