"""Operation ORM — per-nonce execution record owned by the Coordinator.

Invariants:
    - nonce is the primary key (idempotency key)
    - status transitions: SUBMITTED -> EXECUTING -> COMPLETED | FAILED (never backwards)
    - COMPLETED means ledger side effects happened exactly once
    - FAILED rows keep the partial result (which ledger steps already ran)

Design Decisions:
    - JSON columns for intent/result: variant-specific shapes without extra tables
    - trigger + parent_nonce: automatic TERMINATE rows trace back to their ACCRUE
"""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fountain.db.base import Base


class Operation(Base):
    """Operation Record for one client or system nonce."""
    __tablename__ = "operations"

    nonce: Mapped[str] = mapped_column(String(128), primary_key=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    holder: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="SUBMITTED", index=True,
    )
    trigger: Mapped[str] = mapped_column(
        String(16), nullable=False, default="client",
    )
    parent_nonce: Mapped[str | None] = mapped_column(String(128), nullable=True)
    consensus_position: Mapped[int | None] = mapped_column(
        BigInteger, nullable=True,
    )
    intent_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    result_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
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
            "nonce": self.nonce,
            "type": self.type,
            "holder": self.holder,
            "status": self.status,
            "trigger": self.trigger,
            "parent_nonce": self.parent_nonce,
            "consensus_position": self.consensus_position,
            "result": self.result_json,
            "error": self.error,
            "error_code": self.error_code,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
