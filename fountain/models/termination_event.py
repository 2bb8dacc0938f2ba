"""TerminationEvent ORM — append-only audit row per executed TERMINATE.

Invariants:
    - Inserted in the same transaction that archives the credential
    - automatic=True rows were triggered inline by an ACCRUE reaching the cap
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from fountain.db.base import Base


class TerminationEvent(Base):
    """History row: deposit settlement for one archived lifecycle."""
    __tablename__ = "termination_events"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    holder: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    refund_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fee_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_accrued: Mapped[int] = mapped_column(BigInteger, nullable=False)
    lifecycle_count: Mapped[int] = mapped_column(BigInteger, nullable=False)
    automatic: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    op_nonce: Mapped[str] = mapped_column(
        String(128), nullable=False, unique=True,
    )
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
