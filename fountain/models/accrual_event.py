"""AccrualEvent ORM — append-only audit row per executed ACCRUE.

Invariants:
    - Inserted in the same transaction as the credential counter update
    - cumulative + remaining == the credential's max_quota at insert time
    - op_nonce is unique: one accrual row per executed operation
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from fountain.db.base import Base


class AccrualEvent(Base):
    """History row: amount accrued, running totals after the accrual."""
    __tablename__ = "accrual_events"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    holder: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    cumulative: Mapped[int] = mapped_column(BigInteger, nullable=False)
    remaining: Mapped[int] = mapped_column(BigInteger, nullable=False)
    lifecycle_count: Mapped[int] = mapped_column(BigInteger, nullable=False)
    op_nonce: Mapped[str] = mapped_column(
        String(128), nullable=False, unique=True,
    )
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
