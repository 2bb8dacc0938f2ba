"""ORM Models — SQLAlchemy declarative models for credentials, history, operations, deposits.

Invariants:
    - All models inherit from Base (db/base.py)
    - Credential rows are keyed by holder: one row per holder across lifecycles
    - History tables are append-only (never UPDATEd after insert)

Design Decisions:
    - One file per entity for locality
    - All models imported here so Base.metadata is complete before create_all / alembic
"""

from fountain.models.credential import Credential  # noqa: F401
from fountain.models.accrual_event import AccrualEvent  # noqa: F401
from fountain.models.termination_event import TerminationEvent  # noqa: F401
from fountain.models.operation import Operation  # noqa: F401
from fountain.models.relayed_deposit import RelayedDeposit  # noqa: F401
