"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - HolderId, Nonce, LogPosition wrap primitives: never pass bare str/int in domain logic
    - All valid states encoded as Enums: no raw string matching
    - TERMINAL_STATUSES is the single source of truth for "operation is settled"

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON and DB String columns without custom encoders
"""

from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

HolderId = NewType("HolderId", str)
Nonce = NewType("Nonce", str)
LogPosition = NewType("LogPosition", int)
SourceEventId = NewType("SourceEventId", str)


# ─── Enums ───────────────────────────────────────────────────────

class OperationType(str, Enum):
    """Intent kinds carried on the consensus log."""
    ISSUE = "ISSUE"
    ACCRUE = "ACCRUE"
    TERMINATE = "TERMINATE"


class OperationStatus(str, Enum):
    """Operation Record lifecycle: maps to operations.status."""
    SUBMITTED = "SUBMITTED"
    EXECUTING = "EXECUTING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


TERMINAL_STATUSES = frozenset({OperationStatus.COMPLETED, OperationStatus.FAILED})


class OperationTrigger(str, Enum):
    """Who caused an operation: a client nonce or an automatic transition."""
    CLIENT = "client"
    AUTO = "auto"


class CredentialStage(str, Enum):
    """Credential state machine. CAP_REACHED is transient unless auto-terminate fails."""
    NOT_ISSUED = "NOT_ISSUED"
    ACTIVE_ACCRUING = "ACTIVE_ACCRUING"
    CAP_REACHED = "CAP_REACHED"
    TERMINATED = "TERMINATED"


class RelayStatus(str, Enum):
    """Deposit handshake: RECEIVED -> COORDINATOR_SUBMITTED -> COMPLETED | FAILED."""
    RECEIVED = "RECEIVED"
    COORDINATOR_SUBMITTED = "COORDINATOR_SUBMITTED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class LedgerStep(str, Enum):
    """Named steps inside execution sequences, recorded in partial results."""
    MINT_CREDENTIAL = "mint_credential"
    TRANSFER_CREDENTIAL = "transfer_credential"
    FREEZE_CREDENTIAL = "freeze_credential"
    MINT_REWARD = "mint_reward"
    TRANSFER_REWARD = "transfer_reward"
    UNFREEZE_CREDENTIAL = "unfreeze_credential"
    RETURN_CREDENTIAL = "return_credential"
    BURN_CREDENTIAL = "burn_credential"
    WIPE_CREDENTIAL = "wipe_credential"
    PAY_REFUND = "pay_refund"
    PAY_FEE = "pay_fee"
    QUERY_BALANCE = "query_balance"
