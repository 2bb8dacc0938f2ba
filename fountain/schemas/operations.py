"""Operation Schemas — submission bodies and receipts for /api/v1/operations.

Invariants:
    - nonce: 1-100 chars, caller-generated idempotency key
    - holder: shard.realm.num account id
    - Amounts are integers (base units for deposits, reward units for accruals)
"""

from pydantic import BaseModel, Field

HOLDER_REGEX = r"^\d+\.\d+\.\d+$"


class IssueRequest(BaseModel):
    holder: str = Field(pattern=HOLDER_REGEX, max_length=64)
    deposit_amount: int
    nonce: str = Field(min_length=1, max_length=100)


class AccrueRequest(BaseModel):
    holder: str = Field(pattern=HOLDER_REGEX, max_length=64)
    amount: int
    nonce: str = Field(min_length=1, max_length=100)


class TerminateRequest(BaseModel):
    holder: str = Field(pattern=HOLDER_REGEX, max_length=64)
    nonce: str = Field(min_length=1, max_length=100)


class SubmissionReceipt(BaseModel):
    """Returned by every submit: the nonce is how callers poll for the outcome."""
    nonce: str
    type: str
    holder: str
    log_position: int | None
    status: str
    duplicate: bool = False
    result: dict | None = None
