"""Deposit Schemas — inbound deposit notifications consumed by the relay.

Invariants:
    - source_event_id identifies the upstream event; it is the relay's dedup key
    - Unknown fields are ignored (upstream payloads carry extra metadata)
"""

from pydantic import BaseModel, ConfigDict, Field

from fountain.schemas.operations import HOLDER_REGEX


class DepositNotification(BaseModel):
    """One observed deposit into the escrow account."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    source_event_id: str = Field(min_length=1, max_length=128)
    depositor: str = Field(pattern=HOLDER_REGEX, max_length=64)
    amount: int = Field(ge=1)
    deposit_tx_id: str | None = Field(None, max_length=128)
