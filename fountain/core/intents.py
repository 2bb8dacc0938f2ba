"""Log Message Schema — versioned tagged union of intents carried on the consensus log.

Invariants:
    - Exactly three variants (ISSUE | ACCRUE | TERMINATE), each with a fixed field set
    - extra="forbid": unknown fields are a schema violation, not silently dropped
    - Every message is signed (HMAC-SHA256 over canonical JSON) with the treasury signing key
    - decode_intent either returns a valid intent or raises MalformedMessageError: no partial parses

Design Decisions:
    - pydantic discriminated union on "type": unknown types fail at the ingestion boundary
    - Envelope {"intent": ..., "signature": ...}: signature covers the canonical payload only
    - SCHEMA_VERSION bumps require a new Literal; old consumers reject newer messages loudly
"""

import hashlib
import hmac
import json
from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from fountain.core.domain_types import OperationType
from fountain.core.errors import MalformedMessageError

SCHEMA_VERSION = "1"


class _IntentBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    version: Literal["1"] = SCHEMA_VERSION
    holder: str = Field(min_length=1, max_length=64)
    nonce: str = Field(min_length=1, max_length=128)
    submitted_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class IssueIntent(_IntentBase):
    """Create a credential for holder after a verified deposit."""
    type: Literal["ISSUE"] = "ISSUE"
    deposit_amount: int = Field(ge=1)


class AccrueIntent(_IntentBase):
    """Mint and deliver reward units against the holder's remaining quota."""
    type: Literal["ACCRUE"] = "ACCRUE"
    amount: int = Field(ge=1)


class TerminateIntent(_IntentBase):
    """Archive the holder's credential and settle the deposit split."""
    type: Literal["TERMINATE"] = "TERMINATE"


Intent = Annotated[
    Union[IssueIntent, AccrueIntent, TerminateIntent],
    Field(discriminator="type"),
]

_intent_adapter: TypeAdapter[Intent] = TypeAdapter(Intent)


def operation_type_of(intent: Intent) -> OperationType:
    return OperationType(intent.type)


def intent_amount(intent: Intent) -> int | None:
    """Amount carried by the intent, if its variant has one."""
    if isinstance(intent, IssueIntent):
        return intent.deposit_amount
    if isinstance(intent, AccrueIntent):
        return intent.amount
    return None


def _canonical(payload: dict) -> bytes:
    return json.dumps(
        payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False,
    ).encode("utf-8")


def _sign(payload: dict, signing_key: str) -> str:
    return hmac.new(
        signing_key.encode("utf-8"), _canonical(payload), hashlib.sha256,
    ).hexdigest()


def encode_intent(intent: Intent, signing_key: str) -> bytes:
    """Serialize and sign an intent for ConsensusLog.append."""
    payload = intent.model_dump(mode="json")
    envelope = {"intent": payload, "signature": _sign(payload, signing_key)}
    return _canonical(envelope)


def decode_intent(message: bytes, signing_key: str) -> Intent:
    """Parse, authenticate, and validate one log message. Raises MalformedMessageError."""
    try:
        envelope = json.loads(message.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedMessageError(f"Log message is not valid JSON: {e}")

    if not isinstance(envelope, dict) or set(envelope) != {"intent", "signature"}:
        raise MalformedMessageError("Log message envelope must be {intent, signature}")

    payload = envelope["intent"]
    signature = envelope["signature"]
    if not isinstance(payload, dict) or not isinstance(signature, str):
        raise MalformedMessageError("Log message envelope has wrong field types")

    if payload.get("version") != SCHEMA_VERSION:
        raise MalformedMessageError(
            f"Unsupported intent version: {payload.get('version')!r}",
        )

    if not hmac.compare_digest(_sign(payload, signing_key), signature):
        raise MalformedMessageError("Intent signature mismatch")

    try:
        return _intent_adapter.validate_python(payload)
    except PydanticValidationError as e:
        raise MalformedMessageError(f"Intent failed schema validation: {e}")
