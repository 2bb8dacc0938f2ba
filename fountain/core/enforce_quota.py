"""Quota Enforcement — pure business rules for ISSUE, ACCRUE and TERMINATE.

Invariants:
    - Every rule is PURE: takes a snapshot, raises a typed error or returns None
    - Same rules run twice: advisory at submission, authoritative at confirmation
    - Check order for ACCRUE: malformed amount, eligibility, quota, per-request ceiling
      (an over-quota request is reported as QuotaExceededError even when it also
      exceeds the per-request ceiling)

Design Decisions:
    - Raising over returning error dicts: the coordinator records the exception
      on the Operation Record unchanged
    - Holder format follows the ledger's shard.realm.num account ids
    - Client nonces stop at 100 chars so "<nonce>:auto-terminate" fits the 128-char column
    - The ":auto-terminate" suffix is reserved: a client nonce carrying it would
      take the row of a later automatic termination
"""

import re

from fountain.core.credential_state import CredentialSnapshot
from fountain.core.errors import (
    ErrorContext,
    NotEligibleError,
    QuotaExceededError,
    ValidationError,
)

HOLDER_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")
MAX_NONCE_LENGTH = 100
AUTO_TERMINATE_SUFFIX = ":auto-terminate"


def auto_terminate_nonce(parent_nonce: str) -> str:
    """System nonce for the TERMINATE an exhausting ACCRUE triggers."""
    return f"{parent_nonce}{AUTO_TERMINATE_SUFFIX}"


def validate_holder(holder: str) -> None:
    if not isinstance(holder, str) or not HOLDER_PATTERN.match(holder):
        raise ValidationError(
            f"Invalid holder account format: {holder!r}", "holder",
            ErrorContext(holder=holder if isinstance(holder, str) else None),
        )


def validate_nonce(nonce: str) -> None:
    if not isinstance(nonce, str) or not nonce.strip():
        raise ValidationError("Nonce must be a non-empty string", "nonce")
    if len(nonce) > MAX_NONCE_LENGTH:
        raise ValidationError(
            f"Nonce exceeds {MAX_NONCE_LENGTH} characters", "nonce",
            ErrorContext(nonce=nonce[:MAX_NONCE_LENGTH]),
        )
    if nonce.endswith(AUTO_TERMINATE_SUFFIX):
        raise ValidationError(
            f"Nonces ending in '{AUTO_TERMINATE_SUFFIX}' are reserved for automatic termination",
            "nonce", ErrorContext(nonce=nonce),
        )


def validate_issue(
    credential: CredentialSnapshot | None, holder: str,
    deposit_amount: int, issuance_price: int,
) -> None:
    """ISSUE requires no active credential and an exact deposit."""
    ctx = ErrorContext(holder=holder, op_type="ISSUE")
    if deposit_amount != issuance_price:
        raise ValidationError(
            f"Invalid deposit amount: {deposit_amount}, expected {issuance_price}",
            "deposit_amount", ctx,
        )
    if credential is not None and credential.active:
        raise NotEligibleError(
            f"Holder {holder} already has an active credential", ctx,
        )


def validate_accrue(
    credential: CredentialSnapshot | None, holder: str,
    amount: int, max_per_request: int,
) -> None:
    """ACCRUE requires an active, uncapped credential with enough quota left."""
    ctx = ErrorContext(holder=holder, op_type="ACCRUE")
    if not isinstance(amount, int) or isinstance(amount, bool) or amount < 1:
        raise ValidationError(
            f"Accrue amount must be an integer >= 1, got {amount!r}", "amount", ctx,
        )
    if credential is None or not credential.active:
        raise NotEligibleError(
            f"Holder {holder} has no active credential", ctx,
        )
    if credential.cap_reached:
        raise NotEligibleError(
            f"Holder {holder} has reached the {credential.max_quota} lifetime cap",
            ctx,
        )
    if amount > credential.remaining_quota:
        raise QuotaExceededError(amount, credential.remaining_quota, ctx)
    if amount > max_per_request:
        raise ValidationError(
            f"Accrue amount must be between 1 and {max_per_request}, got {amount}",
            "amount", ctx,
        )


def validate_terminate(
    credential: CredentialSnapshot | None, holder: str,
    allow_early_termination: bool = False,
) -> None:
    """TERMINATE requires an active credential that exhausted its quota (or early opt-in)."""
    ctx = ErrorContext(holder=holder, op_type="TERMINATE")
    if credential is None or not credential.active:
        raise NotEligibleError(
            f"Holder {holder} has no active credential", ctx,
        )
    if not credential.cap_reached and not allow_early_termination:
        raise NotEligibleError(
            f"Credential must reach its {credential.max_quota} cap before "
            f"termination (current: {credential.total_accrued}/{credential.max_quota})",
            ctx,
        )
