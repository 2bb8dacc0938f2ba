"""Quota Enforcement — tests for pure ISSUE / ACCRUE / TERMINATE rules.

Tests cover:
    - Holder and nonce format validation, reserved auto-terminate suffix
    - ISSUE: exact deposit, no active credential, archived holder may re-issue
    - ACCRUE: amount >= 1, active + uncapped, remaining quota, per-request ceiling
    - ACCRUE check order: over-quota wins over the per-request ceiling
    - TERMINATE: cap required unless early termination is enabled
"""

import pytest

from fountain.core.credential_state import CredentialSnapshot
from fountain.core.enforce_quota import (
    auto_terminate_nonce, validate_accrue, validate_holder, validate_issue,
    validate_nonce, validate_terminate,
)
from fountain.core.errors import (
    NotEligibleError, QuotaExceededError, ValidationError,
)

HOLDER = "0.0.1001"
PRICE = 100_000_000


def _credential(accrued: int = 0, max_quota: int = 1000, active: bool = True) -> CredentialSnapshot:
    remaining = max_quota - accrued
    return CredentialSnapshot(
        holder=HOLDER, issued_at=None, max_quota=max_quota,
        total_accrued=accrued, remaining_quota=remaining,
        cap_reached=remaining == 0, active=active, lifecycle_count=0,
    )


ARCHIVED = CredentialSnapshot(
    holder=HOLDER, issued_at=None, max_quota=0, total_accrued=0,
    remaining_quota=0, cap_reached=True, active=False, lifecycle_count=1,
)


# ─── Identity ────────────────────────────────────────────────────

@pytest.mark.parametrize("holder", ["0.0.1001", "1.2.3"])
def test_valid_holders_pass(holder):
    validate_holder(holder)


@pytest.mark.parametrize("holder", ["", "0.0", "0.0.x", "alice", "0.0.1001 "])
def test_invalid_holders_rejected(holder):
    with pytest.raises(ValidationError) as exc:
        validate_holder(holder)
    assert exc.value.field == "holder"


def test_blank_nonce_rejected():
    with pytest.raises(ValidationError):
        validate_nonce("   ")


def test_overlong_nonce_rejected():
    with pytest.raises(ValidationError):
        validate_nonce("n" * 101)


@pytest.mark.parametrize("nonce", ["x:auto-terminate", auto_terminate_nonce("acc-1")])
def test_auto_terminate_suffix_reserved(nonce):
    with pytest.raises(ValidationError) as exc:
        validate_nonce(nonce)
    assert exc.value.field == "nonce"


def test_suffix_inside_nonce_allowed():
    validate_nonce("x:auto-terminate:retry")


# ─── ISSUE ───────────────────────────────────────────────────────

def test_issue_for_new_holder_passes():
    validate_issue(None, HOLDER, PRICE, PRICE)


def test_issue_with_wrong_deposit_rejected():
    with pytest.raises(ValidationError) as exc:
        validate_issue(None, HOLDER, PRICE - 1, PRICE)
    assert exc.value.field == "deposit_amount"


def test_issue_with_active_credential_rejected():
    with pytest.raises(NotEligibleError):
        validate_issue(_credential(), HOLDER, PRICE, PRICE)


def test_reissue_after_archive_passes():
    validate_issue(ARCHIVED, HOLDER, PRICE, PRICE)


# ─── ACCRUE ──────────────────────────────────────────────────────

def test_accrue_within_quota_passes():
    validate_accrue(_credential(accrued=500), HOLDER, 500, 1000)


@pytest.mark.parametrize("amount", [0, -5])
def test_accrue_non_positive_rejected(amount):
    with pytest.raises(ValidationError):
        validate_accrue(_credential(), HOLDER, amount, 1000)


def test_accrue_without_credential_rejected():
    with pytest.raises(NotEligibleError):
        validate_accrue(None, HOLDER, 1, 1000)


def test_accrue_on_archived_credential_rejected():
    with pytest.raises(NotEligibleError):
        validate_accrue(ARCHIVED, HOLDER, 1, 1000)


def test_accrue_at_cap_rejected():
    with pytest.raises(NotEligibleError, match="cap"):
        validate_accrue(_credential(accrued=1000), HOLDER, 1, 1000)


def test_accrue_over_remaining_is_quota_exceeded():
    with pytest.raises(QuotaExceededError) as exc:
        validate_accrue(_credential(accrued=999), HOLDER, 2, 1000)
    assert exc.value.requested == 2
    assert exc.value.remaining == 1


def test_accrue_1001_on_fresh_credential_is_quota_exceeded():
    with pytest.raises(QuotaExceededError):
        validate_accrue(_credential(), HOLDER, 1001, 1000)


def test_accrue_over_per_request_ceiling_rejected():
    with pytest.raises(ValidationError) as exc:
        validate_accrue(_credential(), HOLDER, 200, 100)
    assert exc.value.field == "amount"


# ─── TERMINATE ───────────────────────────────────────────────────

def test_terminate_at_cap_passes():
    validate_terminate(_credential(accrued=1000), HOLDER)


def test_terminate_before_cap_rejected():
    with pytest.raises(NotEligibleError, match="cap"):
        validate_terminate(_credential(accrued=10), HOLDER)


def test_early_terminate_allowed_when_enabled():
    validate_terminate(_credential(accrued=10), HOLDER, allow_early_termination=True)


def test_terminate_without_active_credential_rejected():
    with pytest.raises(NotEligibleError):
        validate_terminate(ARCHIVED, HOLDER, allow_early_termination=True)
