"""Coordinator submission — tests for validate-then-append and nonce reuse.

Tests cover:
    - Accepted submits append exactly one signed entry and return a receipt
    - Rejected submits (bad holder, quota, eligibility, balances) append nothing
    - Nonce reuse: in-flight -> same receipt, COMPLETED -> cached result,
      FAILED -> fresh nonce required, other holder/type -> rejected
    - Append failure leaves no record behind and the nonce stays usable
    - get_status for unknown nonces
"""

import pytest

from fountain.core.errors import (
    ConsensusSubmissionError, NotEligibleError, QuotaExceededError,
    ResourceNotFoundError, ValidationError,
)
from fountain.core.intents import AccrueIntent, decode_intent

HOLDER = "0.0.1001"
PRICE = 100_000_000


# ─── Accepted submissions ────────────────────────────────────────

async def test_issue_appends_signed_intent(container, consensus_log):
    receipt = await container.coordinator.submit_issue(HOLDER, PRICE, "issue-1")

    assert receipt == {
        "nonce": "issue-1",
        "type": "ISSUE",
        "holder": HOLDER,
        "log_position": 1,
        "status": "SUBMITTED",
        "duplicate": False,
    }
    [entry] = consensus_log.entries
    intent = decode_intent(entry.message, container.settings.intent_signing_key)
    assert intent.nonce == "issue-1"
    assert intent.deposit_amount == PRICE

    record = await container.operations.get("issue-1")
    assert record["status"] == "SUBMITTED"
    assert record["consensus_position"] == 1


async def test_accrue_after_issue_is_accepted(container, consensus_log, issue):
    await issue()
    receipt = await container.coordinator.submit_accrue(HOLDER, 10, "acc-1")
    assert receipt["status"] == "SUBMITTED"
    assert isinstance(
        decode_intent(consensus_log.entries[-1].message, "test-signing-key"),
        AccrueIntent,
    )


# ─── Rejections append nothing ───────────────────────────────────

async def test_invalid_holder_rejected(container, consensus_log):
    with pytest.raises(ValidationError):
        await container.coordinator.submit_issue("not-an-account", PRICE, "issue-1")
    assert consensus_log.entries == []


async def test_wrong_deposit_rejected(container, consensus_log):
    with pytest.raises(ValidationError):
        await container.coordinator.submit_issue(HOLDER, PRICE + 1, "issue-1")
    assert consensus_log.entries == []
    assert await container.operations.get("issue-1") is None


async def test_accrue_without_credential_rejected(container, consensus_log):
    with pytest.raises(NotEligibleError):
        await container.coordinator.submit_accrue(HOLDER, 10, "acc-1")
    assert consensus_log.entries == []


async def test_accrue_over_quota_rejected_without_append(container, consensus_log, issue):
    await issue()
    with pytest.raises(QuotaExceededError):
        await container.coordinator.submit_accrue(HOLDER, 1001, "acc-1")
    assert len(consensus_log.entries) == 1


async def test_accrue_requires_credential_unit_on_ledger(container, ledger, issue):
    await issue()
    ledger.balances[(HOLDER, "DRIP")] = 0
    with pytest.raises(NotEligibleError, match="DRIP"):
        await container.coordinator.submit_accrue(HOLDER, 10, "acc-1")


async def test_terminate_before_cap_rejected(container, issue):
    await issue()
    with pytest.raises(NotEligibleError, match="cap"):
        await container.coordinator.submit_terminate(HOLDER, "term-1")


async def test_terminate_requires_escrow_cover(container, ledger, confirm, issue):
    await issue()
    await container.coordinator.submit_accrue(HOLDER, 999, "acc-1")
    await confirm()
    ledger.balances[(container.settings.escrow_account, "HBAR")] = PRICE - 1
    container.settings.allow_early_termination = True

    with pytest.raises(NotEligibleError, match="Escrow"):
        await container.coordinator.submit_terminate(HOLDER, "term-1")


# ─── Nonce reuse ─────────────────────────────────────────────────

async def test_inflight_nonce_returns_same_receipt(container, consensus_log):
    first = await container.coordinator.submit_issue(HOLDER, PRICE, "issue-1")
    second = await container.coordinator.submit_issue(HOLDER, PRICE, "issue-1")

    assert second["duplicate"] is True
    assert second["log_position"] == first["log_position"]
    assert len(consensus_log.entries) == 1


async def test_completed_nonce_returns_cached_result(container, consensus_log, issue):
    await issue()
    receipt = await container.coordinator.submit_issue(HOLDER, PRICE, "issue-1")

    assert receipt["duplicate"] is True
    assert receipt["status"] == "COMPLETED"
    assert "mint_credential" in receipt["result"]["transactions"]
    assert len(consensus_log.entries) == 1


async def test_failed_nonce_requires_fresh_nonce(container, ledger, issue):
    ledger.inject_failure("mint")
    record = await issue()
    assert record["status"] == "FAILED"

    with pytest.raises(ValidationError, match="fresh nonce"):
        await container.coordinator.submit_issue(HOLDER, PRICE, "issue-1")


async def test_nonce_reused_for_other_holder_rejected(container):
    await container.coordinator.submit_issue(HOLDER, PRICE, "shared")
    with pytest.raises(ValidationError, match="already used"):
        await container.coordinator.submit_issue("0.0.2002", PRICE, "shared")


# ─── Append failure ──────────────────────────────────────────────

async def test_append_failure_leaves_no_record(container, consensus_log):
    consensus_log.fail_next_append()
    with pytest.raises(ConsensusSubmissionError):
        await container.coordinator.submit_issue(HOLDER, PRICE, "issue-1")

    assert await container.operations.get("issue-1") is None
    receipt = await container.coordinator.submit_issue(HOLDER, PRICE, "issue-1")
    assert receipt["log_position"] == 1


# ─── Status ──────────────────────────────────────────────────────

async def test_unknown_nonce_status_not_found(container):
    with pytest.raises(ResourceNotFoundError):
        await container.coordinator.get_status("nope")
