"""Membership Orchestrator — end-to-end flows against a running consumer.

Tests cover:
    - Full lifecycle: deposit -> accrue to cap -> auto-termination -> re-issue
    - Pre-submission rejections surface as REJECTED results, not exceptions
    - Ledger failures surface as FAILED with the error code
    - Timeouts surface as TIMED_OUT and the nonce stays pollable
"""

import pytest

from fountain.services.orchestration import REJECTED, TIMED_OUT

HOLDER = "0.0.1001"
PRICE = 100_000_000


@pytest.fixture
async def running(container):
    container.consumer.start()
    yield container
    await container.consumer.stop()


async def test_full_membership_lifecycle(running, ledger):
    orchestrator = running.orchestrator

    issued = await orchestrator.deposit_and_wait({
        "source_event_id": "evt-1", "depositor": HOLDER, "amount": PRICE,
    })
    assert issued.success is True
    assert issued.status == "COMPLETED"

    partial = await orchestrator.accrue_and_wait(HOLDER, 700, "acc-1")
    assert partial.success is True
    assert partial.result["credential"]["remaining_quota"] == 300

    final = await orchestrator.accrue_and_wait(HOLDER, 300, "acc-2")
    assert final.success is True
    assert final.result["auto_termination"]["status"] == "COMPLETED"
    assert ledger.balances[(HOLDER, "HBAR")] == 80_000_000

    again = await orchestrator.issue_and_wait(HOLDER, PRICE, "issue-2")
    assert again.success is True
    assert again.result["credential"]["lifecycle_count"] == 2


async def test_rejection_is_reported_not_raised(running):
    result = await running.orchestrator.accrue_and_wait(HOLDER, 10, "acc-1")
    assert result.success is False
    assert result.status == REJECTED
    assert result.error_code == "NOT_ELIGIBLE"


async def test_completed_nonce_answers_immediately(running):
    await running.orchestrator.issue_and_wait(HOLDER, PRICE, "issue-1")
    result = await running.orchestrator.issue_and_wait(HOLDER, PRICE, "issue-1")
    assert result.success is True
    assert result.status == "COMPLETED"


async def test_ledger_failure_reported_as_failed(running, ledger):
    ledger.inject_failure("freeze")
    result = await running.orchestrator.issue_and_wait(HOLDER, PRICE, "issue-1")

    assert result.success is False
    assert result.status == "FAILED"
    assert result.error_code == "LEDGER_OPERATION_FAILED"
    assert result.result["failed_step"] == "freeze_credential"


async def test_timeout_reported_and_nonce_pollable(container):
    # Consumer not started: nothing executes
    result = await container.orchestrator.issue_and_wait(
        HOLDER, PRICE, "issue-1", timeout=0.05,
    )
    assert result.status == TIMED_OUT
    assert result.error_code == "CONSENSUS_TIMEOUT"
    status = await container.status.get_operation_status("issue-1")
    assert status["status"] == "SUBMITTED"


async def test_rejected_deposit_flow(running):
    result = await running.orchestrator.deposit_and_wait({
        "source_event_id": "evt-1", "depositor": HOLDER, "amount": 1,
    })
    assert result.success is False
    assert result.status == REJECTED
    assert result.nonce.startswith("relay-")
