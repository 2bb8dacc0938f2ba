"""Deposit Relay — tests for dedup, handshake progression and reconciliation.

Tests cover:
    - Valid deposit: RECEIVED -> COORDINATOR_SUBMITTED -> COMPLETED, reporter called
    - Redelivered notification counted as duplicate, never resubmitted
    - Wrong amount / ineligible holder fail the deposit before any log append
    - Schema violations raise ValidationError and create no row
    - Timed-out wait leaves the row pending until reconcile_pending()
    - A row left RECEIVED is resumed with its nonce by redelivery or reconcile_pending()
    - run() keeps consuming after a rejected notification
"""

import pytest

from fountain.core.domain_types import RelayStatus
from fountain.core.errors import ValidationError

HOLDER = "0.0.1001"
PRICE = 100_000_000


def _notification(event_id: str = "evt-1", **overrides) -> dict:
    data = {
        "source_event_id": event_id,
        "depositor": HOLDER,
        "amount": PRICE,
        "deposit_tx_id": "0.0.1001@1700000000.000000001",
        "memo": "ignored upstream metadata",
    }
    data.update(overrides)
    return data


async def test_deposit_completes_handshake(container, confirm, reporter):
    row = await container.relay.handle(_notification())
    assert row["status"] == "COORDINATOR_SUBMITTED"
    assert row["coordinator_nonce"].startswith("relay-")

    await confirm()
    await container.relay.drain()

    stored = await container.relay.get_deposit("evt-1")
    assert stored["status"] == "COMPLETED"
    assert "mint_credential" in stored["result"]["transactions"]
    assert reporter.events_for("evt-1") == ["acknowledge", "completed"]
    assert container.relay.stats.processed == 1

    credential = await container.quota_store.get_credential(HOLDER)
    assert credential.active is True


async def test_redelivered_notification_is_duplicate(container, consensus_log):
    first = await container.relay.handle(_notification())
    second = await container.relay.handle(_notification())

    assert second["duplicate"] is True
    assert second["coordinator_nonce"] == first["coordinator_nonce"]
    assert len(consensus_log.entries) == 1
    assert container.relay.stats.duplicates == 1


async def test_wrong_amount_fails_deposit(container, consensus_log, reporter):
    row = await container.relay.handle(_notification(amount=PRICE // 2))

    assert row["status"] == "FAILED"
    assert "does not match" in row["error"]
    assert consensus_log.entries == []
    assert reporter.events_for("evt-1") == ["failed"]


async def test_ineligible_holder_fails_deposit(container, confirm, reporter):
    await container.relay.handle(_notification("evt-1"))
    await confirm()
    await container.relay.drain()

    row = await container.relay.handle(_notification("evt-2"))
    assert row["status"] == "FAILED"
    assert "active credential" in row["error"]
    assert reporter.events_for("evt-2") == ["failed"]


async def test_schema_violation_rejected(container):
    with pytest.raises(ValidationError) as exc:
        await container.relay.handle({"source_event_id": "evt-1", "depositor": "bob"})
    assert exc.value.field == "notification"
    assert container.relay.stats.failed == 1
    assert await container.relay.get_deposit("evt-1") is None


async def test_timeout_then_reconcile(make_container, settings, confirm, reporter):
    impatient = make_container(settings, relay_wait_timeout_seconds=0.05)
    await impatient.relay.handle(_notification())
    await impatient.relay.drain()

    pending = await impatient.relay.get_deposit("evt-1")
    assert pending["status"] == "COORDINATOR_SUBMITTED"
    assert (await impatient.relay.get_stats())["pending_handshakes"] == 1

    await confirm(impatient)
    assert await impatient.relay.reconcile_pending() == 1

    settled = await impatient.relay.get_deposit("evt-1")
    assert settled["status"] == "COMPLETED"
    assert reporter.events_for("evt-1") == ["acknowledge", "completed"]


def _interrupt_next_submit(monkeypatch, coordinator) -> None:
    submit_issue = coordinator.submit_issue
    calls = []

    async def interrupted(*args):
        calls.append(args)
        if len(calls) == 1:
            raise RuntimeError("process stopped before submitting")
        return await submit_issue(*args)

    monkeypatch.setattr(coordinator, "submit_issue", interrupted)


async def test_redelivery_resumes_interrupted_submission(
    container, consensus_log, confirm, reporter, monkeypatch,
):
    _interrupt_next_submit(monkeypatch, container.coordinator)
    with pytest.raises(RuntimeError):
        await container.relay.handle(_notification())
    stuck = await container.relay.get_deposit("evt-1")
    assert stuck["status"] == "RECEIVED"
    assert consensus_log.entries == []

    row = await container.relay.handle(_notification())
    assert row["status"] == "COORDINATOR_SUBMITTED"
    assert row["coordinator_nonce"] == stuck["coordinator_nonce"]
    assert len(consensus_log.entries) == 1

    await confirm()
    await container.relay.drain()
    assert (await container.relay.get_deposit("evt-1"))["status"] == "COMPLETED"
    assert reporter.events_for("evt-1") == ["acknowledge", "completed"]


async def test_reconcile_resubmits_received_rows(
    container, consensus_log, confirm, reporter, monkeypatch,
):
    _interrupt_next_submit(monkeypatch, container.coordinator)
    with pytest.raises(RuntimeError):
        await container.relay.handle(_notification())

    assert await container.relay.reconcile_pending() == 1
    assert (await container.relay.get_deposit("evt-1"))["status"] == "COORDINATOR_SUBMITTED"
    assert len(consensus_log.entries) == 1

    await confirm()
    await container.relay.drain()
    assert (await container.relay.get_deposit("evt-1"))["status"] == "COMPLETED"
    assert reporter.events_for("evt-1") == ["acknowledge", "completed"]


async def test_resume_after_append_settles_from_record(container, confirm, reporter):
    # Submitted and executed, but the relay row never left RECEIVED
    row = await container.relay.handle(_notification())
    await confirm()
    await container.relay.drain()
    await container.relay._update("evt-1", status=RelayStatus.RECEIVED)

    resumed = await container.relay.handle(_notification())
    assert resumed["status"] == "COMPLETED"
    assert resumed["coordinator_nonce"] == row["coordinator_nonce"]
    credential = await container.quota_store.get_credential(HOLDER)
    assert credential.lifecycle_count == 0


async def test_run_continues_after_rejection(container):
    async def source():
        yield {"source_event_id": "bad"}
        yield _notification("evt-2")

    await container.relay.run(source())

    assert container.relay.stats.received == 2
    assert (await container.relay.get_deposit("evt-2"))["status"] == "COORDINATOR_SUBMITTED"
