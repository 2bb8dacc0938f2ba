"""Request schemas — submission bodies and deposit notifications."""

import pytest
from pydantic import ValidationError

from fountain.schemas.deposits import DepositNotification
from fountain.schemas.operations import AccrueRequest, IssueRequest, SubmissionReceipt


def test_issue_request_accepts_account_id():
    body = IssueRequest(holder="0.0.1001", deposit_amount=100_000_000, nonce="n-1")
    assert body.deposit_amount == 100_000_000


@pytest.mark.parametrize("holder", ["alice", "0.0", "0.0.1001x"])
def test_holder_pattern_enforced(holder):
    with pytest.raises(ValidationError):
        AccrueRequest(holder=holder, amount=1, nonce="n-1")


def test_nonce_length_capped():
    with pytest.raises(ValidationError):
        AccrueRequest(holder="0.0.1001", amount=1, nonce="n" * 101)


def test_empty_nonce_rejected():
    with pytest.raises(ValidationError):
        AccrueRequest(holder="0.0.1001", amount=1, nonce="")


def test_receipt_defaults():
    receipt = SubmissionReceipt(
        nonce="n-1", type="ACCRUE", holder="0.0.1001", log_position=3, status="SUBMITTED",
    )
    assert receipt.duplicate is False
    assert receipt.result is None


def test_notification_ignores_unknown_fields():
    notification = DepositNotification.model_validate({
        "source_event_id": "evt-1", "depositor": "0.0.1001",
        "amount": 100_000_000, "memo": "hello",
    })
    assert notification.deposit_tx_id is None
    assert not hasattr(notification, "memo")


def test_notification_requires_positive_amount():
    with pytest.raises(ValidationError):
        DepositNotification(source_event_id="evt-1", depositor="0.0.1001", amount=0)
