"""Domain Types — verifies identity wrappers and enum values.

Tests:
    - NewType wrappers pass values through unchanged
    - Operation lifecycle has exactly four states, two of them terminal
    - Credential stages cover the full state machine
    - str enums serialize to their plain value
"""

from fountain.core.domain_types import (
    HolderId, Nonce, LogPosition, SourceEventId,
    OperationType, OperationStatus, TERMINAL_STATUSES,
    OperationTrigger, CredentialStage, RelayStatus, LedgerStep,
)


def test_identity_types_wrap_primitives():
    assert HolderId("0.0.1001") == "0.0.1001"
    assert Nonce("n-1") == "n-1"
    assert LogPosition(7) == 7
    assert SourceEventId("evt-1") == "evt-1"


def test_operation_types_are_the_three_intents():
    assert {t.value for t in OperationType} == {"ISSUE", "ACCRUE", "TERMINATE"}


def test_operation_status_has_four_states():
    assert set(OperationStatus) == {
        OperationStatus.SUBMITTED,
        OperationStatus.EXECUTING,
        OperationStatus.COMPLETED,
        OperationStatus.FAILED,
    }


def test_terminal_statuses_are_completed_and_failed():
    assert TERMINAL_STATUSES == {OperationStatus.COMPLETED, OperationStatus.FAILED}


def test_credential_stages_cover_state_machine():
    assert [s.value for s in CredentialStage] == [
        "NOT_ISSUED", "ACTIVE_ACCRUING", "CAP_REACHED", "TERMINATED",
    ]


def test_relay_status_handshake_order():
    assert [s.value for s in RelayStatus] == [
        "RECEIVED", "COORDINATOR_SUBMITTED", "COMPLETED", "FAILED",
    ]


def test_str_enums_compare_to_plain_strings():
    assert OperationTrigger.AUTO == "auto"
    assert LedgerStep.PAY_REFUND.value == "pay_refund"
    assert OperationStatus("COMPLETED") is OperationStatus.COMPLETED
