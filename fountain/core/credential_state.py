"""Credential State — immutable snapshot, lifecycle stage derivation, invariant checks.

Invariants:
    - remaining_quota + total_accrued == max_quota for every snapshot
    - cap_reached == (remaining_quota == 0)
    - derive_stage is PURE: same snapshot in, same stage out
    - None snapshot means the holder has never been issued a credential

Design Decisions:
    - Snapshot decoupled from the ORM row: core logic never touches AsyncSession objects
    - Archived credentials keep their row (lifecycle_count survives re-issue)
"""

from dataclasses import dataclass, asdict
from datetime import datetime

from fountain.core.domain_types import CredentialStage


@dataclass(frozen=True)
class CredentialSnapshot:
    """Point-in-time view of one holder's credential row."""
    holder: str
    issued_at: datetime | None
    max_quota: int
    total_accrued: int
    remaining_quota: int
    cap_reached: bool
    active: bool
    lifecycle_count: int

    def to_dict(self) -> dict:
        data = asdict(self)
        data["issued_at"] = self.issued_at.isoformat() if self.issued_at else None
        return data


def derive_stage(credential: CredentialSnapshot | None) -> CredentialStage:
    """Map a snapshot onto the credential state machine."""
    if credential is None:
        return CredentialStage.NOT_ISSUED
    if not credential.active:
        return CredentialStage.TERMINATED
    if credential.cap_reached:
        return CredentialStage.CAP_REACHED
    return CredentialStage.ACTIVE_ACCRUING


def invariant_violations(credential: CredentialSnapshot) -> list[str]:
    """Return human-readable violations; empty list means the snapshot is consistent."""
    violations = []
    if credential.remaining_quota + credential.total_accrued != credential.max_quota:
        violations.append(
            f"remaining_quota ({credential.remaining_quota}) + total_accrued "
            f"({credential.total_accrued}) != max_quota ({credential.max_quota})"
        )
    if credential.cap_reached != (credential.remaining_quota == 0):
        violations.append(
            f"cap_reached={credential.cap_reached} but "
            f"remaining_quota={credential.remaining_quota}"
        )
    if credential.remaining_quota < 0 or credential.total_accrued < 0:
        violations.append("quota counters must be non-negative")
    return violations


def available_actions(
    stage: CredentialStage, credential: CredentialSnapshot | None,
    allow_early_termination: bool = False,
) -> list[dict]:
    """Next operations a holder may submit from the given stage."""
    if stage in (CredentialStage.NOT_ISSUED, CredentialStage.TERMINATED):
        return [{
            "action": "ISSUE",
            "description": "Deposit the issuance price to receive a credential",
        }]
    if stage == CredentialStage.CAP_REACHED:
        return [{
            "action": "TERMINATE",
            "description": "Quota exhausted: settle the deposit and archive the credential",
        }]

    actions = [{
        "action": "ACCRUE",
        "description": f"Accrue rewards ({credential.remaining_quota} remaining)",
    }]
    if allow_early_termination:
        actions.append({
            "action": "TERMINATE",
            "description": "Terminate early and settle the deposit",
        })
    return actions
