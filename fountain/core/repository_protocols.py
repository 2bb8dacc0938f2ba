"""Boundary Protocols — contracts between the coordination core and external collaborators.

Invariants:
    - Core NEVER imports concrete gateways or log clients: dependency arrows point inward
    - Every ledger mutation returns a transaction id; reads return amounts
    - Each gateway call is its own unit of work (no composed transactions)
    - ConsensusLog.subscribe delivers at-least-once, in position order

Design Decisions:
    - Protocol over ABC: structural subtyping, fakes need no inheritance
    - Async in Protocol: every boundary call is potentially blocking I/O
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol


@dataclass(frozen=True)
class LogEntry:
    """One confirmed consensus log entry."""
    position: int
    message: bytes
    confirmed_at: datetime


class LedgerGateway(Protocol):
    """Token primitives on the external ledger, signed by the treasury authority."""
    async def mint(self, token_kind: str, amount: int) -> str: ...
    async def transfer(
        self, token_kind: str, sender: str, recipient: str, amount: int,
    ) -> str: ...
    async def freeze(self, token_kind: str, holder: str) -> str: ...
    async def unfreeze(self, token_kind: str, holder: str) -> str: ...
    async def burn(self, token_kind: str, amount: int) -> str: ...
    async def wipe(self, token_kind: str, holder: str, amount: int) -> str: ...
    async def query_balance(self, holder: str, token_kind: str) -> int: ...


class ConsensusLog(Protocol):
    """Totally ordered, replicated, append-only message log."""
    async def append(self, message: bytes) -> int: ...
    def subscribe(
        self, from_time: datetime | None = None,
    ) -> AsyncIterator[LogEntry]: ...


class DepositReporter(Protocol):
    """Depositor-facing entry point that accepted the original deposit."""
    async def acknowledge(
        self, source_event_id: str, coordinator_nonce: str,
    ) -> None: ...
    async def confirm_completed(
        self, source_event_id: str, result: dict,
    ) -> None: ...
    async def report_failure(self, source_event_id: str, reason: str) -> None: ...
