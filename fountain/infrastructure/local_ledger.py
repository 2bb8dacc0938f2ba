"""Local Ledger — in-memory token ledger implementing the LedgerGateway protocol.

Invariants:
    - Minted units land in the treasury account; burns draw from the treasury
    - Transfers never overdraw and never touch an account frozen for that token
    - Every call (successful or not) is appended to `calls` in invocation order
    - Injected failures fire exactly once, before the call has any effect

Design Decisions:
    - Stands in for the external gateway in local runs and tests (ledger_backend="memory")
    - Errors raised as LocalLedgerError with ledger-style status codes
"""

import itertools
import logging
from collections import defaultdict

logger = logging.getLogger(__name__)


class LocalLedgerError(Exception):
    """Ledger rejected the call (mirrors a failed receipt status)."""

    def __init__(self, status: str, message: str):
        super().__init__(f"{status}: {message}")
        self.status = status


class InMemoryLedgerGateway:
    """Single-process token ledger with freeze semantics and failure injection."""

    def __init__(self, treasury_account: str):
        self.treasury_account = treasury_account
        self.balances: dict[tuple[str, str], int] = defaultdict(int)
        self.supply: dict[str, int] = defaultdict(int)
        self.frozen: set[tuple[str, str]] = set()
        self.calls: list[tuple[str, dict]] = []
        self._failures: dict[str, list[str]] = defaultdict(list)
        self._tx_counter = itertools.count(1)

    # ─── Test / dev helpers ──────────────────────────────────────

    def credit(self, account: str, token_kind: str, amount: int) -> None:
        """Credit units from outside the ledger model (e.g. an inbound deposit)."""
        self.balances[(account, token_kind)] += amount

    def inject_failure(self, operation: str, message: str = "injected failure") -> None:
        """Make the next call to `operation` fail."""
        self._failures[operation].append(message)

    def calls_of(self, operation: str) -> list[dict]:
        return [args for op, args in self.calls if op == operation]

    def is_frozen(self, holder: str, token_kind: str) -> bool:
        return (holder, token_kind) in self.frozen

    # ─── LedgerGateway protocol ──────────────────────────────────

    async def mint(self, token_kind: str, amount: int) -> str:
        self._begin("mint", token_kind=token_kind, amount=amount)
        self._require_positive(amount)
        self.balances[(self.treasury_account, token_kind)] += amount
        self.supply[token_kind] += amount
        return self._tx_id()

    async def transfer(
        self, token_kind: str, sender: str, recipient: str, amount: int,
    ) -> str:
        self._begin(
            "transfer", token_kind=token_kind, sender=sender,
            recipient=recipient, amount=amount,
        )
        self._require_positive(amount)
        for account in (sender, recipient):
            if (account, token_kind) in self.frozen:
                raise LocalLedgerError(
                    "ACCOUNT_FROZEN_FOR_TOKEN", f"{account} frozen for {token_kind}",
                )
        if self.balances[(sender, token_kind)] < amount:
            raise LocalLedgerError(
                "INSUFFICIENT_TOKEN_BALANCE",
                f"{sender} has {self.balances[(sender, token_kind)]} {token_kind}, "
                f"needs {amount}",
            )
        self.balances[(sender, token_kind)] -= amount
        self.balances[(recipient, token_kind)] += amount
        return self._tx_id()

    async def freeze(self, token_kind: str, holder: str) -> str:
        self._begin("freeze", token_kind=token_kind, holder=holder)
        self.frozen.add((holder, token_kind))
        return self._tx_id()

    async def unfreeze(self, token_kind: str, holder: str) -> str:
        self._begin("unfreeze", token_kind=token_kind, holder=holder)
        self.frozen.discard((holder, token_kind))
        return self._tx_id()

    async def burn(self, token_kind: str, amount: int) -> str:
        self._begin("burn", token_kind=token_kind, amount=amount)
        self._require_positive(amount)
        if self.balances[(self.treasury_account, token_kind)] < amount:
            raise LocalLedgerError(
                "INSUFFICIENT_TOKEN_BALANCE", "treasury cannot burn more than it holds",
            )
        self.balances[(self.treasury_account, token_kind)] -= amount
        self.supply[token_kind] -= amount
        return self._tx_id()

    async def wipe(self, token_kind: str, holder: str, amount: int) -> str:
        self._begin("wipe", token_kind=token_kind, holder=holder, amount=amount)
        self._require_positive(amount)
        if self.balances[(holder, token_kind)] < amount:
            raise LocalLedgerError(
                "INVALID_WIPING_AMOUNT", f"{holder} holds fewer than {amount} {token_kind}",
            )
        self.balances[(holder, token_kind)] -= amount
        self.supply[token_kind] -= amount
        return self._tx_id()

    async def query_balance(self, holder: str, token_kind: str) -> int:
        self._begin("query_balance", holder=holder, token_kind=token_kind)
        return self.balances[(holder, token_kind)]

    # ─── Internals ───────────────────────────────────────────────

    def _begin(self, operation: str, **args) -> None:
        self.calls.append((operation, args))
        pending = self._failures.get(operation)
        if pending:
            message = pending.pop(0)
            logger.info(f"Injected ledger failure on {operation}: {message}")
            raise LocalLedgerError("INJECTED_FAILURE", message)

    def _tx_id(self) -> str:
        return f"{self.treasury_account}@local-{next(self._tx_counter)}"

    @staticmethod
    def _require_positive(amount: int) -> None:
        if amount < 1:
            raise LocalLedgerError("INVALID_TOKEN_AMOUNT", f"amount must be >= 1, got {amount}")
