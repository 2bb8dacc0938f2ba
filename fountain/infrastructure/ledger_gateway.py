"""Resilient Ledger Gateway — wraps any LedgerGateway with error mapping and read retries.

Invariants:
    - Mutations (mint/transfer/freeze/unfreeze/burn/wipe) are attempted exactly once
    - Reads (query_balance) retry transient failures with exponential backoff
    - Transient = transport errors, 429 and 5xx; everything else fails immediately
    - All failures surface as LedgerOperationError (core/errors.py)

Design Decisions:
    - Wrapper over raw gateway: coordinator never sees httpx or local ledger exceptions
    - Mutations never retried: a timed-out transfer may still have landed on the ledger
    - ±25% jitter on backoff: spreads concurrent readers after a gateway outage
"""

import asyncio
import logging
import random

import httpx

from fountain.core.errors import ErrorContext, LedgerOperationError
from fountain.core.repository_protocols import LedgerGateway

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


def _is_transient(e: Exception) -> bool:
    if isinstance(e, httpx.TransportError):
        return True
    if isinstance(e, httpx.HTTPStatusError):
        return e.response.status_code in _RETRYABLE_STATUS
    return False


class ResilientLedgerGateway:
    """LedgerGateway decorator adding logging, error mapping and read retries."""

    def __init__(
        self,
        inner: LedgerGateway,
        max_read_retries: int = 3,
        base_delay_ms: int = 500,
        max_delay_ms: int = 10_000,
    ):
        self.inner = inner
        self.max_read_retries = max_read_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms

    async def mint(self, token_kind: str, amount: int) -> str:
        return await self._mutate(
            "mint", self.inner.mint(token_kind, amount),
            ErrorContext(debug_info={"token_kind": token_kind, "amount": amount}),
        )

    async def transfer(
        self, token_kind: str, sender: str, recipient: str, amount: int,
    ) -> str:
        return await self._mutate(
            "transfer", self.inner.transfer(token_kind, sender, recipient, amount),
            ErrorContext(debug_info={
                "token_kind": token_kind, "sender": sender,
                "recipient": recipient, "amount": amount,
            }),
        )

    async def freeze(self, token_kind: str, holder: str) -> str:
        return await self._mutate(
            "freeze", self.inner.freeze(token_kind, holder),
            ErrorContext(holder=holder, debug_info={"token_kind": token_kind}),
        )

    async def unfreeze(self, token_kind: str, holder: str) -> str:
        return await self._mutate(
            "unfreeze", self.inner.unfreeze(token_kind, holder),
            ErrorContext(holder=holder, debug_info={"token_kind": token_kind}),
        )

    async def burn(self, token_kind: str, amount: int) -> str:
        return await self._mutate(
            "burn", self.inner.burn(token_kind, amount),
            ErrorContext(debug_info={"token_kind": token_kind, "amount": amount}),
        )

    async def wipe(self, token_kind: str, holder: str, amount: int) -> str:
        return await self._mutate(
            "wipe", self.inner.wipe(token_kind, holder, amount),
            ErrorContext(holder=holder, debug_info={"token_kind": token_kind, "amount": amount}),
        )

    async def query_balance(self, holder: str, token_kind: str) -> int:
        """Read a balance, retrying transient gateway failures."""
        context = ErrorContext(holder=holder, debug_info={"token_kind": token_kind})
        attempt = 0
        while True:
            try:
                return await self.inner.query_balance(holder, token_kind)
            except LedgerOperationError:
                raise
            except Exception as e:
                if not _is_transient(e):
                    raise LedgerOperationError("query_balance", str(e), context) from e
                if attempt >= self.max_read_retries:
                    raise LedgerOperationError(
                        "query_balance",
                        f"transient failure after {self.max_read_retries} retries: {e}",
                        context,
                    ) from e
                delay = self._backoff(attempt)
                attempt += 1
                logger.warning(
                    f"Transient ledger read error, retry after {delay}ms: {e}",
                    extra={"holder": holder, "attempt": attempt},
                )
                await asyncio.sleep(delay / 1000)

    async def aclose(self) -> None:
        close = getattr(self.inner, "aclose", None)
        if close is not None:
            await close()

    async def _mutate(self, step: str, call, context: ErrorContext) -> str:
        try:
            tx_id = await call
        except LedgerOperationError:
            raise
        except Exception as e:
            logger.error(
                f"Ledger {step} failed: {e}",
                extra={"ledger_step": step, "holder": context.holder},
            )
            raise LedgerOperationError(step, str(e), context) from e
        logger.info(
            f"Ledger {step} ok: {tx_id}",
            extra={"ledger_step": step, "holder": context.holder},
        )
        return tx_id

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311
