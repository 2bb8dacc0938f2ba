"""Completion Broker — in-process notification of terminal Operation Records.

Invariants:
    - publish() resolves every future currently watching the record's nonce, once
    - Delivery is at-most-once and in-process: nothing is buffered for absent watchers
    - wait_for_terminal() re-reads the store AFTER registering, so a completion
      published before the watch started is still observed
    - Timing out (or cancelling) a wait never retracts the submitted intent

Design Decisions:
    - asyncio.Future per watcher + asyncio.wait_for: structured wait, no polling timer
    - Broker knows nothing about the database; the waiter combines broker + OperationStore
"""

import asyncio
import logging
from collections import defaultdict

from fountain.core.domain_types import TERMINAL_STATUSES
from fountain.core.errors import ConsensusTimeoutError, ErrorContext
from fountain.services.operation_store import OperationStore

logger = logging.getLogger(__name__)

_TERMINAL_VALUES = {s.value for s in TERMINAL_STATUSES}


class CompletionBroker:
    """Observer registry keyed by nonce."""

    def __init__(self):
        self._watchers: dict[str, list[asyncio.Future]] = defaultdict(list)

    def watch(self, nonce: str) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        self._watchers[nonce].append(future)
        return future

    def unwatch(self, nonce: str, future: asyncio.Future) -> None:
        watchers = self._watchers.get(nonce)
        if not watchers:
            return
        if future in watchers:
            watchers.remove(future)
        if not watchers:
            del self._watchers[nonce]

    def publish(self, record: dict) -> int:
        """Resolve watchers of record["nonce"]; returns how many were notified."""
        notified = 0
        for future in self._watchers.pop(record["nonce"], []):
            if not future.done():
                future.set_result(record)
                notified += 1
        return notified

    @property
    def watching(self) -> int:
        return sum(len(w) for w in self._watchers.values())


class CompletionWaiter:
    """Await a nonce reaching COMPLETED or FAILED."""

    def __init__(self, broker: CompletionBroker, operations: OperationStore):
        self.broker = broker
        self.operations = operations

    async def wait_for_terminal(self, nonce: str, timeout: float) -> dict:
        future = self.broker.watch(nonce)
        try:
            record = await self.operations.get(nonce)
            if record is not None and record["status"] in _TERMINAL_VALUES:
                return record
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Gave up waiting for {nonce} after {timeout}s",
                extra={"nonce": nonce},
            )
            raise ConsensusTimeoutError(nonce, timeout, ErrorContext(nonce=nonce))
        finally:
            self.broker.unwatch(nonce, future)
