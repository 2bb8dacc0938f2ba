"""Local Consensus Log — in-memory ConsensusLog plus a logging DepositReporter.

Invariants:
    - Positions are assigned 1, 2, 3, ... in append order (total order)
    - Every subscriber sees every delivery in the same order
    - redeliver() re-emits an already confirmed entry (at-least-once simulation)
    - close() ends all open subscriptions after they drain pending deliveries

Design Decisions:
    - asyncio.Condition wakes subscribers: no polling interval
    - Confirmation is immediate on append; confirmed_at is the append time
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from datetime import datetime, timezone

from fountain.core.repository_protocols import LogEntry

logger = logging.getLogger(__name__)


class LocalLogError(Exception):
    """Append rejected by the local log (failure injection)."""


class InMemoryConsensusLog:
    """Single-process, totally ordered append-only log."""

    def __init__(self):
        self.entries: list[LogEntry] = []
        self._deliveries: list[LogEntry] = []
        self._condition = asyncio.Condition()
        self._closed = False
        self._fail_appends = 0

    def fail_next_append(self, count: int = 1) -> None:
        self._fail_appends += count

    async def append(self, message: bytes) -> int:
        if self._fail_appends:
            self._fail_appends -= 1
            raise LocalLogError("append rejected")
        async with self._condition:
            entry = LogEntry(
                position=len(self.entries) + 1,
                message=message,
                confirmed_at=datetime.now(timezone.utc),
            )
            self.entries.append(entry)
            self._deliveries.append(entry)
            self._condition.notify_all()
        return entry.position

    async def redeliver(self, position: int) -> None:
        """Deliver an already confirmed entry a second time."""
        async with self._condition:
            self._deliveries.append(self.entries[position - 1])
            self._condition.notify_all()

    async def close(self) -> None:
        async with self._condition:
            self._closed = True
            self._condition.notify_all()

    async def subscribe(
        self, from_time: datetime | None = None,
    ) -> AsyncIterator[LogEntry]:
        index = 0
        while True:
            async with self._condition:
                await self._condition.wait_for(
                    lambda: index < len(self._deliveries) or self._closed,
                )
                if index >= len(self._deliveries):
                    return
                batch = self._deliveries[index:]
                index = len(self._deliveries)
            for entry in batch:
                if from_time is not None and entry.confirmed_at < from_time:
                    continue
                yield entry


class LoggingDepositReporter:
    """DepositReporter that logs and records handshake callbacks.

    Used when no depositor-facing entry point is wired in; the recorded
    events back the relay tests.
    """

    def __init__(self):
        self.events: list[tuple[str, str, object]] = []

    async def acknowledge(self, source_event_id: str, coordinator_nonce: str) -> None:
        self.events.append(("acknowledge", source_event_id, coordinator_nonce))
        logger.info(
            f"Deposit {source_event_id} acknowledged as {coordinator_nonce}",
            extra={"source_event_id": source_event_id, "nonce": coordinator_nonce},
        )

    async def confirm_completed(self, source_event_id: str, result: dict) -> None:
        self.events.append(("completed", source_event_id, result))
        logger.info(
            f"Deposit {source_event_id} completed",
            extra={"source_event_id": source_event_id},
        )

    async def report_failure(self, source_event_id: str, reason: str) -> None:
        self.events.append(("failed", source_event_id, reason))
        logger.warning(
            f"Deposit {source_event_id} failed: {reason}",
            extra={"source_event_id": source_event_id},
        )

    def events_for(self, source_event_id: str) -> list[str]:
        return [kind for kind, sid, _ in self.events if sid == source_event_id]
