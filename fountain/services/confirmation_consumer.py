"""Confirmation Consumer — feeds confirmed consensus log entries to the Coordinator.

Invariants:
    - Entries are decoded at the ingestion boundary; malformed ones never reach the Coordinator
    - Positions at or below the high watermark are redeliveries and are dropped
    - Entries for the same holder execute strictly in log order (chained tasks)
    - At most max_concurrency executions run at once across holders
    - An execution failure never stops the subscription

Design Decisions:
    - Per-holder task chain over one global queue: unrelated holders do not wait on
      each other's ledger round trips
    - halt_on_malformed=True turns a bad entry into a hard stop (strict deployments)
"""

import asyncio
import logging
from dataclasses import dataclass, asdict
from datetime import datetime

from fountain.core.errors import MalformedMessageError
from fountain.core.intents import Intent, decode_intent
from fountain.core.repository_protocols import ConsensusLog, LogEntry
from fountain.services.coordinator import Coordinator

logger = logging.getLogger(__name__)


@dataclass
class ConsumerStats:
    received: int = 0
    dispatched: int = 0
    duplicates: int = 0
    malformed: int = 0
    failed: int = 0
    last_position: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class ConfirmationConsumer:
    """Subscribes to the log and dispatches decoded intents."""

    def __init__(
        self,
        log: ConsensusLog,
        coordinator: Coordinator,
        signing_key: str,
        max_concurrency: int = 8,
        halt_on_malformed: bool = False,
    ):
        self.log = log
        self.coordinator = coordinator
        self.signing_key = signing_key
        self.halt_on_malformed = halt_on_malformed
        self.stats = ConsumerStats()
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._holder_tails: dict[str, asyncio.Task] = {}
        self._tasks: set[asyncio.Task] = set()
        self._runner: asyncio.Task | None = None

    # ─── Lifecycle ───────────────────────────────────────────────

    def start(self, from_time: datetime | None = None) -> asyncio.Task:
        self._runner = asyncio.create_task(self.run(from_time), name="confirmation-consumer")
        return self._runner

    async def stop(self) -> None:
        """Stop subscribing, then let in-flight executions finish."""
        runner, self._runner = self._runner, None
        if runner is not None:
            runner.cancel()
            try:
                await runner
            except asyncio.CancelledError:
                pass
            except MalformedMessageError as e:
                logger.error(f"Consumer had halted on a malformed entry: {e.message}")
        await self.drain()

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def run(self, from_time: datetime | None = None) -> None:
        logger.info("Confirmation consumer subscribed")
        async for entry in self.log.subscribe(from_time):
            await self.handle(entry)
        logger.info("Confirmation consumer subscription ended")

    # ─── Ingestion ───────────────────────────────────────────────

    async def handle(self, entry: LogEntry) -> None:
        self.stats.received += 1
        if entry.position <= self.stats.last_position:
            self.stats.duplicates += 1
            logger.debug(
                f"Dropping redelivered position {entry.position}",
                extra={"position": entry.position},
            )
            return
        self.stats.last_position = entry.position

        try:
            intent = decode_intent(entry.message, self.signing_key)
        except MalformedMessageError as e:
            self.stats.malformed += 1
            e.context.consensus_position = entry.position
            logger.error(
                f"Rejected malformed log entry at position {entry.position}: {e.message}",
                extra={"position": entry.position, "error_code": e.code},
            )
            if self.halt_on_malformed:
                raise
            return

        self._dispatch(intent, entry)

    def _dispatch(self, intent: Intent, entry: LogEntry) -> None:
        previous = self._holder_tails.get(intent.holder)
        task = asyncio.create_task(self._execute_after(previous, intent, entry))
        self._holder_tails[intent.holder] = task
        self._tasks.add(task)

        def _forget(done: asyncio.Task, holder: str = intent.holder) -> None:
            self._tasks.discard(done)
            if self._holder_tails.get(holder) is done:
                del self._holder_tails[holder]

        task.add_done_callback(_forget)

    async def _execute_after(
        self, previous: asyncio.Task | None, intent: Intent, entry: LogEntry,
    ) -> None:
        if previous is not None:
            await asyncio.wait({previous})
        async with self._semaphore:
            try:
                await self.coordinator.on_confirmed(
                    intent, entry.position, entry.confirmed_at,
                )
            except Exception as e:
                self.stats.failed += 1
                logger.error(
                    f"Execution of {intent.nonce} at position {entry.position} raised: {e}",
                    exc_info=True,
                    extra={"nonce": intent.nonce, "holder": intent.holder, "position": entry.position},
                )
            else:
                self.stats.dispatched += 1
