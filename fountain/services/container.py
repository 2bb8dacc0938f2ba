"""Service Container — builds and owns every long-lived collaborator.

Invariants:
    - Built once per process (FastAPI lifespan) and held on app.state
    - No module-level singletons: tests build their own container with fakes
    - The ledger is always wrapped in ResilientLedgerGateway, fakes included

Design Decisions:
    - Plain dataclass + build function over a DI framework: the graph is small
      and acyclic (stores -> coordinator -> consumer/relay -> orchestrator/facade)
"""

import logging
from dataclasses import dataclass

from fountain.config import Settings
from fountain.core.repository_protocols import (
    ConsensusLog, DepositReporter, LedgerGateway,
)
from fountain.infrastructure.database import DatabaseSessionManager
from fountain.infrastructure.http_ledger import HttpLedgerGateway
from fountain.infrastructure.ledger_gateway import ResilientLedgerGateway
from fountain.infrastructure.local_ledger import InMemoryLedgerGateway
from fountain.infrastructure.local_log import InMemoryConsensusLog, LoggingDepositReporter
from fountain.services.completion import CompletionBroker, CompletionWaiter
from fountain.services.confirmation_consumer import ConfirmationConsumer
from fountain.services.coordinator import Coordinator
from fountain.services.deposit_relay import DepositRelay
from fountain.services.operation_store import OperationStore
from fountain.services.orchestration import MembershipOrchestrator
from fountain.services.quota_store import QuotaStore
from fountain.services.status_facade import StatusFacade

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    db_manager: DatabaseSessionManager
    ledger: ResilientLedgerGateway
    log: ConsensusLog
    reporter: DepositReporter
    quota_store: QuotaStore
    operations: OperationStore
    broker: CompletionBroker
    waiter: CompletionWaiter
    coordinator: Coordinator
    consumer: ConfirmationConsumer
    relay: DepositRelay
    orchestrator: MembershipOrchestrator
    status: StatusFacade

    async def start(self) -> None:
        self.consumer.start()
        settled = await self.relay.reconcile_pending()
        logger.info(f"Services started ({settled} pending deposit(s) reconciled)")

    async def shutdown(self) -> None:
        await self.consumer.stop()
        await self.relay.stop()
        await self.ledger.aclose()
        logger.info("Services stopped")


def build_ledger(settings: Settings) -> LedgerGateway:
    """Raw gateway selected by settings.ledger_backend."""
    if settings.ledger_backend == "http":
        return HttpLedgerGateway(
            settings.ledger_base_url,
            api_token=settings.ledger_api_token,
            timeout_seconds=settings.ledger_timeout_seconds,
        )
    return InMemoryLedgerGateway(settings.treasury_account)


def build_container(
    settings: Settings,
    db_manager: DatabaseSessionManager,
    ledger: LedgerGateway | None = None,
    log: ConsensusLog | None = None,
    reporter: DepositReporter | None = None,
) -> ServiceContainer:
    resilient = ResilientLedgerGateway(
        ledger if ledger is not None else build_ledger(settings),
        max_read_retries=settings.ledger_read_retries,
        base_delay_ms=settings.ledger_base_delay_ms,
        max_delay_ms=settings.ledger_max_delay_ms,
    )
    log = log if log is not None else InMemoryConsensusLog()
    reporter = reporter if reporter is not None else LoggingDepositReporter()

    quota_store = QuotaStore(db_manager)
    operations = OperationStore(db_manager)
    broker = CompletionBroker()
    waiter = CompletionWaiter(broker, operations)
    coordinator = Coordinator(settings, quota_store, operations, resilient, log, broker)
    consumer = ConfirmationConsumer(
        log, coordinator, settings.intent_signing_key,
        max_concurrency=settings.consumer_max_concurrency,
        halt_on_malformed=settings.halt_on_malformed_message,
    )
    relay = DepositRelay(
        db_manager, coordinator, waiter, reporter,
        issuance_price=settings.issuance_price,
        wait_timeout_seconds=settings.relay_wait_timeout_seconds,
    )
    orchestrator = MembershipOrchestrator(
        coordinator, relay, waiter, timeout_seconds=settings.orchestration_timeout_seconds,
    )
    status = StatusFacade(settings, quota_store, operations, relay, consumer)

    return ServiceContainer(
        settings=settings,
        db_manager=db_manager,
        ledger=resilient,
        log=log,
        reporter=reporter,
        quota_store=quota_store,
        operations=operations,
        broker=broker,
        waiter=waiter,
        coordinator=coordinator,
        consumer=consumer,
        relay=relay,
        orchestrator=orchestrator,
        status=status,
    )
