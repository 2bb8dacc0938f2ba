"""Service test fixtures — file-backed SQLite, in-memory ledger/log, wired container.

Invariants:
    - Every test gets a fresh SQLite database under tmp_path
    - The consumer is NOT started by default: confirm() feeds it log entries
      explicitly so execution order is deterministic
    - The escrow account starts funded for ten payouts

Design Decisions:
    - File SQLite over :memory: (ADR: several sessions are open at once and
      :memory: shares a single connection across them)
    - Real container built via build_container: tests exercise the same wiring
      as the FastAPI lifespan, only the collaborators are in-memory
"""

import pytest
from httpx import ASGITransport, AsyncClient

from fountain.config import Settings
from fountain.infrastructure.database import DatabaseSessionManager
from fountain.infrastructure.local_ledger import InMemoryLedgerGateway
from fountain.infrastructure.local_log import (
    InMemoryConsensusLog, LoggingDepositReporter,
)
from fountain.main import app
from fountain.services.container import ServiceContainer, build_container

HOLDER = "0.0.1001"
OTHER_HOLDER = "0.0.2002"
PRICE = 100_000_000


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'fountain.db'}",
        intent_signing_key="test-signing-key",
        ledger_backend="memory",
        ledger_base_delay_ms=1,
        ledger_max_delay_ms=5,
        relay_wait_timeout_seconds=5.0,
        orchestration_timeout_seconds=5.0,
    )


@pytest.fixture
async def db_manager(settings):
    manager = DatabaseSessionManager(settings.database_url)
    await manager.create_all()
    yield manager
    await manager.dispose()


@pytest.fixture
def ledger(settings) -> InMemoryLedgerGateway:
    gateway = InMemoryLedgerGateway(settings.treasury_account)
    gateway.credit(settings.escrow_account, settings.settlement_token, 10 * PRICE)
    return gateway


@pytest.fixture
def consensus_log() -> InMemoryConsensusLog:
    return InMemoryConsensusLog()


@pytest.fixture
def reporter() -> LoggingDepositReporter:
    return LoggingDepositReporter()


@pytest.fixture
async def make_container(db_manager, ledger, consensus_log, reporter):
    """Factory for containers sharing the test's DB, ledger and log.

    make_container(**overrides) applies settings overrides, e.g.
    make_container(credential_removal_mode="wipe").
    """
    built: list[ServiceContainer] = []

    def _make(base: Settings, **overrides) -> ServiceContainer:
        container = build_container(
            base.model_copy(update=overrides), db_manager,
            ledger=ledger, log=consensus_log, reporter=reporter,
        )
        built.append(container)
        return container

    yield _make

    await consensus_log.close()
    for container in built:
        await container.consumer.stop()
        await container.relay.stop()


@pytest.fixture
def container(make_container, settings) -> ServiceContainer:
    return make_container(settings)


@pytest.fixture
def confirm(container, consensus_log):
    """Deliver every not-yet-seen log entry to a consumer and wait for execution."""

    async def _confirm(target: ServiceContainer | None = None) -> None:
        consumer = (target or container).consumer
        for entry in list(consensus_log.entries):
            if entry.position > consumer.stats.last_position:
                await consumer.handle(entry)
        await consumer.drain()

    return _confirm


@pytest.fixture
def issue(container, confirm):
    """Issue a credential end to end and return the Operation Record."""

    async def _issue(holder: str = HOLDER, nonce: str = "issue-1") -> dict:
        await container.coordinator.submit_issue(holder, PRICE, nonce)
        await confirm()
        return await container.operations.get(nonce)

    return _issue


@pytest.fixture
async def client(container):
    """FastAPI test client bound to the test container (lifespan bypassed)."""
    app.state.container = container
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c
    del app.state.container
