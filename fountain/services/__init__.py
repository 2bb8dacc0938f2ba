"""Services Layer — stores, coordinator, consumer, relay and read facades.

Invariants:
    - Services own all IO (database, ledger, consensus log); core/ stays pure
    - Collaborators are wired by services/container.py, never imported as singletons

Design Decisions:
    - One service per responsibility: QuotaStore and OperationStore own their tables,
      Coordinator owns execution, DepositRelay owns the deposit handshake
"""
