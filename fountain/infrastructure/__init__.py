"""Infrastructure Layer — external service clients and cross-cutting concerns.

Invariants:
    - Infrastructure never imports from services/ orchestration logic
    - All external calls wrapped with timeout/error mapping

Design Decisions:
    - Resilient wrappers over raw clients (single responsibility)
    - Local ledger and local log live here too: they stand in for the external
      collaborators in development and tests
"""
