"""Pydantic Schemas — request/response validation for the API and the relay boundary.

Invariants:
    - Schemas validate at system boundaries (HTTP bodies, deposit notifications)
    - Holder ids follow the ledger's shard.realm.num format everywhere

Design Decisions:
    - Separate from models: schemas are API contracts, models are persistence
    - Log intents live in core/intents.py: they are a domain contract, not an HTTP one
"""
