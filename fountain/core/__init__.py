"""Core Layer — pure domain logic: rules, intents, state derivation, payout math.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - Functions are deterministic; errors are raised as typed FountainError subclasses

Design Decisions:
    - Functional core separated from the imperative shell: the Coordinator runs the
      same rule functions at submission and at confirmation
"""
