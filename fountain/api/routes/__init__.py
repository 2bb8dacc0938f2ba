"""Route Modules — operations, credentials, deposits, health.

Invariants:
    - Each module owns one APIRouter under /api/v1 with its own tags
    - Handlers only translate HTTP <-> ServiceContainer calls; rules live in core/services
"""
