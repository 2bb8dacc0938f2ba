"""Root conftest — shared test configuration."""

import os

# Ensure tests never pick up a real signing key or database
os.environ.setdefault("INTENT_SIGNING_KEY", "test-signing-key")
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///test.db",
)
os.environ.setdefault("LOG_FORMAT", "text")
