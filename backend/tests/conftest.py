"""Root conftest — shared test configuration."""

import os

# Ensure tests never reach a real database from settings
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///test.db",
)
