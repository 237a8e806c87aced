"""Shared pytest configuration.

Settings are loaded at import time, so the required values get harmless
defaults here before any ``app`` module is imported. A real ``.env`` wins.
"""

import logging
import os

import pytest
from dotenv import load_dotenv

load_dotenv()

os.environ.setdefault("DATABASE_URL", "postgresql+asyncpg://localhost:5432/clip_scout_test")
os.environ.setdefault("ENV", "dev")
os.environ.setdefault("SQL_ECHO", "false")
os.environ.setdefault("AUTO_INIT_DB", "false")


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Ensure HTTPX uses asyncio backend during tests."""
    return "asyncio"


@pytest.fixture
def app_logs(caplog, monkeypatch):
    """caplog that also sees ``app.*`` records once logging is configured."""
    monkeypatch.setattr(logging.getLogger("app"), "propagate", True)
    caplog.set_level(logging.INFO, logger="app")
    return caplog
