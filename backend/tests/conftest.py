"""
Shared pytest fixtures for backend tests.
Uses a temp SQLite database or in-memory storage for isolation, and a fake
remote parser instead of the Anthropic API.
"""
import asyncio
import json
import pytest
import sqlite3
import sys
import os
from datetime import datetime, timezone

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database
from database import MemoryStorage

# A Friday
REFERENCE_NOW = datetime(2026, 10, 16, 9, 30, tzinfo=timezone.utc)


class FakeRemoteParser:
    """Stands in for the model provider. Records calls, returns a canned answer or raises."""

    def __init__(self, response: str = "", error: Exception = None, delay: float = 0):
        self.response = response
        self.error = error
        self.delay = delay
        self.calls = []

    async def remote_parse(self, input_text, mode, known_projects, context):
        self.calls.append({
            "input": input_text,
            "mode": mode,
            "known_projects": known_projects,
            "context": context,
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.response


@pytest.fixture
def now():
    return REFERENCE_NOW


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def fake_remote():
    return FakeRemoteParser(json.dumps({
        "name": "Buy milk",
        "project": "Groceries",
        "deadline": "2026-10-17T18:00:00+00:00",
        "chunks": ["Check fridge", "Go to store", "Pay"],
    }))


@pytest.fixture
def test_db(monkeypatch, tmp_path):
    """
    Create an isolated test database for each test.
    Uses a temp file (not :memory:) because database.py opens new connections per operation.
    """
    db_path = str(tmp_path / "test.db")
    monkeypatch.setattr(database, "DATABASE_PATH", db_path)
    monkeypatch.setattr(database, "init_db", lambda: None)

    # Create tables directly (skip alembic for tests)
    conn = sqlite3.connect(db_path)
    conn.executescript("""
        CREATE TABLE kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
    """)
    conn.commit()
    conn.close()

    yield db_path


@pytest.fixture
def app_client(test_db, monkeypatch, fake_remote):
    """
    Create a test client for the FastAPI app.
    Mocks init_db to skip alembic migrations and swaps in the fake remote parser.
    """
    from fastapi.testclient import TestClient
    import main
    from usage import UsageTracker

    monkeypatch.setattr(main, "init_db", lambda: None)
    monkeypatch.setattr(main, "remote_parser", fake_remote)
    monkeypatch.setattr(main.engine, "remote", fake_remote)
    monkeypatch.setattr(main, "proxy_usage", UsageTracker())

    with TestClient(main.app) as client:
        yield client
