"""Shared test fixtures for Tracejudge."""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from server.utils.crypto import encrypt


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

_migrations_dir = Path(__file__).resolve().parent.parent / "server" / "db" / "migrations"
MIGRATION_SQL = "\n".join(
    f.read_text() for f in sorted(_migrations_dir.glob("*.sql"))
)

# Stable IDs for seed data
PROJECT_ID = "proj-test-001"
AGENT_ID = "agent-test-001"
OTHER_PROJECT_ID = "proj-other-001"
OTHER_AGENT_ID = "agent-other-001"

PROMPT_ID = "prompt-quality-001"
LEGACY_PROMPT_ID = "prompt-legacy-001"
OPENAI_KEY = "sk-test-openai-key-1234567890"
GROQ_KEY = "gsk_test-groq-key-1234567890"

QUALITY_TEMPLATE = (
    "Rate this call for {{customer_number}} on a 1-5 scale.\n"
    "{{transcript}}\n"
    'Answer in JSON: {"score": <1-5>, "reasoning": "..."}'
)
LEGACY_TEMPLATE = "Give the agent a score from 1 to 5 and answer in JSON."

# (id, call_id, agent_id, customer, ended_reason, duration, created_at, turns)
TRACES = [
    ("trace-1", "call-1", AGENT_ID, "+15550001", "completed", 120.0, "2025-01-10T10:00:00+00:00",
     [("Hi, I need help with my bill", "Sure, I can help with that."),
      ("It was charged twice", "I've refunded the duplicate charge.")]),
    ("trace-2", "call-2", AGENT_ID, "+15550002", "ended", 45.0, "2025-01-09T09:00:00+00:00",
     [("My package never arrived", "Let me check the tracking number.")]),
    ("trace-3", "call-3", AGENT_ID, "+15550003", "success", 300.0, "2025-01-08T23:30:00+00:00",
     [("Can I change my plan?", None), (None, "Yes, which plan would you like?")]),
    ("trace-empty", "call-4", AGENT_ID, "+15550004", "completed", 60.0, "2025-01-07T12:00:00+00:00",
     [("", "  "), (None, None)]),
    ("trace-noanswer", "call-5", AGENT_ID, "+15550005", "customer-did-not-answer", 10.0,
     "2025-01-06T08:00:00+00:00",
     [("Hello?", "Hi, this is a follow-up call.")]),
    ("trace-foreign", "call-6", OTHER_AGENT_ID, "+15550006", "completed", 90.0,
     "2025-01-10T11:00:00+00:00",
     [("Wrong agent", "Indeed.")]),
]


async def seed(conn: aiosqlite.Connection) -> None:
    await conn.executemany(
        "INSERT INTO projects (id, name) VALUES (?, ?)",
        [(PROJECT_ID, "Test Project"), (OTHER_PROJECT_ID, "Other Project")],
    )
    await conn.executemany(
        "INSERT INTO agents (id, project_id, name) VALUES (?, ?, ?)",
        [(AGENT_ID, PROJECT_ID, "Support Agent"), (OTHER_AGENT_ID, OTHER_PROJECT_ID, "Other Agent")],
    )
    for trace_id, call_id, agent_id, customer, reason, duration, created_at, turns in TRACES:
        await conn.execute(
            "INSERT INTO call_logs (id, call_id, agent_id, customer_number, call_ended_reason, "
            "duration_seconds, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (trace_id, call_id, agent_id, customer, reason, duration, created_at),
        )
        for idx, (user_text, agent_text) in enumerate(turns):
            await conn.execute(
                "INSERT INTO transcript_turns (session_id, turn_id, user_transcript, agent_response, "
                "unix_timestamp) VALUES (?, ?, ?, ?, ?)",
                (trace_id, str(idx + 1), user_text, agent_text, 1736500000.0 + idx),
            )

    await conn.execute(
        "INSERT INTO evaluation_prompts (id, project_id, name, evaluation_type, prompt_template, "
        "llm_provider, model, api_key_encrypted) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        (PROMPT_ID, PROJECT_ID, "Call quality", "quality", QUALITY_TEMPLATE,
         "openai", "gpt-4o-mini", encrypt(OPENAI_KEY)),
    )
    await conn.execute(
        "INSERT INTO evaluation_prompts (id, project_id, name, evaluation_type, prompt_template, "
        "llm_provider, model, api_key_encrypted) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        (LEGACY_PROMPT_ID, PROJECT_ID, "Legacy rubric", "resolution", LEGACY_TEMPLATE,
         "groq", "llama-3.1-8b-instant", encrypt(GROQ_KEY)),
    )
    await conn.commit()


@pytest_asyncio.fixture
async def db():
    """In-memory SQLite database with schema + seed data."""
    conn = await aiosqlite.connect(":memory:")
    conn.row_factory = aiosqlite.Row
    await conn.execute("PRAGMA foreign_keys=ON")
    await conn.executescript(MIGRATION_SQL)
    await conn.commit()
    await seed(conn)
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def repo(db):
    from server.services.repository import SQLiteEvaluationRepository

    return SQLiteEvaluationRepository(db)


# ---------------------------------------------------------------------------
# App / client fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def app(db):
    """FastAPI app with test DB injected."""
    from server.db import database as db_module
    original_db = db_module._db
    db_module._db = db

    from server.main import app as fastapi_app

    yield fastapi_app

    db_module._db = original_db


@pytest_asyncio.fixture
async def client(app):
    """Async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def job_data() -> dict:
    return {
        "project_id": PROJECT_ID,
        "agent_id": AGENT_ID,
        "name": "Nightly quality run",
        "prompt_ids": [PROMPT_ID],
        "selection_mode": "all",
    }
