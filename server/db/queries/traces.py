"""Read-only queries over recorded calls and their transcript turns."""

from __future__ import annotations

import aiosqlite

_CALL_LOG_COLUMNS = (
    "id, call_id, agent_id, customer_number, call_ended_reason, duration_seconds, created_at"
)


async def list_call_logs_for_agent(db: aiosqlite.Connection, agent_id: str) -> list[dict]:
    """All calls for an agent, newest first (ties broken by id)."""
    async with db.execute(
        f"SELECT {_CALL_LOG_COLUMNS} FROM call_logs WHERE agent_id = ? "
        "ORDER BY created_at DESC, id ASC",
        (agent_id,),
    ) as cursor:
        return [dict(r) for r in await cursor.fetchall()]


async def get_call_logs_by_ids(
    db: aiosqlite.Connection, trace_ids: list[str], agent_id: str
) -> list[dict]:
    """Calls whose id is in ``trace_ids`` and that belong to ``agent_id``."""
    if not trace_ids:
        return []
    placeholders = ", ".join("?" for _ in trace_ids)
    sql = (
        f"SELECT {_CALL_LOG_COLUMNS} FROM call_logs "
        f"WHERE id IN ({placeholders}) AND agent_id = ? "
        "ORDER BY created_at DESC, id ASC"
    )
    async with db.execute(sql, [*trace_ids, agent_id]) as cursor:
        return [dict(r) for r in await cursor.fetchall()]


async def get_transcript_turns(db: aiosqlite.Connection, session_id: str) -> list[dict]:
    async with db.execute(
        """SELECT turn_id, user_transcript, agent_response, unix_timestamp, created_at
           FROM transcript_turns
           WHERE session_id = ?
           ORDER BY unix_timestamp ASC, id ASC""",
        (session_id,),
    ) as cursor:
        return [dict(r) for r in await cursor.fetchall()]
