from __future__ import annotations

import aiosqlite


async def get_agent(db: aiosqlite.Connection, agent_id: str) -> dict | None:
    async with db.execute("SELECT * FROM agents WHERE id = ?", (agent_id,)) as cursor:
        row = await cursor.fetchone()
        return dict(row) if row else None
