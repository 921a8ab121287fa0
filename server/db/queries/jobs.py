from __future__ import annotations

import json
import uuid

import aiosqlite

# Columns the processor is allowed to touch after creation
_MUTABLE_COLUMNS = {
    "status",
    "total_traces",
    "completed_traces",
    "failed_traces",
    "error_message",
    "started_at",
    "completed_at",
}


async def create_job(db: aiosqlite.Connection, data: dict) -> str:
    job_id = data.get("id") or str(uuid.uuid4())
    selected = data.get("selected_traces")
    criteria = data.get("filter_criteria")
    await db.execute(
        """INSERT INTO evaluation_jobs
           (id, project_id, agent_id, name, description, prompt_ids, selection_mode,
            selected_traces, filter_criteria, status)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'pending')""",
        (
            job_id, data["project_id"], data["agent_id"], data["name"],
            data.get("description"), json.dumps(data["prompt_ids"]),
            data.get("selection_mode", "all"),
            json.dumps(selected) if selected is not None else None,
            json.dumps(criteria) if criteria is not None else None,
        ),
    )
    await db.commit()
    return job_id


async def get_job(db: aiosqlite.Connection, job_id: str) -> dict | None:
    async with db.execute("SELECT * FROM evaluation_jobs WHERE id = ?", (job_id,)) as cursor:
        row = await cursor.fetchone()
        return dict(row) if row else None


async def list_jobs(
    db: aiosqlite.Connection,
    project_id: str,
    agent_id: str | None = None,
    limit: int = 50,
) -> list[dict]:
    sql = "SELECT * FROM evaluation_jobs WHERE project_id = ?"
    params: list = [project_id]
    if agent_id:
        sql += " AND agent_id = ?"
        params.append(agent_id)
    sql += " ORDER BY created_at DESC LIMIT ?"
    params.append(limit)
    async with db.execute(sql, params) as cursor:
        return [dict(r) for r in await cursor.fetchall()]


async def update_job(db: aiosqlite.Connection, job_id: str, **fields) -> None:
    unknown = set(fields) - _MUTABLE_COLUMNS
    if unknown:
        raise ValueError(f"Cannot update job columns: {', '.join(sorted(unknown))}")
    if not fields:
        return
    assignments = ", ".join(f"{col} = ?" for col in fields)
    await db.execute(
        f"UPDATE evaluation_jobs SET {assignments} WHERE id = ?",
        [*fields.values(), job_id],
    )
    await db.commit()
