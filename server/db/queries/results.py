from __future__ import annotations

import json
import uuid

import aiosqlite


async def create_result(db: aiosqlite.Connection, data: dict) -> str:
    """Insert one result row. The (job, prompt, trace) triple is unique."""
    result_id = data.get("id") or str(uuid.uuid4())
    await db.execute(
        """INSERT INTO evaluation_results
           (id, job_id, prompt_id, trace_id, call_id, agent_id, status, evaluation_score,
            evaluation_reasoning, raw_llm_response, execution_time_ms, llm_cost_usd,
            error_message)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            result_id, data["job_id"], data["prompt_id"], data["trace_id"],
            data.get("call_id"), data.get("agent_id"), data["status"],
            json.dumps(data.get("evaluation_score") or {}),
            data.get("evaluation_reasoning"), data.get("raw_llm_response"),
            data.get("execution_time_ms"), data.get("llm_cost_usd"),
            data.get("error_message"),
        ),
    )
    await db.commit()
    return result_id


async def list_results(
    db: aiosqlite.Connection,
    job_id: str,
    prompt_id: str | None = None,
    status: str | None = None,
) -> list[dict]:
    sql = "SELECT * FROM evaluation_results WHERE job_id = ?"
    params: list = [job_id]
    if prompt_id:
        sql += " AND prompt_id = ?"
        params.append(prompt_id)
    if status:
        sql += " AND status = ?"
        params.append(status)
    sql += " ORDER BY created_at, rowid"
    async with db.execute(sql, params) as cursor:
        return [dict(r) for r in await cursor.fetchall()]
