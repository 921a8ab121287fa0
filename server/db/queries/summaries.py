from __future__ import annotations

import json
import uuid

import aiosqlite


async def create_summary(db: aiosqlite.Connection, data: dict) -> str:
    summary_id = data.get("id") or str(uuid.uuid4())
    await db.execute(
        """INSERT INTO evaluation_summaries
           (id, job_id, prompt_id, evaluation_type, avg_score, min_score, max_score,
            total_evaluations, score_distribution, pass_rate)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            summary_id, data["job_id"], data["prompt_id"], data.get("evaluation_type"),
            data["avg_score"], data["min_score"], data["max_score"],
            data["total_evaluations"], json.dumps(data["score_distribution"]),
            data["pass_rate"],
        ),
    )
    await db.commit()
    return summary_id


async def list_summaries(db: aiosqlite.Connection, job_id: str) -> list[dict]:
    async with db.execute(
        "SELECT * FROM evaluation_summaries WHERE job_id = ? ORDER BY created_at, rowid",
        (job_id,),
    ) as cursor:
        return [dict(r) for r in await cursor.fetchall()]
