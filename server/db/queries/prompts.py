from __future__ import annotations

import uuid

import aiosqlite


async def create_prompt(db: aiosqlite.Connection, data: dict) -> str:
    prompt_id = data.get("id") or str(uuid.uuid4())
    await db.execute(
        """INSERT INTO evaluation_prompts
           (id, project_id, name, description, evaluation_type, scoring_output_type,
            prompt_template, llm_provider, model, api_url, api_key_encrypted,
            temperature, max_tokens)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            prompt_id, data["project_id"], data["name"], data.get("description"),
            data.get("evaluation_type", "quality"), data.get("scoring_output_type", "float"),
            data["prompt_template"], data.get("llm_provider", "openai"),
            data.get("model", "gpt-4o-mini"), data.get("api_url"),
            data.get("api_key_encrypted"), data.get("temperature", 0.0),
            data.get("max_tokens", 1000),
        ),
    )
    await db.commit()
    return prompt_id


async def get_prompt(db: aiosqlite.Connection, prompt_id: str) -> dict | None:
    async with db.execute("SELECT * FROM evaluation_prompts WHERE id = ?", (prompt_id,)) as cursor:
        row = await cursor.fetchone()
        return dict(row) if row else None


async def get_prompts_by_ids(db: aiosqlite.Connection, prompt_ids: list[str]) -> list[dict]:
    if not prompt_ids:
        return []
    placeholders = ", ".join("?" for _ in prompt_ids)
    async with db.execute(
        f"SELECT * FROM evaluation_prompts WHERE id IN ({placeholders})", prompt_ids
    ) as cursor:
        rows = [dict(r) for r in await cursor.fetchall()]
    # Keep the order the job asked for
    order = {pid: idx for idx, pid in enumerate(prompt_ids)}
    return sorted(rows, key=lambda r: order[r["id"]])


async def list_prompts(
    db: aiosqlite.Connection,
    project_id: str | None = None,
    evaluation_type: str | None = None,
) -> list[dict]:
    conditions: list[str] = []
    params: list = []
    if project_id:
        conditions.append("project_id = ?")
        params.append(project_id)
    if evaluation_type:
        conditions.append("evaluation_type = ?")
        params.append(evaluation_type)

    sql = "SELECT * FROM evaluation_prompts"
    if conditions:
        sql += " WHERE " + " AND ".join(conditions)
    sql += " ORDER BY created_at DESC, name"
    async with db.execute(sql, params) as cursor:
        return [dict(r) for r in await cursor.fetchall()]


async def list_prompts_missing_transcript(db: aiosqlite.Connection) -> list[dict]:
    async with db.execute(
        "SELECT * FROM evaluation_prompts WHERE prompt_template NOT LIKE '%{{transcript}}%'"
    ) as cursor:
        return [dict(r) for r in await cursor.fetchall()]


async def update_prompt_template(
    db: aiosqlite.Connection, prompt_id: str, prompt_template: str
) -> bool:
    cursor = await db.execute(
        """UPDATE evaluation_prompts
           SET prompt_template = ?, updated_at = datetime('now')
           WHERE id = ?""",
        (prompt_template, prompt_id),
    )
    await db.commit()
    return cursor.rowcount > 0


async def delete_prompt(db: aiosqlite.Connection, prompt_id: str) -> None:
    await db.execute("DELETE FROM evaluation_prompts WHERE id = ?", (prompt_id,))
    await db.commit()
