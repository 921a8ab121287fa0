"""Evaluation prompt CRUD — encrypts provider keys on the way in, masks them on the way out."""

from __future__ import annotations

import logging

import aiosqlite
from cryptography.fernet import InvalidToken

from server.db.queries import prompts as prompt_queries
from server.models.evaluation import PromptCreate
from server.services.template_service import ensure_transcript_placeholder
from server.utils.crypto import decrypt, encrypt, mask_key

logger = logging.getLogger(__name__)


def _build_prompt_response(row: dict) -> dict:
    """Row as returned by the API: ciphertext dropped, key shown masked."""
    data = dict(row)
    encrypted = data.pop("api_key_encrypted", None)
    preview = None
    if encrypted:
        try:
            preview = mask_key(decrypt(encrypted))
        except InvalidToken:
            logger.warning("Stored API key for prompt %s can't be decrypted", data.get("id"))
    data["has_api_key"] = bool(encrypted)
    data["api_key_preview"] = preview
    return data


async def create_prompt(db: aiosqlite.Connection, body: PromptCreate) -> dict:
    """Store a new prompt. A template without ``{{transcript}}`` is repaired first."""
    data = body.model_dump(exclude={"api_key"})
    template, repaired = ensure_transcript_placeholder(body.prompt_template)
    if repaired:
        logger.warning("Prompt %r saved without {{transcript}}; appended transcript section", body.name)
    data["prompt_template"] = template
    data["api_key_encrypted"] = encrypt(body.api_key) if body.api_key else None

    prompt_id = await prompt_queries.create_prompt(db, data)
    logger.info("Created evaluation prompt %s (%s/%s)", prompt_id, body.llm_provider, body.model)
    return await get_prompt(db, prompt_id)


async def get_prompt(db: aiosqlite.Connection, prompt_id: str) -> dict | None:
    row = await prompt_queries.get_prompt(db, prompt_id)
    return _build_prompt_response(row) if row else None


async def list_prompts(
    db: aiosqlite.Connection,
    project_id: str | None = None,
    evaluation_type: str | None = None,
) -> list[dict]:
    rows = await prompt_queries.list_prompts(db, project_id, evaluation_type)
    return [_build_prompt_response(r) for r in rows]


async def fix_prompt_templates(db: aiosqlite.Connection) -> dict:
    """Append the transcript section to every stored template that lacks one.

    Returns ``{"fixed": n, "total": m, "prompts": [{"id", "name"}, ...]}``
    where ``total`` counts the prompts that needed fixing.
    """
    candidates = await prompt_queries.list_prompts_missing_transcript(db)
    fixed: list[dict] = []
    for row in candidates:
        template, repaired = ensure_transcript_placeholder(row["prompt_template"])
        if not repaired:
            # LIKE matched a spacing variant such as {{ transcript }}
            continue
        if await prompt_queries.update_prompt_template(db, row["id"], template):
            fixed.append({"id": row["id"], "name": row["name"]})
            logger.info("Fixed template for prompt %s (%s)", row["id"], row["name"])

    logger.info("Template repair: fixed %d of %d prompts", len(fixed), len(candidates))
    return {"fixed": len(fixed), "total": len(candidates), "prompts": fixed}
