"""Evaluation prompt (rubric) API endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException

from server.db.database import get_db
from server.db.queries import prompts as prompt_queries
from server.models.evaluation import ConnectionTestRequest, PromptCreate, TemplateValidateRequest
from server.services import prompt_service
from server.services.llm_gateway import LLMConfigurationError, LLMResponseError, check_connection
from server.services.rubric_library import list_rubrics
from server.services.template_service import validate_prompt_template

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/eval", tags=["prompts"])


@router.post("/prompts", status_code=201)
async def create_prompt(body: PromptCreate):
    db = await get_db()
    return await prompt_service.create_prompt(db, body)


@router.get("/prompts")
async def list_prompts(project_id: str | None = None, evaluation_type: str | None = None):
    db = await get_db()
    return {"items": await prompt_service.list_prompts(db, project_id, evaluation_type)}


@router.get("/prompts/{prompt_id}")
async def get_prompt(prompt_id: str):
    db = await get_db()
    prompt = await prompt_service.get_prompt(db, prompt_id)
    if not prompt:
        raise HTTPException(status_code=404, detail={"error": {"code": "PROMPT_NOT_FOUND", "message": "Prompt not found"}})
    return prompt


@router.delete("/prompts/{prompt_id}")
async def delete_prompt(prompt_id: str):
    db = await get_db()
    if not await prompt_queries.get_prompt(db, prompt_id):
        raise HTTPException(status_code=404, detail={"error": {"code": "PROMPT_NOT_FOUND", "message": "Prompt not found"}})
    await prompt_queries.delete_prompt(db, prompt_id)
    return {"ok": True}


@router.post("/prompts/validate-template")
async def validate_template(body: TemplateValidateRequest):
    result = validate_prompt_template(body.prompt_template)
    return {
        "is_valid": result.is_valid,
        "issues": result.issues,
        "fixed_template": result.fixed_template,
    }


@router.post("/prompts/fix-templates")
async def fix_templates():
    """Repair every stored template missing the transcript placeholder."""
    db = await get_db()
    report = await prompt_service.fix_prompt_templates(db)
    report["message"] = f"Fixed {report['fixed']} prompt templates"
    return report


@router.get("/templates")
async def list_templates():
    return {"items": [r.to_dict() for r in list_rubrics()]}


@router.post("/test-connection")
async def test_connection(body: ConnectionTestRequest):
    """Send a short probe to check a provider, model and key before saving a prompt."""
    try:
        return await check_connection(body.llm_provider, body.model, body.api_key, body.api_url)
    except LLMConfigurationError as e:
        raise HTTPException(status_code=400, detail={"error": {"code": "INVALID_CONFIGURATION", "message": str(e)}})
    except LLMResponseError as e:
        logger.warning("Connection test failed for %s/%s: %s", body.llm_provider, body.model, e)
        raise HTTPException(status_code=502, detail={"error": {"code": "PROVIDER_ERROR", "message": str(e)}})
