"""Evaluation job API endpoints."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException

from server.db.database import get_db
from server.db.queries import agents as agent_queries
from server.db.queries import jobs as job_queries
from server.db.queries import prompts as prompt_queries
from server.db.queries import results as result_queries
from server.db.queries import summaries as summary_queries
from server.models.evaluation import JobCreate, SelectionPreviewRequest
from server.services.eval_service import JobError, preview_selection, process_job_by_id
from server.services.repository import (
    SQLiteEvaluationRepository,
    job_from_row,
    result_from_row,
    summary_from_row,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/eval", tags=["eval"])


def _not_found(code: str, message: str) -> HTTPException:
    return HTTPException(status_code=404, detail={"error": {"code": code, "message": message}})


async def _run_in_background(job_id: str) -> None:
    db = await get_db()
    try:
        await process_job_by_id(db, job_id)
    except JobError as e:
        logger.error("Evaluation job %s did not run: %s", job_id, e)
    except Exception:
        # Already recorded on the job row as failed
        logger.exception("Evaluation job %s failed", job_id)


_background_tasks: set[asyncio.Task] = set()


def _start(job_id: str) -> asyncio.Task:
    # The loop only holds weak references to tasks
    task = asyncio.create_task(_run_in_background(job_id))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


@router.post("/jobs", status_code=201)
async def create_job(body: JobCreate):
    """Create a pending job and start processing it in the background."""
    db = await get_db()

    agent = await agent_queries.get_agent(db, body.agent_id)
    if not agent or agent["project_id"] != body.project_id:
        raise _not_found("AGENT_NOT_FOUND", "Agent not found in this project")

    found = await prompt_queries.get_prompts_by_ids(db, body.prompt_ids)
    if not found:
        raise HTTPException(
            status_code=400,
            detail={"error": {"code": "INVALID_PROMPTS", "message": "None of the given prompts exist"}},
        )

    data = body.model_dump()
    if body.filter_criteria is not None:
        data["filter_criteria"] = body.filter_criteria.model_dump(exclude_none=True)
    job_id = await job_queries.create_job(db, data)
    logger.info("Created evaluation job %s (%s selection)", job_id, body.selection_mode)

    _start(job_id)

    job = job_from_row(await job_queries.get_job(db, job_id))
    return {
        "job": job.model_dump(),
        "message": "Evaluation started. Poll GET /api/v1/eval/jobs/{id} for progress.",
    }


@router.get("/jobs")
async def list_jobs(project_id: str, agent_id: str | None = None, limit: int = 50):
    db = await get_db()
    rows = await job_queries.list_jobs(db, project_id, agent_id, limit=min(limit, 200))
    return {"items": [job_from_row(r).model_dump() for r in rows]}


@router.get("/jobs/{job_id}")
async def get_job(job_id: str):
    db = await get_db()
    row = await job_queries.get_job(db, job_id)
    if not row:
        raise _not_found("JOB_NOT_FOUND", "Evaluation job not found")
    return job_from_row(row).model_dump()


@router.post("/jobs/{job_id}/process", status_code=202)
async def process_job(job_id: str):
    """Start a pending job that was not picked up (e.g. after a restart)."""
    db = await get_db()
    row = await job_queries.get_job(db, job_id)
    if not row:
        raise _not_found("JOB_NOT_FOUND", "Evaluation job not found")
    job = job_from_row(row)
    if job.status != "pending":
        reason = (
            "finished jobs are never resumed, create a new job"
            if job.is_terminal
            else "it is already being processed"
        )
        raise HTTPException(
            status_code=409,
            detail={"error": {
                "code": "JOB_NOT_PENDING",
                "message": f"Job is {job.status}; {reason}",
            }},
        )

    _start(job_id)
    return {"job_id": job_id, "status": "pending", "message": "Processing started"}


@router.get("/jobs/{job_id}/results")
async def list_results(job_id: str, status: str | None = None, prompt_id: str | None = None):
    db = await get_db()
    if not await job_queries.get_job(db, job_id):
        raise _not_found("JOB_NOT_FOUND", "Evaluation job not found")
    rows = await result_queries.list_results(db, job_id, prompt_id, status)
    return {"items": [result_from_row(r).model_dump() for r in rows]}


@router.get("/jobs/{job_id}/summaries")
async def list_summaries(job_id: str):
    db = await get_db()
    if not await job_queries.get_job(db, job_id):
        raise _not_found("JOB_NOT_FOUND", "Evaluation job not found")
    rows = await summary_queries.list_summaries(db, job_id)
    return {"items": [summary_from_row(r).model_dump() for r in rows]}


@router.post("/traces/preview")
async def preview_traces(body: SelectionPreviewRequest):
    """Which traces a job with this selection would evaluate."""
    db = await get_db()
    return await preview_selection(SQLiteEvaluationRepository(db), body)
