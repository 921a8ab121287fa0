"""Evaluation job processor. Drives one job from ``pending`` to a terminal state.

A job evaluates every selected trace against every prompt. Each
(trace, prompt) unit writes exactly one result row, whether it succeeds or
fails; a failing unit never stops the job. The job itself only ends up
``failed`` when the job record or its prompts can't be loaded, or when
the store breaks mid-run.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict

import aiosqlite

from server.config import settings
from server.models.evaluation import (
    EvaluationJob,
    EvaluationPrompt,
    EvaluationResult,
    FilterCriteria,
    SelectionPreviewRequest,
    Trace,
)
from server.services import scorer
from server.services.llm_gateway import LLMGateway
from server.services.repository import EvaluationRepository, SQLiteEvaluationRepository, utcnow
from server.services.summary_service import generate_summaries
from server.services.template_service import has_conversation_markers, render_template
from server.services.trace_selector import effective_mode, select_traces
from server.utils.pricing import estimate_cost

logger = logging.getLogger(__name__)


class JobError(Exception):
    """Base error for job-level faults."""


class JobNotFoundError(JobError):
    pass


class JobStateError(JobError):
    """The job is not in a state that allows processing."""


class JobConfigurationError(JobError):
    """The job references nothing that can be evaluated."""


class _Progress:
    """Completed/failed counters shared by the unit workers.

    Counter updates and the periodic progress writes happen under one lock,
    so concurrent workers never interleave them.
    """

    def __init__(self, repo: EvaluationRepository, job_id: str, interval: int):
        self._repo = repo
        self._job_id = job_id
        self._interval = max(1, interval)
        self._lock = asyncio.Lock()
        self.completed = 0
        self.failed = 0

    @property
    def attempted(self) -> int:
        return self.completed + self.failed

    async def record(self, succeeded: bool) -> None:
        async with self._lock:
            if succeeded:
                self.completed += 1
            else:
                self.failed += 1
            if self.attempted % self._interval == 0:
                await self._repo.update_job(
                    self._job_id, completed_traces=self.completed, failed_traces=self.failed
                )


def build_template_variables(trace: Trace) -> dict:
    return {
        "transcript": trace.transcript_text(),
        "trace_id": trace.id,
        "call_id": trace.call_id or trace.id,
        "agent_id": trace.agent_id,
        "duration": trace.duration_seconds,
        "customer_number": trace.customer_number,
        "created_at": trace.created_at.isoformat(),
    }


async def evaluate_unit(
    repo: EvaluationRepository,
    gateway: LLMGateway,
    job: EvaluationJob,
    trace: Trace,
    prompt: EvaluationPrompt,
) -> EvaluationResult:
    """Evaluate one trace with one prompt and persist the outcome.

    Never raises for evaluation problems: they are recorded as a ``failed``
    result carrying the error message and whatever raw response came back.
    """
    start = time.monotonic()
    raw_text: str | None = None
    base = {
        "job_id": job.id,
        "prompt_id": prompt.id,
        "trace_id": trace.id,
        "call_id": trace.call_id,
        "agent_id": trace.agent_id,
    }

    try:
        rendered = render_template(prompt.prompt_template, build_template_variables(trace))
        if not has_conversation_markers(rendered.text):
            logger.warning(
                "Prompt %s rendered for trace %s has no USER/AGENT lines", prompt.id, trace.id
            )

        response = await gateway.call(prompt, rendered.text)
        raw_text = response.text
        outcome = scorer.parse(raw_text)
        if not outcome.has_score:
            logger.warning(
                "No score in response for trace %s with prompt %s; recording 0",
                trace.id, prompt.id,
            )

        result = EvaluationResult(
            **base,
            status="completed",
            evaluation_score={
                "overall_score": outcome.overall_score,
                "parsed_scores": outcome.scores,
                "evaluation_type": prompt.evaluation_type,
                "parse_strategy": outcome.strategy,
                "template_repaired": rendered.was_repaired,
                "token_usage": asdict(response.usage),
            },
            evaluation_reasoning=outcome.reasoning,
            raw_llm_response=raw_text,
            execution_time_ms=int((time.monotonic() - start) * 1000),
            llm_cost_usd=estimate_cost(response.usage.total_tokens, prompt.model),
        )
    except Exception as e:
        logger.exception(
            "Evaluation failed for trace %s with prompt %s (provider=%s, model=%s)",
            trace.id, prompt.id, prompt.llm_provider, prompt.model,
        )
        result = EvaluationResult(
            **base,
            status="failed",
            raw_llm_response=raw_text,
            execution_time_ms=int((time.monotonic() - start) * 1000),
            error_message=str(e) or type(e).__name__,
        )

    try:
        result.id = await repo.create_result(result)
    except Exception as e:
        logger.exception("Could not save result for trace %s / prompt %s", trace.id, prompt.id)
        result = result.model_copy(
            update={"status": "failed", "error_message": f"Failed to save evaluation result: {e}"}
        )
    return result


async def _run_units(
    repo: EvaluationRepository,
    gateway: LLMGateway,
    job: EvaluationJob,
    traces: list[Trace],
    prompts: list[EvaluationPrompt],
    max_concurrency: int,
    progress: _Progress,
) -> list[EvaluationResult]:
    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def _worker(trace: Trace, prompt: EvaluationPrompt) -> EvaluationResult:
        async with semaphore:
            logger.debug("Evaluating trace %s with prompt %s", trace.id, prompt.id)
            result = await evaluate_unit(repo, gateway, job, trace, prompt)
        await progress.record(result.status == "completed")
        return result

    # A worker only raises for store faults; the group then cancels the rest
    try:
        async with asyncio.TaskGroup() as group:
            tasks = [
                group.create_task(_worker(trace, prompt))
                for trace in traces
                for prompt in prompts
            ]
    except ExceptionGroup as eg:
        raise eg.exceptions[0] from None

    return [task.result() for task in tasks]


async def process_evaluation_job(
    repo: EvaluationRepository,
    job_id: str,
    gateway: LLMGateway | None = None,
    max_concurrency: int | None = None,
    progress_interval: int | None = None,
) -> list[EvaluationResult]:
    """Run a pending job to completion and return its results.

    Raises:
        JobNotFoundError: no job with this id.
        JobStateError: the job is not ``pending`` (jobs are never resumed).
        JobConfigurationError: none of the job's prompts exist; the job is
            marked ``failed``.
    """
    job = await repo.get_job(job_id)
    if job is None:
        raise JobNotFoundError(f"Failed to fetch job: Job {job_id} not found")
    if job.status != "pending":
        reason = (
            "finished jobs are never resumed" if job.is_terminal else "it is already being processed"
        )
        raise JobStateError(f"Job {job_id} is {job.status}; {reason}")

    gateway = gateway or LLMGateway()
    concurrency = settings.eval_max_concurrency if max_concurrency is None else max_concurrency
    interval = settings.progress_update_interval if progress_interval is None else progress_interval

    try:
        prompts = await repo.get_prompts(job.prompt_ids)
        if not prompts:
            raise JobConfigurationError("Failed to fetch prompts: No prompts found")
        if len(prompts) < len(job.prompt_ids):
            logger.warning(
                "Job %s: %d of %d prompts not found",
                job_id, len(job.prompt_ids) - len(prompts), len(job.prompt_ids),
            )

        traces = await select_traces(repo, job)
        if not traces:
            logger.warning("No traces to evaluate for job %s; completing with zero traces", job_id)
            await repo.update_job(
                job_id,
                status="completed",
                total_traces=0,
                completed_traces=0,
                failed_traces=0,
                completed_at=utcnow(),
            )
            return []

        logger.info(
            "Job %s: evaluating %d traces x %d prompts", job_id, len(traces), len(prompts)
        )
        await repo.update_job(
            job_id,
            status="running",
            started_at=utcnow(),
            total_traces=len(traces),
            completed_traces=0,
            failed_traces=0,
        )

        progress = _Progress(repo, job_id, interval)
        results = await _run_units(repo, gateway, job, traces, prompts, concurrency, progress)

        await generate_summaries(repo, job_id, prompts)

        await repo.update_job(
            job_id,
            status="completed",
            completed_traces=progress.completed,
            failed_traces=progress.failed,
            completed_at=utcnow(),
        )
        logger.info(
            "Job %s completed: %d succeeded, %d failed",
            job_id, progress.completed, progress.failed,
        )
        return results

    except Exception as e:
        logger.exception("Error processing evaluation job %s", job_id)
        await repo.update_job(
            job_id, status="failed", error_message=str(e)[:2000] or type(e).__name__
        )
        raise


async def preview_selection(
    repo: EvaluationRepository, body: SelectionPreviewRequest
) -> dict:
    """Resolve the traces a job with these settings would evaluate, without creating it."""
    draft = EvaluationJob(
        id="preview",
        project_id=body.project_id,
        agent_id=body.agent_id,
        name="preview",
        selection_mode=body.selection_mode,
        selected_traces=body.selected_traces,
        filter_criteria=body.filter_criteria or FilterCriteria(),
    )
    traces = await select_traces(repo, draft)
    return {
        "count": len(traces),
        "trace_ids": [t.id for t in traces],
        "selection_mode": effective_mode(draft),
    }


async def process_job_by_id(db: aiosqlite.Connection, job_id: str) -> list[EvaluationResult]:
    """Process a job stored in the given database."""
    return await process_evaluation_job(SQLiteEvaluationRepository(db), job_id)
