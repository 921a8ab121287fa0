"""Evaluation store: the job processor's only view of persistence."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

import aiosqlite
from cryptography.fernet import InvalidToken

from server.db.queries import agents as agent_queries
from server.db.queries import jobs as job_queries
from server.db.queries import prompts as prompt_queries
from server.db.queries import results as result_queries
from server.db.queries import summaries as summary_queries
from server.db.queries import traces as trace_queries
from server.models.evaluation import (
    EvaluationJob,
    EvaluationPrompt,
    EvaluationResult,
    EvaluationSummary,
    FilterCriteria,
    Trace,
    TranscriptTurn,
)
from server.utils.crypto import decrypt

logger = logging.getLogger(__name__)


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse a stored timestamp; naive values are taken as UTC."""
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@runtime_checkable
class EvaluationRepository(Protocol):
    """Read/write contract the job processor runs against."""

    async def get_job(self, job_id: str) -> EvaluationJob | None: ...

    async def update_job(self, job_id: str, **fields) -> None: ...

    async def get_prompts(self, prompt_ids: list[str]) -> list[EvaluationPrompt]: ...

    async def get_agent_project_id(self, agent_id: str) -> str | None: ...

    async def list_agent_traces(self, agent_id: str) -> list[Trace]: ...

    async def get_traces_by_ids(self, trace_ids: list[str], agent_id: str) -> list[Trace]: ...

    async def get_transcript(self, trace_id: str) -> list[TranscriptTurn]: ...

    async def create_result(self, result: EvaluationResult) -> str: ...

    async def list_results(
        self, job_id: str, prompt_id: str | None = None, status: str | None = None
    ) -> list[EvaluationResult]: ...

    async def create_summary(self, summary: EvaluationSummary) -> str: ...


def _loads(value, default):
    if value is None or value == "":
        return default
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return default
    return value


def job_from_row(row: dict) -> EvaluationJob:
    data = dict(row)
    data["prompt_ids"] = _loads(data.get("prompt_ids"), [])
    data["selected_traces"] = _loads(data.get("selected_traces"), None)
    data["filter_criteria"] = FilterCriteria(**_loads(data.get("filter_criteria"), {}))
    return EvaluationJob(**data)


def _trace_from_row(row: dict) -> Trace:
    return Trace(
        id=row["id"],
        call_id=row.get("call_id"),
        agent_id=row["agent_id"],
        customer_number=row.get("customer_number"),
        call_ended_reason=row.get("call_ended_reason"),
        duration_seconds=row.get("duration_seconds"),
        created_at=parse_timestamp(row["created_at"]),
    )


def result_from_row(row: dict) -> EvaluationResult:
    data = dict(row)
    data["evaluation_score"] = _loads(data.get("evaluation_score"), {})
    return EvaluationResult(**data)


def summary_from_row(row: dict) -> EvaluationSummary:
    data = dict(row)
    data["score_distribution"] = _loads(data.get("score_distribution"), {})
    return EvaluationSummary(**data)


def prompt_from_row(row: dict, include_key: bool = True) -> EvaluationPrompt:
    data = dict(row)
    encrypted = data.pop("api_key_encrypted", None)
    data.pop("created_at", None)
    data.pop("updated_at", None)
    api_key = None
    if include_key and encrypted:
        try:
            api_key = decrypt(encrypted)
        except InvalidToken:
            # Leave the key unset; the gateway then reports a missing key for this prompt
            logger.error("Could not decrypt API key for prompt %s", data.get("id"))
    return EvaluationPrompt(**data, api_key=api_key)


class SQLiteEvaluationRepository:
    """Repository over the aiosqlite query modules."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def get_job(self, job_id: str) -> EvaluationJob | None:
        row = await job_queries.get_job(self._db, job_id)
        return job_from_row(row) if row else None

    async def update_job(self, job_id: str, **fields) -> None:
        await job_queries.update_job(self._db, job_id, **fields)

    async def get_prompts(self, prompt_ids: list[str]) -> list[EvaluationPrompt]:
        rows = await prompt_queries.get_prompts_by_ids(self._db, prompt_ids)
        return [prompt_from_row(r) for r in rows]

    async def get_agent_project_id(self, agent_id: str) -> str | None:
        agent = await agent_queries.get_agent(self._db, agent_id)
        return agent["project_id"] if agent else None

    async def list_agent_traces(self, agent_id: str) -> list[Trace]:
        rows = await trace_queries.list_call_logs_for_agent(self._db, agent_id)
        return [_trace_from_row(r) for r in rows]

    async def get_traces_by_ids(self, trace_ids: list[str], agent_id: str) -> list[Trace]:
        rows = await trace_queries.get_call_logs_by_ids(self._db, trace_ids, agent_id)
        return [_trace_from_row(r) for r in rows]

    async def get_transcript(self, trace_id: str) -> list[TranscriptTurn]:
        rows = await trace_queries.get_transcript_turns(self._db, trace_id)
        return [
            TranscriptTurn(
                turn_id=str(r["turn_id"]) if r.get("turn_id") is not None else None,
                user_text=r.get("user_transcript") or "",
                agent_text=r.get("agent_response") or "",
                timestamp=r.get("created_at"),
            )
            for r in rows
        ]

    async def create_result(self, result: EvaluationResult) -> str:
        return await result_queries.create_result(
            self._db, result.model_dump(exclude={"created_at"})
        )

    async def list_results(
        self, job_id: str, prompt_id: str | None = None, status: str | None = None
    ) -> list[EvaluationResult]:
        rows = await result_queries.list_results(self._db, job_id, prompt_id, status)
        return [result_from_row(r) for r in rows]

    async def create_summary(self, summary: EvaluationSummary) -> str:
        return await summary_queries.create_summary(
            self._db, summary.model_dump(exclude={"created_at"})
        )
