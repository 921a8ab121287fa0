"""Trace selection for evaluation jobs.

Three modes:

* ``manual``: exactly the listed trace ids that belong to the job's agent
  (unknown or foreign ids are dropped without error);
* ``filtered``: the agent's traces narrowed by call status, date window
  and minimum duration, in that order;
* ``all``: ``filtered`` with no criteria (the default status set still
  applies).

Every candidate must also have at least one turn with user or agent text;
traces without one are skipped and logged. Results are newest first.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from server.models.evaluation import EvaluationJob, FilterCriteria, Trace
from server.services.repository import EvaluationRepository, parse_timestamp

logger = logging.getLogger(__name__)

DEFAULT_SUCCESS_STATUSES = frozenset({"completed", "ended", "finished", "success"})

RELATIVE_WINDOWS = {
    "last_24_hours": timedelta(hours=24),
    "last_7_days": timedelta(days=7),
    "last_30_days": timedelta(days=30),
    "last_90_days": timedelta(days=90),
}


def resolve_date_window(
    criteria: FilterCriteria, now: datetime | None = None
) -> tuple[datetime | None, datetime | None]:
    """Return ``(start, end)`` bounds; ``end`` is exclusive.

    An explicit end date covers that whole day: it is pushed forward one
    day before being used as the exclusive bound.
    """
    now = now or datetime.now(timezone.utc)
    date_range = criteria.date_range

    if date_range in (None, "", "all"):
        # Explicit dates without a range keyword still count as a custom window
        if date_range is None and (criteria.start_date or criteria.end_date):
            date_range = "custom"
        else:
            return None, None

    if date_range in RELATIVE_WINDOWS:
        return now - RELATIVE_WINDOWS[date_range], None

    if date_range == "custom":
        start = parse_timestamp(criteria.start_date) if criteria.start_date else None
        end = None
        if criteria.end_date:
            end = parse_timestamp(criteria.end_date) + timedelta(days=1)
        return start, end

    logger.warning("Unknown date range %r, skipping date filter", date_range)
    return None, None


def apply_filters(
    traces: list[Trace], criteria: FilterCriteria, now: datetime | None = None
) -> list[Trace]:
    """Status, then date window, then minimum duration. Order is preserved."""
    if criteria.call_status and criteria.call_status != "all":
        selected = [t for t in traces if t.call_ended_reason == criteria.call_status]
    else:
        selected = [t for t in traces if t.call_ended_reason in DEFAULT_SUCCESS_STATUSES]
    logger.debug("After status filter: %d/%d traces", len(selected), len(traces))

    start, end = resolve_date_window(criteria, now)
    if start is not None:
        selected = [t for t in selected if t.created_at >= start]
    if end is not None:
        selected = [t for t in selected if t.created_at < end]

    if criteria.min_duration and criteria.min_duration > 0:
        selected = [
            t for t in selected
            if t.duration_seconds is not None and t.duration_seconds >= criteria.min_duration
        ]

    return selected


def effective_mode(job: EvaluationJob) -> str:
    if job.selection_mode == "manual" or job.selected_traces:
        return "manual"
    return job.selection_mode


async def _attach_transcripts(repo: EvaluationRepository, traces: list[Trace]) -> list[Trace]:
    usable: list[Trace] = []
    for trace in traces:
        turns = [
            t for t in await repo.get_transcript(trace.id)
            if t.user_text.strip() or t.agent_text.strip()
        ]
        if not turns:
            logger.info("Skipping trace %s: no usable transcript content", trace.id)
            continue
        usable.append(trace.model_copy(update={"transcript": turns}))

    logger.info("Traces with usable transcripts: %d/%d", len(usable), len(traces))
    return usable


async def select_traces(
    repo: EvaluationRepository,
    job: EvaluationJob,
    now: datetime | None = None,
) -> list[Trace]:
    """Resolve the ordered traces a job must evaluate, transcripts attached.

    Returns an empty list when the job's agent does not belong to the job's
    project.
    """
    project_id = await repo.get_agent_project_id(job.agent_id)
    if project_id != job.project_id:
        logger.error(
            "Agent %s does not belong to project %s (found %s); selecting no traces",
            job.agent_id, job.project_id, project_id,
        )
        return []

    mode = effective_mode(job)
    if mode == "manual":
        requested = list(dict.fromkeys(job.selected_traces or []))
        candidates = await repo.get_traces_by_ids(requested, job.agent_id)
        if len(candidates) < len(requested):
            logger.warning(
                "Job %s: %d of %d selected traces not found for agent %s",
                job.id, len(requested) - len(candidates), len(requested), job.agent_id,
            )
    else:
        criteria = job.filter_criteria if mode == "filtered" else FilterCriteria()
        all_traces = await repo.list_agent_traces(job.agent_id)
        candidates = apply_filters(all_traces, criteria, now)
        logger.info(
            "Job %s: %d/%d traces match %s selection",
            job.id, len(candidates), len(all_traces), mode,
        )

    return await _attach_transcripts(repo, candidates)
