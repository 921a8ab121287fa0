"""Per-prompt statistics over a job's completed results."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from server.config import settings
from server.models.evaluation import EvaluationPrompt, EvaluationSummary
from server.services.repository import EvaluationRepository

logger = logging.getLogger(__name__)


@dataclass
class ScoreStats:
    avg_score: float
    min_score: float
    max_score: float
    count: int
    distribution: dict[str, int]
    pass_rate: float


def compute_stats(scores: list[float], pass_threshold: float = 3.0) -> ScoreStats | None:
    """Average, bounds, integer-floor histogram and pass rate.

    A score passes when it is strictly above ``pass_threshold``. The same
    threshold is used whatever the prompt's scoring output type.
    """
    if not scores:
        return None

    distribution: dict[str, int] = {}
    for score in scores:
        bucket = str(math.floor(score))
        distribution[bucket] = distribution.get(bucket, 0) + 1

    passing = sum(1 for s in scores if s > pass_threshold)
    return ScoreStats(
        avg_score=sum(scores) / len(scores),
        min_score=min(scores),
        max_score=max(scores),
        count=len(scores),
        distribution=distribution,
        pass_rate=passing / len(scores),
    )


async def generate_summaries(
    repo: EvaluationRepository,
    job_id: str,
    prompts: list[EvaluationPrompt],
    pass_threshold: float | None = None,
) -> list[EvaluationSummary]:
    """Write one summary row per prompt that has completed results."""
    threshold = settings.summary_pass_threshold if pass_threshold is None else pass_threshold
    summaries: list[EvaluationSummary] = []

    for prompt in prompts:
        results = await repo.list_results(job_id, prompt_id=prompt.id, status="completed")
        scores = [r.overall_score for r in results if r.overall_score is not None]
        stats = compute_stats(scores, threshold)
        if stats is None:
            logger.info("No completed results for prompt %s in job %s", prompt.id, job_id)
            continue

        summary = EvaluationSummary(
            job_id=job_id,
            prompt_id=prompt.id,
            evaluation_type=prompt.evaluation_type,
            avg_score=stats.avg_score,
            min_score=stats.min_score,
            max_score=stats.max_score,
            total_evaluations=len(results),
            score_distribution=stats.distribution,
            pass_rate=stats.pass_rate,
        )
        summary.id = await repo.create_summary(summary)
        summaries.append(summary)

    return summaries
