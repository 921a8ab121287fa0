"""Tests for per-prompt summary statistics."""

from __future__ import annotations

import pytest

from server.db.queries import jobs as job_queries
from server.db.queries import summaries as summary_queries
from server.models.evaluation import EvaluationResult
from server.services.summary_service import compute_stats, generate_summaries

from tests.conftest import LEGACY_PROMPT_ID, PROMPT_ID


class TestComputeStats:
    def test_basic_stats(self):
        stats = compute_stats([2, 4, 4, 8])
        assert stats.avg_score == 4.5
        assert stats.min_score == 2
        assert stats.max_score == 8
        assert stats.count == 4
        assert stats.distribution == {"2": 1, "4": 2, "8": 1}

    def test_pass_rate_is_strictly_above_threshold(self):
        # 2 fails; 4, 4 and 8 pass
        assert compute_stats([2, 4, 4, 8]).pass_rate == 0.75
        assert compute_stats([3.0, 3.0]).pass_rate == 0.0
        assert compute_stats([3.5, 1.0], pass_threshold=3.0).pass_rate == 0.5

    def test_custom_threshold(self):
        assert compute_stats([0.6, 0.9], pass_threshold=0.7).pass_rate == 0.5

    def test_fractional_scores_bucket_by_floor(self):
        stats = compute_stats([3.2, 3.9, 4.0, 0.5])
        assert stats.distribution == {"3": 2, "4": 1, "0": 1}

    def test_empty(self):
        assert compute_stats([]) is None


class TestGenerateSummaries:
    async def _job_with_scores(self, db, repo, job_data, prompt_id, scores, failed=0):
        job_id = await job_queries.create_job(db, job_data)
        prompts = await repo.get_prompts([prompt_id])
        for i, score in enumerate(scores):
            await repo.create_result(EvaluationResult(
                job_id=job_id, prompt_id=prompt_id, trace_id=f"t-{i}", status="completed",
                evaluation_score={"overall_score": score},
            ))
        for i in range(failed):
            await repo.create_result(EvaluationResult(
                job_id=job_id, prompt_id=prompt_id, trace_id=f"f-{i}", status="failed",
                error_message="boom",
            ))
        return job_id, prompts

    @pytest.mark.asyncio
    async def test_writes_one_row_per_prompt(self, db, repo, job_data):
        job_id, prompts = await self._job_with_scores(db, repo, job_data, PROMPT_ID, [2, 4, 4, 8], failed=2)

        summaries = await generate_summaries(repo, job_id, prompts)

        assert len(summaries) == 1
        summary = summaries[0]
        assert summary.id is not None
        assert summary.evaluation_type == "quality"
        assert summary.total_evaluations == 4
        assert summary.avg_score == 4.5
        assert summary.pass_rate == 0.75

        rows = await summary_queries.list_summaries(db, job_id)
        assert len(rows) == 1
        assert rows[0]["score_distribution"] == '{"2": 1, "4": 2, "8": 1}'

    @pytest.mark.asyncio
    async def test_no_completed_results_no_row(self, db, repo, job_data):
        job_id, _ = await self._job_with_scores(db, repo, job_data, PROMPT_ID, [], failed=3)
        prompts = await repo.get_prompts([PROMPT_ID, LEGACY_PROMPT_ID])

        summaries = await generate_summaries(repo, job_id, prompts)

        assert summaries == []
        assert await summary_queries.list_summaries(db, job_id) == []

    @pytest.mark.asyncio
    async def test_reproducible_from_results(self, db, repo, job_data):
        job_id, prompts = await self._job_with_scores(db, repo, job_data, PROMPT_ID, [1, 5])
        first = await generate_summaries(repo, job_id, prompts)
        second = await generate_summaries(repo, job_id, prompts)
        assert first[0].model_dump(exclude={"id"}) == second[0].model_dump(exclude={"id"})
