"""Tests for the evaluation job API endpoints."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from server.api import eval as eval_api
from server.db.queries import jobs as job_queries
from server.models.evaluation import EvaluationResult
from server.services.repository import SQLiteEvaluationRepository

from tests.conftest import AGENT_ID, OTHER_AGENT_ID, PROJECT_ID, PROMPT_ID


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["service"] == "tracejudge"


class TestCreateJob:
    @pytest.mark.asyncio
    async def test_create_starts_processing(self, client, job_data):
        with patch("server.api.eval._start") as mock_start:
            resp = await client.post("/api/v1/eval/jobs", json=job_data)

        assert resp.status_code == 201
        job = resp.json()["job"]
        assert job["status"] == "pending"
        assert job["prompt_ids"] == [PROMPT_ID]
        assert job["selection_mode"] == "all"
        mock_start.assert_called_once_with(job["id"])

    @pytest.mark.asyncio
    async def test_selection_mode_inferred(self, client, job_data):
        body = {k: v for k, v in job_data.items() if k != "selection_mode"}
        body["selected_traces"] = ["trace-1"]
        with patch("server.api.eval._start"):
            resp = await client.post("/api/v1/eval/jobs", json=body)

        job = resp.json()["job"]
        assert job["selection_mode"] == "manual"
        assert job["selected_traces"] == ["trace-1"]

    @pytest.mark.asyncio
    async def test_filter_criteria_round_trip(self, client, job_data):
        body = {**job_data, "selection_mode": "filtered",
                "filter_criteria": {"date_range": "last_7_days", "min_duration": 30}}
        with patch("server.api.eval._start"):
            resp = await client.post("/api/v1/eval/jobs", json=body)

        criteria = resp.json()["job"]["filter_criteria"]
        assert criteria["date_range"] == "last_7_days"
        assert criteria["min_duration"] == 30

    @pytest.mark.asyncio
    async def test_manual_without_traces_rejected(self, client, job_data):
        resp = await client.post("/api/v1/eval/jobs", json={**job_data, "selection_mode": "manual"})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_agent_must_belong_to_project(self, client, job_data):
        with patch("server.api.eval._start") as mock_start:
            resp = await client.post("/api/v1/eval/jobs", json={**job_data, "agent_id": OTHER_AGENT_ID})
        assert resp.status_code == 404
        assert resp.json()["detail"]["error"]["code"] == "AGENT_NOT_FOUND"
        mock_start.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_prompts_rejected(self, client, job_data):
        resp = await client.post("/api/v1/eval/jobs", json={**job_data, "prompt_ids": ["nope"]})
        assert resp.status_code == 400
        assert resp.json()["detail"]["error"]["code"] == "INVALID_PROMPTS"


class TestReadJobs:
    @pytest.mark.asyncio
    async def test_get_and_list(self, client, db, job_data):
        job_id = await job_queries.create_job(db, job_data)

        resp = await client.get(f"/api/v1/eval/jobs/{job_id}")
        assert resp.status_code == 200
        assert resp.json()["name"] == "Nightly quality run"

        resp = await client.get("/api/v1/eval/jobs", params={"project_id": PROJECT_ID, "agent_id": AGENT_ID})
        assert [j["id"] for j in resp.json()["items"]] == [job_id]

    @pytest.mark.asyncio
    async def test_get_missing(self, client):
        resp = await client.get("/api/v1/eval/jobs/nope")
        assert resp.status_code == 404
        assert resp.json()["detail"]["error"]["code"] == "JOB_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_results_filtered_by_status(self, client, db, job_data):
        job_id = await job_queries.create_job(db, job_data)
        repo = SQLiteEvaluationRepository(db)
        await repo.create_result(EvaluationResult(
            job_id=job_id, prompt_id=PROMPT_ID, trace_id="trace-1", status="completed",
            evaluation_score={"overall_score": 4.0},
        ))
        await repo.create_result(EvaluationResult(
            job_id=job_id, prompt_id=PROMPT_ID, trace_id="trace-2", status="failed",
            error_message="timeout",
        ))

        resp = await client.get(f"/api/v1/eval/jobs/{job_id}/results")
        assert len(resp.json()["items"]) == 2

        resp = await client.get(f"/api/v1/eval/jobs/{job_id}/results", params={"status": "failed"})
        items = resp.json()["items"]
        assert [r["trace_id"] for r in items] == ["trace-2"]
        assert items[0]["error_message"] == "timeout"

    @pytest.mark.asyncio
    async def test_summaries_empty(self, client, db, job_data):
        job_id = await job_queries.create_job(db, job_data)
        resp = await client.get(f"/api/v1/eval/jobs/{job_id}/summaries")
        assert resp.status_code == 200
        assert resp.json()["items"] == []


class TestProcessJob:
    @pytest.mark.asyncio
    async def test_pending_job_started(self, client, db, job_data):
        job_id = await job_queries.create_job(db, job_data)
        with patch("server.api.eval._start") as mock_start:
            resp = await client.post(f"/api/v1/eval/jobs/{job_id}/process")
        assert resp.status_code == 202
        mock_start.assert_called_once_with(job_id)

    @pytest.mark.asyncio
    async def test_non_pending_conflict(self, client, db, job_data):
        job_id = await job_queries.create_job(db, job_data)
        await job_queries.update_job(db, job_id, status="completed")
        with patch("server.api.eval._start") as mock_start:
            resp = await client.post(f"/api/v1/eval/jobs/{job_id}/process")
        assert resp.status_code == 409
        assert resp.json()["detail"]["error"]["code"] == "JOB_NOT_PENDING"
        assert "never resumed" in resp.json()["detail"]["error"]["message"]
        mock_start.assert_not_called()

    @pytest.mark.asyncio
    async def test_running_job_conflict(self, client, db, job_data):
        job_id = await job_queries.create_job(db, job_data)
        await job_queries.update_job(db, job_id, status="running")
        with patch("server.api.eval._start") as mock_start:
            resp = await client.post(f"/api/v1/eval/jobs/{job_id}/process")
        assert resp.status_code == 409
        assert resp.json()["detail"]["error"]["message"] == (
            "Job is running; it is already being processed"
        )
        mock_start.assert_not_called()


class TestBackgroundStart:
    @pytest.mark.asyncio
    async def test_task_is_held_until_done(self):
        release = asyncio.Event()

        async def _fake_run(job_id):
            await release.wait()

        with patch("server.api.eval._run_in_background", side_effect=_fake_run):
            task = eval_api._start("job-1")
            assert task in eval_api._background_tasks

            release.set()
            await task
            await asyncio.sleep(0)

        assert task not in eval_api._background_tasks


class TestPreview:
    @pytest.mark.asyncio
    async def test_preview_filtered(self, client):
        resp = await client.post("/api/v1/eval/traces/preview", json={
            "project_id": PROJECT_ID,
            "agent_id": AGENT_ID,
            "selection_mode": "filtered",
            "filter_criteria": {"min_duration": 100},
        })
        assert resp.status_code == 200
        assert resp.json() == {"count": 2, "trace_ids": ["trace-1", "trace-3"], "selection_mode": "filtered"}
