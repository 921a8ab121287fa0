from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

JobStatus = Literal["pending", "running", "completed", "failed"]
ResultStatus = Literal["completed", "failed"]
SelectionMode = Literal["all", "filtered", "manual"]
ScoringOutputType = Literal["boolean", "integer", "percentage", "float"]

TERMINAL_JOB_STATUSES = {"completed", "failed"}


class FilterCriteria(BaseModel):
    """Trace filters for ``filtered`` selection.

    ``date_range`` is one of ``last_24_hours``, ``last_7_days``,
    ``last_30_days``, ``last_90_days``, ``custom`` or ``all``.
    """
    date_range: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    min_duration: float | None = None
    call_status: str | None = None

    @field_validator("start_date", "end_date")
    @classmethod
    def _iso_date(cls, value: str | None) -> str | None:
        if value:
            datetime.fromisoformat(value)
        return value


class EvaluationJob(BaseModel):
    id: str
    project_id: str
    agent_id: str
    name: str
    description: str | None = None
    prompt_ids: list[str] = []
    selection_mode: SelectionMode = "all"
    selected_traces: list[str] | None = None
    filter_criteria: FilterCriteria = Field(default_factory=FilterCriteria)
    status: JobStatus = "pending"
    total_traces: int = 0
    completed_traces: int = 0
    failed_traces: int = 0
    error_message: str | None = None
    created_at: str | None = None
    started_at: str | None = None
    completed_at: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES


class EvaluationPrompt(BaseModel):
    """Read-only snapshot of a scoring rubric, API key already decrypted."""
    id: str
    project_id: str | None = None
    name: str
    description: str | None = None
    evaluation_type: str = "quality"
    scoring_output_type: ScoringOutputType = "float"
    prompt_template: str
    llm_provider: str = "openai"
    model: str = "gpt-4o-mini"
    api_url: str | None = None
    api_key: str | None = Field(default=None, repr=False)
    temperature: float = 0.0
    max_tokens: int = 1000


class TranscriptTurn(BaseModel):
    turn_id: str | None = None
    user_text: str = ""
    agent_text: str = ""
    timestamp: str | None = None


class Trace(BaseModel):
    id: str
    call_id: str | None = None
    agent_id: str
    customer_number: str | None = None
    call_ended_reason: str | None = None
    duration_seconds: float | None = None
    created_at: datetime
    transcript: list[TranscriptTurn] = []

    def transcript_text(self) -> str:
        """Flatten the turns into ``USER:`` / ``AGENT:`` lines."""
        lines = []
        for turn in self.transcript:
            if turn.user_text.strip():
                lines.append(f"USER: {turn.user_text}")
            if turn.agent_text.strip():
                lines.append(f"AGENT: {turn.agent_text}")
        return "\n".join(lines)


class EvaluationResult(BaseModel):
    id: str | None = None
    job_id: str
    prompt_id: str
    trace_id: str
    call_id: str | None = None
    agent_id: str | None = None
    status: ResultStatus
    evaluation_score: dict = {}
    evaluation_reasoning: str | None = None
    raw_llm_response: str | None = None
    execution_time_ms: int | None = None
    llm_cost_usd: float | None = None
    error_message: str | None = None
    created_at: str | None = None

    @property
    def overall_score(self) -> float | None:
        return self.evaluation_score.get("overall_score")


class EvaluationSummary(BaseModel):
    id: str | None = None
    job_id: str
    prompt_id: str
    evaluation_type: str | None = None
    avg_score: float
    min_score: float
    max_score: float
    total_evaluations: int
    score_distribution: dict[str, int] = {}
    pass_rate: float
    created_at: str | None = None


# ── Request bodies ──


class JobCreate(BaseModel):
    project_id: str
    agent_id: str
    name: str = Field(min_length=1)
    description: str | None = None
    prompt_ids: list[str] = Field(min_length=1)
    selection_mode: SelectionMode | None = None
    selected_traces: list[str] | None = None
    filter_criteria: FilterCriteria | None = None

    @model_validator(mode="after")
    def _infer_selection_mode(self) -> "JobCreate":
        if self.selection_mode is None:
            if self.selected_traces:
                self.selection_mode = "manual"
            elif self.filter_criteria is not None:
                self.selection_mode = "filtered"
            else:
                self.selection_mode = "all"
        if self.selection_mode == "manual" and not self.selected_traces:
            raise ValueError("manual selection requires selected_traces")
        return self


class PromptCreate(BaseModel):
    project_id: str
    name: str = Field(min_length=1)
    description: str | None = None
    evaluation_type: str = "quality"
    scoring_output_type: ScoringOutputType = "float"
    prompt_template: str = Field(min_length=1)
    llm_provider: str = "openai"
    model: str = "gpt-4o-mini"
    api_url: str | None = None
    api_key: str | None = None
    temperature: float = Field(default=0.0, ge=0, le=2)
    max_tokens: int = Field(default=1000, ge=1)


class TemplateValidateRequest(BaseModel):
    prompt_template: str


class ConnectionTestRequest(BaseModel):
    llm_provider: str
    model: str
    api_key: str
    api_url: str | None = None


class SelectionPreviewRequest(BaseModel):
    project_id: str
    agent_id: str
    selection_mode: SelectionMode = "all"
    selected_traces: list[str] | None = None
    filter_criteria: FilterCriteria | None = None
