"""Run aggregate: configuration snapshot, response records and derived stats."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, computed_field

from llm_vetting.models.enums import ProviderName, ResponseStatus


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RunConfig(BaseModel):
    """What to ask, of which models, how many times."""

    question: str = Field(..., min_length=1)
    system_prompt: Optional[str] = None
    loop_count: int = Field(default=5, ge=1)
    selected_model_ids: list[str] = Field(default_factory=list)
    concurrency: int = Field(default=3, ge=1)
    created_at: datetime = Field(default_factory=_now)
    loop_cap_at_run_time: int = 5

    @classmethod
    def create(
        cls,
        question: str,
        model_ids: list[str],
        loop_count: int,
        concurrency: int,
        loop_cap: int,
        system_prompt: Optional[str] = None,
    ) -> "RunConfig":
        """Build a run config, rejecting loop counts above the cap.

        Raises:
            ValueError: If loop_count is outside [1, loop_cap].
        """
        if not 1 <= loop_count <= loop_cap:
            raise ValueError(f"loop_count must be between 1 and {loop_cap}, got {loop_count}")
        return cls(
            question=question.strip(),
            system_prompt=(system_prompt or "").strip() or None,
            loop_count=loop_count,
            selected_model_ids=list(model_ids),
            concurrency=concurrency,
            loop_cap_at_run_time=loop_cap,
        )


class ResponseRecord(BaseModel):
    """Mutable result of one (model, repetition) job."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    run_id: str
    service: ProviderName
    model_id: str
    model_label: str
    loop_index: int
    status: ResponseStatus = ResponseStatus.QUEUED
    text: str = ""

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    latency_ms: Optional[int] = None

    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    char_count: Optional[int] = None
    finish_reason: Optional[str] = None
    truncated: bool = False

    error_message: Optional[str] = None
    retry_count: int = 0

    @property
    def has_text(self) -> bool:
        """Whether this record can take part in similarity analysis."""
        return self.status == ResponseStatus.DONE and bool(self.text.strip())

    def reset_for_retry(self, retry_count: int) -> None:
        """Return the record to the queue, keeping its identity."""
        self.status = ResponseStatus.QUEUED
        self.text = ""
        self.started_at = None
        self.completed_at = None
        self.latency_ms = None
        self.input_tokens = None
        self.output_tokens = None
        self.total_tokens = None
        self.char_count = None
        self.finish_reason = None
        self.truncated = False
        self.error_message = None
        self.retry_count = retry_count


class RunStats(BaseModel):
    """Counters derived from the response list."""

    total: int = 0
    completed: int = 0
    errors: int = 0
    canceled: int = 0
    avg_latency_ms: Optional[int] = None

    @classmethod
    def from_responses(cls, responses: list[ResponseRecord]) -> "RunStats":
        """Compute stats as a pure function of the responses."""
        latencies = [r.latency_ms for r in responses if r.latency_ms is not None]
        return cls(
            total=len(responses),
            completed=sum(1 for r in responses if r.status == ResponseStatus.DONE),
            errors=sum(1 for r in responses if r.status == ResponseStatus.ERROR),
            canceled=sum(1 for r in responses if r.status == ResponseStatus.CANCELED),
            avg_latency_ms=round(sum(latencies) / len(latencies)) if latencies else None,
        )


class SimilarResponse(BaseModel):
    """One edge of the similarity graph, seen from one endpoint."""

    id: str
    score: float


class SimilarityCluster(BaseModel):
    """A connected component of mutually similar responses."""

    ids: list[str]


class SimilarityResult(BaseModel):
    """Similarity analysis attached to a completed run."""

    pairs: dict[str, list[SimilarResponse]] = Field(default_factory=dict)
    clusters: list[SimilarityCluster] = Field(default_factory=list)

    def similar_count(self, response_id: str) -> int:
        """How many other responses clear the threshold against this one."""
        return len(self.pairs.get(response_id, []))


class Run(BaseModel):
    """Aggregate root for one invocation of a question."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    config: RunConfig
    responses: list[ResponseRecord] = Field(default_factory=list)
    similarity: Optional[SimilarityResult] = None

    @computed_field
    @property
    def stats(self) -> RunStats:
        """Derived counters; never cached."""
        return RunStats.from_responses(self.responses)

    @property
    def is_complete(self) -> bool:
        """Whether every response has reached a terminal state."""
        return bool(self.responses) and all(r.status.is_terminal for r in self.responses)

    def get_response(self, response_id: str) -> Optional[ResponseRecord]:
        """Find a response by id."""
        for response in self.responses:
            if response.id == response_id:
                return response
        return None
