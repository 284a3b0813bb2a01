"""Request tracing and usage accounting."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from isohub_agent.types import AgentStep, estimate_tokens


@dataclass(slots=True)
class TraceRecord:
    trace_id: str
    timestamp_utc: str
    kind: str
    organization_id: str
    session_id: str
    model_used: str
    tokens_used: int
    latency_ms: float
    knowledge_used: int = 0
    tools_used: list[str] = field(default_factory=list)
    steps: list[AgentStep] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return self.model_used == "error"


class TraceStore:
    """In-memory trace storage for API-level observability.

    Keeps at most `capacity` records, dropping the oldest first.
    """

    def __init__(self, capacity: int = 1000) -> None:
        self._records: dict[str, TraceRecord] = {}
        self._capacity = capacity

    def create_record(
        self,
        *,
        kind: str,
        organization_id: str,
        session_id: str,
        model_used: str,
        tokens_used: int,
        latency_ms: float,
        knowledge_used: int = 0,
        tools_used: list[str] | None = None,
        steps: list[AgentStep] | None = None,
    ) -> TraceRecord:
        record = TraceRecord(
            trace_id=str(uuid.uuid4()),
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            kind=kind,
            organization_id=organization_id,
            session_id=session_id,
            model_used=model_used,
            tokens_used=tokens_used,
            latency_ms=latency_ms,
            knowledge_used=knowledge_used,
            tools_used=list(tools_used or []),
            steps=list(steps or []),
        )
        self._records[record.trace_id] = record
        while len(self._records) > self._capacity:
            self._records.pop(next(iter(self._records)))
        return record

    def get(self, trace_id: str) -> TraceRecord:
        record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[TraceRecord]:
        return list(self._records.values())[-limit:]

    def summary(self) -> dict[str, float | int]:
        """Aggregate core observability metrics for dashboard display."""
        records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_requests": 0,
                "agent_requests": 0,
                "degraded_requests": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "total_tokens": 0,
                "avg_knowledge_used": 0.0,
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        return {
            "total_requests": total,
            "agent_requests": sum(1 for record in records if record.kind == "agent"),
            "degraded_requests": sum(1 for record in records if record.degraded),
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "total_tokens": sum(record.tokens_used for record in records),
            "avg_knowledge_used": sum(record.knowledge_used for record in records) / total,
        }


class Timer:
    """Simple context timer used around provider and agent calls."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


def estimate_token_count(text: str) -> int:
    return estimate_tokens(text)
