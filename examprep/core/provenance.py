"""Append-only JSONL log of generation, grading and exam outcomes."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Literal

from pydantic import BaseModel, Field


class ProvenanceEvent(BaseModel):
    """Structured record for one assessment operation."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    operation: Literal["generation", "grading", "exam"] = Field(..., description="Which engine operation ran.")
    outcome: str = Field(..., description="Short result label, e.g. 'generated', 'fallback', 'graded'.")
    message: str = Field("", description="Human-readable description of the event.")
    payload: Dict[str, Any] = Field(default_factory=dict)


class ProvenanceLogger:
    """Write provenance events to a JSONL file, one object per line."""

    def __init__(self, output_path: Path):
        self.output_path = Path(output_path)
        self.output_path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, event: ProvenanceEvent | Dict[str, Any]) -> ProvenanceEvent:
        if not isinstance(event, ProvenanceEvent):
            event = ProvenanceEvent(**event)
        with self.output_path.open("a", encoding="utf-8") as handle:
            handle.write(event.model_dump_json() + "\n")
        return event

    def extend(self, events: Iterable[ProvenanceEvent | Dict[str, Any]]) -> None:
        for event in events:
            self.log(event)

    def read(self) -> List[ProvenanceEvent]:
        """Load every event recorded so far."""
        if not self.output_path.exists():
            return []
        with self.output_path.open("r", encoding="utf-8") as handle:
            return [ProvenanceEvent.model_validate_json(line) for line in handle if line.strip()]


def record(logger: ProvenanceLogger | None, **fields: Any) -> None:
    """Log an event when a provenance logger is configured."""
    if logger is not None:
        logger.log(fields)


__all__ = ["ProvenanceEvent", "ProvenanceLogger", "record"]
