"""On-disk cache of generated question sets, keyed by course and unit."""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from examprep.core.validation import summarize_errors, validation

from .models import Question, QuestionSet

LOGGER = logging.getLogger(__name__)


def content_hash(content: str) -> str:
    return hashlib.md5((content or "").encode("utf-8")).hexdigest()


def _unit_key(unit: str | int) -> str:
    return f"unit-{unit}"


class QuestionCache:
    """JSON file shaped ``{course: {"unit-N": {questions, generatedAt, cedHash}}}``.

    The file is read and rewritten whole on every call.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        result = validation.validate_json_file(self.path)
        if not result.valid or not isinstance(result.data, dict):
            LOGGER.warning("Ignoring unreadable question cache %s: %s", self.path, result.errors)
            return {}
        return result.data

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")

    def get(self, course: str, unit: str | int, current_hash: str | None = None) -> QuestionSet | None:
        """Cached set for the unit, or None when absent or stale."""
        entry = (self._read().get(course) or {}).get(_unit_key(unit))
        if not isinstance(entry, dict):
            return None
        if current_hash and entry.get("cedHash") != current_hash:
            LOGGER.info("Cached questions for %s unit %s are stale", course, unit)
            return None
        questions = []
        for item in entry.get("questions") or []:
            checked = validation.validate_pydantic_model(item, Question)
            if not checked.valid:
                LOGGER.warning(
                    "Ignoring malformed cached questions for %s unit %s: %s", course, unit, summarize_errors(checked.errors)
                )
                return None
            questions.append(checked.data)
        if not questions:
            return None
        return QuestionSet(
            questions=questions,
            course=course,
            unit=str(unit),
            mode="standard",
            generated_at=entry.get("generatedAt") or datetime.now(timezone.utc),
            attempts=0,
        )

    def put(self, question_set: QuestionSet, current_hash: str | None = None) -> None:
        data = self._read()
        data.setdefault(question_set.course, {})[_unit_key(question_set.unit)] = {
            "questions": [question.model_dump(mode="json", by_alias=True) for question in question_set.questions],
            "generatedAt": question_set.generated_at.isoformat(),
            "cedHash": current_hash,
        }
        self._write(data)

    def clear(self, course: str | None = None) -> None:
        if course is None:
            self._write({})
            return
        data = self._read()
        if data.pop(course, None) is not None:
            self._write(data)

    def units(self, course: str) -> List[str]:
        return sorted(key.removeprefix("unit-") for key in (self._read().get(course) or {}))


__all__ = ["QuestionCache", "content_hash"]
