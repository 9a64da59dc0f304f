"""Interfaces to the collaborators the engine reads from, plus file-backed versions.

The rubric store lives in :mod:`apps.assessment.rubric_store`; answer history and
the unit catalog are simple enough to keep here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Protocol, Sequence, runtime_checkable

from examprep.core.validation import ValidationFailure, strict_validation

from .models import AnswerRecord, RubricSegment

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class RubricStore(Protocol):
    def get_rubric_segments(self, course_id: str) -> Sequence[RubricSegment]: ...


@runtime_checkable
class AnswerHistoryStore(Protocol):
    def get_answer_records(self, course_id: str, learner_id: str) -> Sequence[AnswerRecord]: ...


@runtime_checkable
class UnitCatalog(Protocol):
    def get_units(self, course_id: str) -> Sequence["CourseUnit"]: ...


@dataclass(slots=True, frozen=True)
class CourseUnit:
    """A unit of study content for one course."""

    number: str
    title: str
    content: str = ""


class JsonAnswerHistoryStore:
    """Answer log stored as ``{course_id: {learner_id: [records...]}}`` JSON."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def get_answer_records(self, course_id: str, learner_id: str) -> List[AnswerRecord]:
        if not self.path.exists():
            return []
        try:
            data = strict_validation.validate_json_file(self.path).data or {}
        except ValidationFailure as exc:
            raise ValueError(f"Invalid answer history file {self.path}: {exc}") from exc
        entries = (data.get(course_id) or {}).get(learner_id) or []
        return [AnswerRecord.model_validate(entry) for entry in entries]


class YamlUnitCatalog:
    """Course catalog loaded from YAML.

    Expected layout::

        ap-statistics:
          name: AP Statistics
          units:
            - number: 1
              title: Exploring One-Variable Data
              content: ...
    """

    def __init__(self, courses: Dict[str, Dict[str, object]]):
        self._courses = courses

    @classmethod
    def from_yaml(cls, path: Path) -> "YamlUnitCatalog":
        if not path.exists():
            raise FileNotFoundError(f"Unit catalog {path} is missing")
        try:
            data = strict_validation.validate_yaml_file(path).data or {}
        except ValidationFailure as exc:
            raise ValueError(f"Invalid unit catalog {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError(f"Unit catalog {path} must define a mapping")
        return cls({str(key): value for key, value in data.items() if isinstance(value, dict)})

    def course_name(self, course_id: str) -> str:
        entry = self._courses.get(course_id) or {}
        return str(entry.get("name") or course_id)

    def get_units(self, course_id: str) -> List[CourseUnit]:
        entry = self._courses.get(course_id) or {}
        units: List[CourseUnit] = []
        for raw in entry.get("units") or []:
            if not isinstance(raw, dict):
                continue
            units.append(
                CourseUnit(
                    number=str(raw.get("number", len(units) + 1)),
                    title=str(raw.get("title", "")),
                    content=str(raw.get("content", "")),
                )
            )
        return units

    def find_unit(self, course_id: str, unit: str) -> CourseUnit | None:
        for candidate in self.get_units(course_id):
            if candidate.number == str(unit):
                return candidate
        return None


__all__ = [
    "AnswerHistoryStore",
    "CourseUnit",
    "JsonAnswerHistoryStore",
    "RubricStore",
    "UnitCatalog",
    "YamlUnitCatalog",
]
