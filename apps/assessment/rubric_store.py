"""YAML-backed rubric segments and relevance ranking for FRQ grading."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Set

from examprep.core.validation import ValidationFailure, strict_validation

from .models import RubricSegment

LOGGER = logging.getLogger(__name__)

MAX_RELEVANT = 3
MAX_FALLBACK = 2

# Boilerplate that shows up in extracted scoring guides but never helps grading.
BOILERPLATE_PATTERNS = (
    "document-based question (dbq) • short-answer question (saq)",
    "question, as well as scoring guidelines and student samples, is also available on",
    "long essay question (leq) • general frq / essay",
    "change fostered by innovation",
    "this essay with full scoring guides and",
    "also for the score",
)

STOP_WORDS = frozenset(
    """
    the and for with that from this which their will into have include includes including such
    should must each students student score scoring points point criteria criterion may also use
    using used through your they them there where when what been being are were was has had but
    because about across within make makes made show shows provide provided provides demonstrate
    demonstrates demonstrated explain explains explained analysis analyze analyzes clearly adequate
    adequately related relevant support supports supporting evidence example examples
    """.split()
)

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


def keyword_set(text: str) -> Set[str]:
    words = _NON_ALNUM.sub(" ", (text or "").lower()).split()
    return {word for word in words if len(word) > 3 and word not in STOP_WORDS}


def is_boilerplate(segment: RubricSegment) -> bool:
    title = (segment.title or "").lower()
    content = segment.content.lower()
    return any(pattern in title or pattern in content for pattern in BOILERPLATE_PATTERNS)


def score_segment(segment: RubricSegment, question_type: str | None, prompt: str, response_text: str) -> float:
    score = 0.0
    if question_type and question_type in segment.question_types:
        score += 8
    elif "general" in segment.question_types:
        score += 2

    segment_keywords = keyword_set(f"{segment.title or ''} {segment.content}")
    score += len(keyword_set(f"{prompt} {response_text}") & segment_keywords)

    if prompt and segment.title:
        normalized_prompt = prompt.lower()
        normalized_title = segment.title.lower()
        if normalized_prompt in normalized_title or normalized_title in normalized_prompt:
            score += 5

    # favour focused segments spanning fewer source chunks
    score -= len(segment.chunk_indices) * 0.1
    return score


def find_relevant_rubrics(
    segments: Iterable[RubricSegment],
    question_type: str | None = None,
    prompt: str = "",
    response_text: str = "",
) -> List[RubricSegment]:
    """Pick the rubric excerpts most likely to apply to a response."""

    candidates = [segment for segment in segments if not is_boilerplate(segment)]
    if not candidates:
        return []

    scored = [(score_segment(segment, question_type, prompt, response_text), segment) for segment in candidates]
    scored.sort(key=lambda item: -item[0])
    top = [segment for score, segment in scored if score > 0][:MAX_RELEVANT]
    if top:
        return top

    general = [segment for segment in candidates if "general" in segment.question_types]
    if general:
        return general[:MAX_FALLBACK]
    return candidates[:MAX_FALLBACK]


class YamlRubricStore:
    """Rubric segments per course, loaded from a YAML mapping.

    Expected layout::

        ap-world-history:
          - title: DBQ Thesis
            question_types: [DBQ]
            content: ...
    """

    def __init__(self, rubrics: Dict[str, Sequence[RubricSegment]]):
        self._rubrics = {course: list(segments) for course, segments in rubrics.items()}

    @classmethod
    def from_yaml(cls, path: Path) -> "YamlRubricStore":
        if not path.exists():
            raise FileNotFoundError(f"Rubrics file {path} is missing")

        try:
            data = strict_validation.validate_yaml_file(path).data or {}
        except ValidationFailure as exc:
            raise ValueError(f"Invalid rubrics file {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError(f"Rubrics file {path} must define a mapping")

        rubrics: Dict[str, List[RubricSegment]] = {}
        for course_id, entries in data.items():
            if not isinstance(entries, list):
                LOGGER.warning("Skipping rubrics for %s: expected a list, got %s", course_id, type(entries).__name__)
                continue
            segments: List[RubricSegment] = []
            for entry in entries:
                if not isinstance(entry, dict) or not entry.get("content"):
                    continue
                question_types = entry.get("question_types") or entry.get("questionTypes") or ["general"]
                if not isinstance(question_types, list):
                    question_types = [str(question_types)]
                segments.append(
                    RubricSegment(
                        title=entry.get("title"),
                        content=str(entry["content"]),
                        question_types=[str(item) for item in question_types],
                        chunk_indices=[int(idx) for idx in entry.get("chunk_indices") or []],
                    )
                )
            rubrics[str(course_id)] = segments
        return cls(rubrics)

    @classmethod
    def from_directory(cls, directory: Path) -> "YamlRubricStore":
        """Merge every ``*.yaml`` file in a directory."""
        merged: Dict[str, List[RubricSegment]] = {}
        for path in sorted(directory.glob("*.yaml")):
            for course_id, segments in cls.from_yaml(path)._rubrics.items():
                merged.setdefault(course_id, []).extend(segments)
        return cls(merged)

    @property
    def courses(self) -> List[str]:
        return sorted(self._rubrics)

    def get_rubric_segments(self, course_id: str) -> List[RubricSegment]:
        return list(self._rubrics.get(course_id, []))

    def find_relevant(self, course_id: str, *, question_type: str | None = None, prompt: str = "", response_text: str = "") -> List[RubricSegment]:
        return find_relevant_rubrics(self.get_rubric_segments(course_id), question_type, prompt, response_text)


def load_rubric_store(path: Path) -> YamlRubricStore:
    return YamlRubricStore.from_directory(path) if path.is_dir() else YamlRubricStore.from_yaml(path)


__all__ = [
    "BOILERPLATE_PATTERNS",
    "YamlRubricStore",
    "find_relevant_rubrics",
    "is_boilerplate",
    "keyword_set",
    "load_rubric_store",
    "score_segment",
]
