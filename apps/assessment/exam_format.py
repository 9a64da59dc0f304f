"""Default exam section counts and timings per course."""

from __future__ import annotations

from typing import Dict, Tuple

from .models import ExamFormat

NO_EXAM_COURSES = frozenset({"ap-research", "ap-drawing", "ap-studio-art-2d", "ap-studio-art-3d"})
FRQ_ONLY_COURSES = frozenset({"ap-seminar"})

# (mcq_count, frq_count, mcq_minutes, frq_minutes, question_types)
_Row = Tuple[int, int, int, int, Tuple[str, ...]]
_GENERAL = ("general",)
_HISTORY = ("SAQ", "DBQ", "LEQ")

DEFAULT_FORMATS: Dict[str, _Row] = {
    "ap-psychology": (100, 2, 70, 50, ("SAQ", "LEQ")),
    "ap-world-history": (55, 3, 55, 100, _HISTORY),
    "ap-united-states-history": (55, 3, 55, 100, _HISTORY),
    "ap-european-history": (55, 3, 55, 100, _HISTORY),
    "ap-calculus-ab": (45, 6, 60, 90, _GENERAL),
    "ap-calculus-bc": (45, 6, 60, 90, _GENERAL),
    "ap-biology": (60, 6, 90, 90, _GENERAL),
    "ap-chemistry": (60, 7, 90, 105, _GENERAL),
    "ap-physics-1": (50, 5, 90, 90, _GENERAL),
    "ap-physics-2": (50, 5, 90, 90, _GENERAL),
    "ap-physics-c-mechanics": (35, 3, 45, 45, _GENERAL),
    "ap-physics-c-electricity": (35, 3, 45, 45, _GENERAL),
    "ap-statistics": (40, 6, 90, 90, _GENERAL),
    "ap-computer-science-a": (40, 4, 90, 90, _GENERAL),
    "ap-computer-science-principles": (70, 0, 120, 0, _GENERAL),
    "ap-economics-macro": (60, 3, 70, 60, _GENERAL),
    "ap-economics-micro": (60, 3, 70, 60, _GENERAL),
    "ap-english-language": (45, 3, 60, 135, _GENERAL),
    "ap-english-literature": (55, 3, 60, 120, _GENERAL),
    "ap-environmental-science": (80, 3, 90, 70, _GENERAL),
    "ap-human-geography": (60, 3, 60, 75, _GENERAL),
    "ap-us-government-and-politics": (55, 4, 80, 100, _GENERAL),
    "ap-comparative-government-and-politics": (55, 4, 80, 100, _GENERAL),
    "ap-art-history": (80, 6, 60, 120, _GENERAL),
    "ap-music-theory": (75, 9, 80, 80, _GENERAL),
}

UNKNOWN_COURSE_ROW: _Row = (55, 3, 55, 100, _GENERAL)


def get_exam_format(course_id: str) -> ExamFormat:
    course_id = course_id.strip().lower()
    if course_id in NO_EXAM_COURSES:
        return ExamFormat(course_id=course_id, has_traditional_exam=False, source="no-exam")
    if course_id in FRQ_ONLY_COURSES:
        return ExamFormat(
            course_id=course_id,
            frq_count=4,
            frq_time_minutes=120,
            question_types=["general", "analysis", "argument"],
            frq_only=True,
            source="frq-only",
        )

    row = DEFAULT_FORMATS.get(course_id)
    source = "default"
    if row is None:
        row, source = UNKNOWN_COURSE_ROW, "default-unknown"
    mcq_count, frq_count, mcq_minutes, frq_minutes, question_types = row
    return ExamFormat(
        course_id=course_id,
        mcq_count=mcq_count,
        frq_count=frq_count,
        mcq_time_minutes=mcq_minutes,
        frq_time_minutes=frq_minutes,
        question_types=list(question_types),
        source=source,
    )


__all__ = ["DEFAULT_FORMATS", "FRQ_ONLY_COURSES", "NO_EXAM_COURSES", "get_exam_format"]
