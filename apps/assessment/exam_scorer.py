"""Combine MCQ and FRQ outcomes into one practice-exam report."""

from __future__ import annotations

import logging
from typing import Callable, List, Mapping, Sequence

from examprep.core.config import ExamSettings
from examprep.core.provenance import ProvenanceLogger, record

from .models import (
    ExamFormat,
    ExamScoreReport,
    FrqQuestion,
    FrqResult,
    FrqSubmission,
    Grade,
    McqResult,
    OverallScore,
    Question,
    SectionScore,
)

LOGGER = logging.getLogger(__name__)

TOO_BRIEF_FEEDBACK = "Response too brief for meaningful evaluation"
NO_RESPONSE_FEEDBACK = "No response submitted"

GraderFn = Callable[[FrqSubmission], Grade]


def estimate_scale(percentage: float, breakpoints: Sequence[tuple] = ExamSettings().scale_breakpoints) -> int:
    """Map a percentage onto the 1-5 scale; each breakpoint is an inclusive lower bound."""
    for threshold, scale in breakpoints:
        if percentage >= threshold:
            return scale
    return 1


def time_used(exam_format: ExamFormat, remaining_seconds: int) -> int:
    return max(0, exam_format.total_time_minutes * 60 - remaining_seconds)


def _percentage(score: int, total: int) -> float:
    return score / total * 100 if total else 0.0


class ExamScorer:
    """Binary per-question scoring across both sections of a practice exam."""

    def __init__(
        self,
        grader_fn: GraderFn,
        *,
        settings: ExamSettings | None = None,
        provenance: ProvenanceLogger | None = None,
    ) -> None:
        self.grader_fn = grader_fn
        self.settings = settings or ExamSettings()
        self.provenance = provenance

    def grade(
        self,
        mcq_questions: Sequence[Question],
        mcq_answers: Mapping[str, str],
        frq_questions: Sequence[FrqQuestion] = (),
        frq_responses: Mapping[str, str] | None = None,
        time_used_seconds: int = 0,
        *,
        course: str = "AP Course",
    ) -> ExamScoreReport:
        mcq_results = [self._score_mcq(question, mcq_answers.get(question.id)) for question in mcq_questions]
        frq_responses = frq_responses or {}
        frq_results = [
            self._score_frq(question, frq_responses.get(question.id, ""), course) for question in frq_questions
        ]

        mcq_score = sum(1 for result in mcq_results if result.is_correct)
        frq_score = sum(1 for result in frq_results if result.passed)
        total = len(mcq_results) + len(frq_results)
        correct = mcq_score + frq_score
        percentage = _percentage(correct, total)

        report = ExamScoreReport(
            mcq=SectionScore(
                score=mcq_score,
                total=len(mcq_results),
                percentage=_percentage(mcq_score, len(mcq_results)),
                results=mcq_results,
            ),
            frq=SectionScore(
                score=frq_score,
                total=len(frq_results),
                percentage=_percentage(frq_score, len(frq_results)),
                results=frq_results,
            ),
            overall=OverallScore(
                score=correct,
                total=total,
                percentage=percentage,
                estimated_scale=estimate_scale(percentage, self.settings.scale_breakpoints),
            ),
            time_used_seconds=max(0, int(time_used_seconds)),
        )
        LOGGER.info("Scored exam for %s: %d/%d (%.1f%%)", course, correct, total, percentage)
        record(
            self.provenance,
            operation="exam",
            outcome="scored",
            message=course,
            payload={"score": correct, "total": total, "estimated_scale": report.overall.estimated_scale},
        )
        return report

    # ------------------------------------------------------------------

    @staticmethod
    def _score_mcq(question: Question, selected: str | None) -> McqResult:
        normalized = selected.strip().upper() if isinstance(selected, str) and selected.strip() else None
        return McqResult(
            question_id=question.id,
            selected=normalized,
            correct_answer=question.correct_answer,
            is_correct=normalized == question.correct_answer,
        )

    def _score_frq(self, question: FrqQuestion, response: str, course: str) -> FrqResult:
        text = (response or "").strip()
        if not text:
            return FrqResult(question_id=question.id, response="", quality="No Response", feedback=NO_RESPONSE_FEEDBACK)
        if len(text) < self.settings.frq_min_chars:
            return FrqResult(question_id=question.id, response=text, quality="Too Brief", feedback=TOO_BRIEF_FEEDBACK)

        grade = self.grader_fn(
            FrqSubmission(
                course=course,
                prompt=question.prompt,
                response_text=text,
                rubric_segments=question.rubric_segments,
                question_type=question.question_type,
            )
        )
        ratio = grade.score_ratio
        passed = ratio is not None and ratio >= self.settings.frq_pass_ratio
        return FrqResult(
            question_id=question.id,
            response=text,
            passed=passed,
            quality="Meets CED Standards" if passed else "Needs Improvement",
            feedback=grade.summary,
            grade=grade,
        )


__all__ = ["ExamScorer", "TOO_BRIEF_FEEDBACK", "estimate_scale", "time_used"]
