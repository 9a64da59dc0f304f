"""Facade wiring config, generation clients and stores into the assessment operations."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterable, Mapping, Sequence

from examprep.core.config import AssessmentConfig, load_assessment_config
from examprep.core.generation import GenerationClient, build_generation_client
from examprep.core.provenance import ProvenanceLogger

from .exam_format import get_exam_format
from .exam_scorer import ExamScorer, time_used
from .mcq_generator import McqGenerator
from .models import (
    AnswerRecord,
    ExamFormat,
    ExamScoreReport,
    FrqQuestion,
    FrqSubmission,
    Grade,
    PerformanceSummary,
    Question,
    QuestionSet,
)
from .performance import analyze_performance
from .ports import AnswerHistoryStore, RubricStore, UnitCatalog
from .question_cache import QuestionCache, content_hash
from .rubric_grader import RubricGrader
from .rubric_store import find_relevant_rubrics, load_rubric_store

LOGGER = logging.getLogger(__name__)


class AssessmentService:
    """Single entry point used by the CLI and the portal backend."""

    def __init__(
        self,
        config: AssessmentConfig | None = None,
        *,
        generator_client: GenerationClient,
        grader_client: GenerationClient,
        rubric_store: RubricStore | None = None,
        history_store: AnswerHistoryStore | None = None,
        unit_catalog: UnitCatalog | None = None,
        cache: QuestionCache | None = None,
        sleep: Callable[[float], None] = time.sleep,
        provenance: ProvenanceLogger | None = None,
    ) -> None:
        self.config = config or AssessmentConfig()
        self.rubric_store = rubric_store
        self.history_store = history_store
        self.unit_catalog = unit_catalog
        self.cache = cache
        self.generator = McqGenerator(
            generator_client,
            settings=self.config.mcq,
            role=self.config.models.generator,
            sleep=sleep,
            provenance=provenance,
        )
        self.grader = RubricGrader(
            grader_client,
            settings=self.config.grader,
            role=self.config.models.grader,
            provenance=provenance,
        )
        self.scorer = ExamScorer(self.grader.grade_submission, settings=self.config.exam, provenance=provenance)

    @classmethod
    def from_config(
        cls,
        config: AssessmentConfig | None = None,
        *,
        history_store: AnswerHistoryStore | None = None,
        unit_catalog: UnitCatalog | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "AssessmentService":
        config = config or load_assessment_config()
        rubric_store = None
        if config.rubrics_path is not None and config.rubrics_path.exists():
            rubric_store = load_rubric_store(config.rubrics_path)
        return cls(
            config,
            generator_client=build_generation_client(config.models.generator, "generator"),
            grader_client=build_generation_client(config.models.grader, "grader"),
            rubric_store=rubric_store,
            history_store=history_store,
            unit_catalog=unit_catalog,
            cache=QuestionCache(config.cache.path) if config.cache.enabled else None,
            sleep=sleep,
            provenance=ProvenanceLogger(config.provenance_path) if config.provenance_path else None,
        )

    def close(self) -> None:
        self.generator.client.close()
        if self.grader.client is not self.generator.client:
            self.grader.client.close()

    def __enter__(self) -> "AssessmentService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------

    def _resolve_unit(self, course: str, unit: str, content: str | None, unit_title: str | None) -> tuple[str, str | None]:
        if content is not None:
            return content, unit_title
        if self.unit_catalog is not None:
            for candidate in self.unit_catalog.get_units(course):
                if candidate.number == str(unit):
                    return candidate.content, unit_title or candidate.title
        raise ValueError(f"No content supplied and no catalog entry for {course} unit {unit}")

    def question_count(self, *, guest: bool = False) -> int:
        return self.config.mcq.guest_question_count if guest else self.config.mcq.default_question_count

    def generate_questions(
        self,
        course: str,
        unit: str | int,
        content: str | None = None,
        count: int | None = None,
        *,
        unit_title: str | None = None,
        guest: bool = False,
    ) -> QuestionSet:
        unit = str(unit)
        content, unit_title = self._resolve_unit(course, unit, content, unit_title)
        count = self.question_count(guest=guest) if count is None else count

        digest = content_hash(content)
        if self.cache is not None:
            cached = self.cache.get(course, unit, digest)
            if cached is not None and len(cached) >= count:
                LOGGER.info("Serving cached questions for %s unit %s", course, unit)
                return cached.model_copy(update={"questions": cached.questions[:count]})

        question_set = self.generator.generate_questions(course, unit, content, count, unit_title=unit_title)
        if self.cache is not None and question_set.mode == "standard":
            self.cache.put(question_set, digest)
        return question_set

    def generate_adaptive_questions(
        self,
        course: str,
        unit: str | int,
        content: str | None = None,
        answer_records: Iterable[AnswerRecord | Mapping[str, Any]] | None = None,
        count: int | None = None,
        *,
        learner_id: str | None = None,
        unit_title: str | None = None,
    ) -> QuestionSet:
        unit = str(unit)
        content, unit_title = self._resolve_unit(course, unit, content, unit_title)
        records = self._answer_records(course, answer_records, learner_id)
        count = self.question_count() if count is None else count
        return self.generator.generate_adaptive_questions(course, unit, content, records, count, unit_title=unit_title)

    def _answer_records(
        self,
        course: str,
        answer_records: Iterable[AnswerRecord | Mapping[str, Any]] | None,
        learner_id: str | None,
    ) -> list:
        if answer_records is not None:
            return list(answer_records)
        if learner_id and self.history_store is not None:
            return list(self.history_store.get_answer_records(course, learner_id))
        return []

    def analyze_performance(
        self,
        answer_records: Iterable[AnswerRecord | Mapping[str, Any]] | None = None,
        *,
        course: str | None = None,
        learner_id: str | None = None,
    ) -> PerformanceSummary:
        return analyze_performance(self._answer_records(course or "", answer_records, learner_id))

    def grade_submission(self, submission: FrqSubmission, *, course_id: str | None = None) -> Grade:
        """Grade one response; rubric excerpts come from the store when none are attached."""
        if not submission.rubric_segments and course_id and self.rubric_store is not None:
            segments = find_relevant_rubrics(
                self.rubric_store.get_rubric_segments(course_id),
                submission.question_type,
                submission.prompt,
                submission.response_text,
            )
            submission = submission.model_copy(update={"rubric_segments": segments})
        return self.grader.grade_submission(submission)

    def grade_exam(
        self,
        course_id: str,
        mcq_questions: Sequence[Question],
        mcq_answers: Mapping[str, str],
        frq_questions: Sequence[FrqQuestion] = (),
        frq_responses: Mapping[str, str] | None = None,
        *,
        time_used_seconds: int | None = None,
        remaining_seconds: int | None = None,
    ) -> ExamScoreReport:
        if time_used_seconds is None:
            time_used_seconds = time_used(self.exam_format(course_id), remaining_seconds) if remaining_seconds is not None else 0
        if self.rubric_store is not None:
            frq_questions = [self._attach_rubrics(course_id, question) for question in frq_questions]
        return self.scorer.grade(
            mcq_questions,
            mcq_answers,
            frq_questions,
            frq_responses,
            time_used_seconds,
            course=course_id,
        )

    def _attach_rubrics(self, course_id: str, question: FrqQuestion) -> FrqQuestion:
        if question.rubric_segments:
            return question
        segments = find_relevant_rubrics(
            self.rubric_store.get_rubric_segments(course_id),
            question.question_type,
            question.prompt,
        )
        return question.model_copy(update={"rubric_segments": segments})

    def exam_format(self, course_id: str) -> ExamFormat:
        return get_exam_format(course_id)


__all__ = ["AssessmentService"]
