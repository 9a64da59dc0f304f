"""Rubric-based grading of free responses, with an ungraded fallback."""

from __future__ import annotations

import logging
from typing import Sequence

from examprep.core.config import GraderSettings, RoleModelConfig
from examprep.core.contracts import GRADE_CONTRACT, GradePayload
from examprep.core.errors import FailureKind
from examprep.core.generation import GenerationClient, GenerationRequest
from examprep.core.provenance import ProvenanceLogger, record

from .models import FrqSubmission, Grade, RubricCriterion, RubricSegment

LOGGER = logging.getLogger(__name__)

NO_RUBRIC_TEXT = "No rubric excerpts were available."
MISSING_CREDENTIAL_SUMMARY = "OpenAI API key not configured. Unable to run automated grading."
GRADER_ERROR_SUMMARY = "Automated grader encountered an error. Please try again later."
FALLBACK_IMPROVEMENT = "Please provide a more complete response to receive a proper grade"


def build_rubric_context(segments: Sequence[RubricSegment], char_budget: int | None = None) -> str:
    if not segments:
        return NO_RUBRIC_TEXT
    blocks = []
    for index, segment in enumerate(segments, start=1):
        header = f"Rubric {index}: {segment.title}" if segment.title else f"Rubric {index}"
        blocks.append(f"{header}\n{segment.content}")
    context = "\n\n".join(blocks)
    if char_budget and len(context) > char_budget:
        context = context[:char_budget] + "..."
    return context


def build_system_instructions() -> str:
    return "\n\n".join(
        [
            "You are an experienced AP course grader. Assess submissions strictly against the provided rubric context.",
            "Return your evaluation using the following JSON schema:",
            GRADE_CONTRACT.format_instructions(),
            "If a requested numeric score is missing from the rubric, leave it as null and explain in the summary.",
            "Only award points when the evidence clearly earns them. Cite rubric language in explanations.",
        ]
    )


def build_grading_details(submission: FrqSubmission, rubric_context: str) -> str:
    image_line = (
        "A handwritten/image response is attached for review."
        if submission.image_data
        else "No handwritten/image response attached."
    )
    return "\n\n".join(
        [
            f"Course: {submission.course or 'AP Course'}",
            f"Question Type: {submission.question_type or 'general'}",
            f"Prompt: {submission.prompt or '[Not provided]'}",
            f"Rubric Context:\n{rubric_context}",
            f"Student Response (typed):\n{submission.response_text or '[No typed response provided]'}",
            image_line,
        ]
    )


def fallback_grade(summary: str, max_score: int = 7) -> Grade:
    return Grade(
        graded=False,
        model=None,
        overall_score=0,
        max_score=max_score,
        performance_level="Needs Improvement",
        summary=summary,
        strengths=[],
        improvements=[FALLBACK_IMPROVEMENT],
        rubric_alignment=[],
    )


class RubricGrader:
    """Grade one free response per call; never raises on service failure."""

    def __init__(
        self,
        client: GenerationClient,
        *,
        settings: GraderSettings | None = None,
        role: RoleModelConfig | None = None,
        provenance: ProvenanceLogger | None = None,
    ) -> None:
        self.client = client
        self.settings = settings or GraderSettings()
        self.role = role or RoleModelConfig(temperature=0.25, max_tokens=1400)
        self.provenance = provenance

    def grade_submission(self, submission: FrqSubmission) -> Grade:
        if not self.client.available:
            LOGGER.warning("Grading service not configured; returning ungraded result")
            return self._fallback(MISSING_CREDENTIAL_SUMMARY, FailureKind.SERVICE_UNAVAILABLE.value)

        rubric_context = build_rubric_context(submission.rubric_segments, self.settings.rubric_char_budget)
        request = GenerationRequest(
            prompt=build_grading_details(submission, rubric_context),
            contract=GRADE_CONTRACT,
            system=build_system_instructions(),
            attachments=(submission.image_data,) if submission.image_data else (),
            temperature=self.role.temperature,
            max_tokens=self.role.max_tokens,
        )
        result = self.client.generate_result(request)
        if not result.ok:
            LOGGER.warning("FRQ grading failed (%s): %s", result.failure.kind.value, result.failure)
            return self._fallback(GRADER_ERROR_SUMMARY, result.failure.kind.value)

        grade = self._from_payload(result.value)
        record(
            self.provenance,
            operation="grading",
            outcome="graded",
            message=submission.course,
            payload={"overall_score": grade.overall_score, "max_score": grade.max_score, "model": grade.model},
        )
        return grade

    def _from_payload(self, payload: GradePayload) -> Grade:
        return Grade(
            graded=True,
            model=self.client.model_name,
            overall_score=payload.overall_score,
            max_score=payload.max_score,
            performance_level=payload.performance_level,
            summary=payload.summary,
            strengths=list(payload.strengths),
            improvements=list(payload.improvements),
            rubric_alignment=[
                RubricCriterion(
                    criterion=item.criterion,
                    score=item.score,
                    max_score=item.max_score,
                    explanation=item.explanation,
                )
                for item in payload.rubric_alignment
            ],
        )

    def _fallback(self, summary: str, reason: str) -> Grade:
        record(self.provenance, operation="grading", outcome="ungraded", message=summary, payload={"reason": reason})
        return fallback_grade(summary, self.settings.fallback_max_score)


__all__ = [
    "GRADER_ERROR_SUMMARY",
    "MISSING_CREDENTIAL_SUMMARY",
    "NO_RUBRIC_TEXT",
    "RubricGrader",
    "build_grading_details",
    "build_rubric_context",
    "build_system_instructions",
    "fallback_grade",
]
