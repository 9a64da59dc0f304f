from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from apps.assessment.models import (
    AnswerRecord,
    ExamScoreReport,
    FrqQuestion,
    FrqSubmission,
    Grade,
    PerformanceSummary,
    Question,
    QuestionSet,
)
from apps.assessment.ports import JsonAnswerHistoryStore, YamlUnitCatalog
from apps.assessment.service import AssessmentService
from examprep import get_version
from examprep.core.config import load_assessment_config

REPO_ROOT = Path(__file__).resolve().parents[2]


class PortalSettings(BaseModel):
    """Runtime configuration for the portal backend."""

    model_config = ConfigDict(frozen=True)

    config_path: Path | None = None
    catalog_path: Path | None = None
    history_path: Path | None = None


def _env_path(name: str, default: Path | None = None) -> Path | None:
    value = os.getenv(name)
    if value:
        return Path(value).expanduser().resolve()
    return default if default is not None and default.exists() else None


@lru_cache
def get_settings() -> PortalSettings:
    load_dotenv(REPO_ROOT / ".env")
    return PortalSettings(
        config_path=_env_path("EXAMPREP_CONFIG", REPO_ROOT / "config" / "assessment.yaml"),
        catalog_path=_env_path("EXAMPREP_CATALOG"),
        history_path=_env_path("EXAMPREP_HISTORY"),
    )


@lru_cache
def _service_for(settings: PortalSettings) -> AssessmentService:
    return AssessmentService.from_config(
        load_assessment_config(settings.config_path),
        unit_catalog=YamlUnitCatalog.from_yaml(settings.catalog_path) if settings.catalog_path else None,
        history_store=JsonAnswerHistoryStore(settings.history_path) if settings.history_path else None,
    )


def get_service(settings: PortalSettings = Depends(get_settings)) -> AssessmentService:
    return _service_for(settings)


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerateQuestionsBody(ApiModel):
    course: str
    unit: str | int
    content: str | None = None
    unit_title: str | None = None
    count: int | None = Field(default=None, ge=1, le=50)
    guest: bool = False


class AdaptiveQuestionsBody(GenerateQuestionsBody):
    answer_records: List[AnswerRecord] | None = None
    learner_id: str | None = None


class GradeBody(FrqSubmission):
    course_id: str | None = None


class AnalyzeBody(ApiModel):
    answer_records: List[AnswerRecord] | None = None
    course_id: str | None = None
    learner_id: str | None = None


class ScoreExamBody(ApiModel):
    course_id: str
    mcq_questions: List[Question] = Field(default_factory=list)
    mcq_answers: Dict[str, str] = Field(default_factory=dict)
    frq_questions: List[FrqQuestion] = Field(default_factory=list)
    frq_responses: Dict[str, str] = Field(default_factory=dict)
    time_used_seconds: int | None = Field(default=None, ge=0)
    remaining_seconds: int | None = Field(default=None, ge=0)


class HealthResponse(BaseModel):
    status: str
    version: str


app = FastAPI(title="Exam Prep Assessment API", version=get_version())
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _dump(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok", version=get_version())


@app.get("/courses/{course_id}/exam-format")
def exam_format(course_id: str, service: AssessmentService = Depends(get_service)) -> Dict[str, Any]:
    fmt = service.exam_format(course_id)
    payload = _dump(fmt)
    payload["totalTimeMinutes"] = fmt.total_time_minutes
    payload["examType"] = fmt.exam_type
    return payload


@app.post("/questions")
def generate_questions(body: GenerateQuestionsBody, service: AssessmentService = Depends(get_service)) -> Dict[str, Any]:
    try:
        result: QuestionSet = service.generate_questions(
            body.course,
            body.unit,
            body.content,
            body.count,
            unit_title=body.unit_title,
            guest=body.guest,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _dump(result)


@app.post("/questions/adaptive")
def generate_adaptive_questions(
    body: AdaptiveQuestionsBody,
    service: AssessmentService = Depends(get_service),
) -> Dict[str, Any]:
    try:
        result: QuestionSet = service.generate_adaptive_questions(
            body.course,
            body.unit,
            body.content,
            body.answer_records,
            body.count,
            learner_id=body.learner_id,
            unit_title=body.unit_title,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _dump(result)


@app.post("/frq/grade")
def grade_frq(body: GradeBody, service: AssessmentService = Depends(get_service)) -> Dict[str, Any]:
    submission = FrqSubmission.model_validate(body.model_dump(exclude={"course_id"}))
    grade: Grade = service.grade_submission(submission, course_id=body.course_id)
    return _dump(grade)


@app.post("/performance/analyze")
def analyze(body: AnalyzeBody, service: AssessmentService = Depends(get_service)) -> Dict[str, Any]:
    summary: PerformanceSummary = service.analyze_performance(
        body.answer_records,
        course=body.course_id,
        learner_id=body.learner_id,
    )
    return _dump(summary)


@app.post("/exams/score")
def score_exam(body: ScoreExamBody, service: AssessmentService = Depends(get_service)) -> Dict[str, Any]:
    report: ExamScoreReport = service.grade_exam(
        body.course_id,
        body.mcq_questions,
        body.mcq_answers,
        body.frq_questions,
        body.frq_responses,
        time_used_seconds=body.time_used_seconds,
        remaining_seconds=body.remaining_seconds,
    )
    return _dump(report)
