"""Question generation, rubric grading, adaptive selection and exam scoring."""
from .exam_format import get_exam_format
from .exam_scorer import ExamScorer, estimate_scale
from .mcq_generator import FALLBACK_NOTICE, McqGenerator, backoff_delay, estimate_token_usage, validate_questions
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
    RubricSegment,
)
from .performance import analyze_performance
from .rubric_grader import RubricGrader, build_rubric_context
from .service import AssessmentService

__all__ = [
    "AnswerRecord",
    "AssessmentService",
    "ExamFormat",
    "ExamScoreReport",
    "ExamScorer",
    "FALLBACK_NOTICE",
    "FrqQuestion",
    "FrqSubmission",
    "Grade",
    "McqGenerator",
    "PerformanceSummary",
    "Question",
    "QuestionSet",
    "RubricGrader",
    "RubricSegment",
    "analyze_performance",
    "backoff_delay",
    "build_rubric_context",
    "estimate_scale",
    "estimate_token_usage",
    "get_exam_format",
    "validate_questions",
]
