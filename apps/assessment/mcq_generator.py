"""Multiple-choice question generation with retries and deterministic fallbacks."""

from __future__ import annotations

import logging
import math
import re
import time
from textwrap import dedent
from typing import Any, Callable, Iterable, List, Mapping, Sequence

from examprep.core.config import McqSettings, RoleModelConfig
from examprep.core.contracts import QUESTION_SET_CONTRACT, QuestionSetPayload
from examprep.core.errors import GenerationFailure, QuestionValidationError
from examprep.core.generation import GenerationClient, GenerationRequest
from examprep.core.provenance import ProvenanceLogger, record

from .models import ANSWER_LABELS, AnswerRecord, PerformanceSummary, Question, QuestionSet
from .performance import analyze_performance

LOGGER = logging.getLogger(__name__)

FALLBACK_NOTICE = "This is a fallback question. Please check the CED content and regenerate questions."
MIN_ACCEPTED_QUESTIONS = 3

MATH_KEYWORDS = (
    "calculus",
    "statistics",
    "algebra",
    "geometry",
    "trigonometry",
    "precalculus",
    "mathematics",
    "math",
    "mathematical",
)

_OPTION_PREFIX = re.compile(r"^(?:\([A-E]\)|[A-E][.)])\s*")


def backoff_delay(attempt: int, base: float = 2.0) -> float:
    """Seconds to wait after failed attempt ``attempt`` (1-based)."""
    if attempt < 1:
        raise ValueError("attempt numbers start at 1")
    return float(base**attempt)


def estimate_token_usage(text: str) -> int:
    """Rough token estimate: one token per four characters."""
    return math.ceil(len(text or "") / 4)


def truncate_content(content: str, budget: int) -> str:
    content = content or ""
    if len(content) > budget:
        return content[:budget] + "..."
    return content


def is_math_course(course: str) -> bool:
    lowered = course.lower()
    return any(keyword in lowered for keyword in MATH_KEYWORDS)


def is_statistics_course(course: str) -> bool:
    return "statistics" in course.lower()


def strip_option_prefix(option: str) -> str:
    return _OPTION_PREFIX.sub("", option.strip(), count=1).strip()


def _get(question: Any, *names: str) -> Any:
    for name in names:
        if isinstance(question, Mapping):
            if name in question:
                return question[name]
        elif hasattr(question, name):
            return getattr(question, name)
    return None


def validate_questions(questions: Sequence[Question | Mapping[str, Any]]) -> bool:
    """True when every question has text, four options, an explanation and an A-D label."""

    if not isinstance(questions, (list, tuple)):
        return False
    for question in questions:
        text = _get(question, "question", "prompt")
        options = _get(question, "options")
        label = _get(question, "correct_answer", "correctAnswer")
        explanation = _get(question, "explanation")
        if not str(text or "").strip() or not str(explanation or "").strip() or not isinstance(label, str):
            return False
        if not isinstance(options, (list, tuple)) or len(options) != 4:
            return False
        if label.strip().upper() not in ANSWER_LABELS:
            return False
    return True


# ---------------------------------------------------------------------------
# Prompts

MATH_INSTRUCTIONS = dedent(
    """
    MATH-SPECIFIC INSTRUCTIONS:
    - Create ACTUAL MATH PROBLEMS with calculations, equations, and mathematical concepts
    - Include problems that require students to solve equations, find derivatives, integrals, or statistical calculations
    - Use real mathematical scenarios and word problems
    - Include problems with graphs, functions, and mathematical reasoning
    - Avoid questions about CED structure, exam format, or course organization
    - Focus on mathematical content: formulas, theorems, problem-solving, and applications
    - Include numerical answers that students must calculate
    - Use proper mathematical notation and terminology
    """
).strip()

ADAPTIVE_FOCUS = dedent(
    """
    Adaptive Focus:
    - Focus on concepts and topics where the student has shown weakness
    - Prioritize questions that address identified knowledge gaps
    - Create questions that test the specific skills the student needs to improve
    """
).strip()

QUALITY_GUIDELINES = dedent(
    """
    CRITICAL INSTRUCTIONS FOR AUTHENTIC AP-STYLE QUESTIONS:

    1. Question Format & Style:
       - Use the exact question formats found on real AP {course} exams
       - Use "Which of the following..." constructions typical of AP exams
       - Include primary source excerpts, data, or scenarios when appropriate
       - Make questions test analysis, synthesis, and application, not just recall

    2. Distractor Quality:
       - Create distractors that are plausible but clearly incorrect to AP-level students
       - Use common misconceptions as distractors
       - Ensure only one answer is definitively correct
       - Make distractors similar in length and complexity to the correct answer

    3. Difficulty Level:
       - Match the cognitive complexity of real AP exam questions
       - Include questions that require multiple steps of reasoning
       - Base questions on the specific unit content provided
    """
).strip()


def build_question_prompt(
    course: str,
    unit: str,
    content: str,
    count: int,
    *,
    unit_title: str | None = None,
    performance_summary: PerformanceSummary | None = None,
) -> str:
    adaptive = performance_summary is not None and performance_summary.has_data
    intro = (
        "You are an expert AP exam question writer with deep knowledge of College Board AP exam formats and styles. "
        f"Generate {count} authentic AP-style multiple choice questions that match the exact format, difficulty, "
        f"and style of real AP {course} exam questions"
    )
    intro += ", with a focus on areas where the student needs improvement." if adaptive else "."

    unit_line = f"Unit: {unit} - {unit_title}" if unit_title else f"Unit: {unit}"
    blocks = [intro, f"Course: {course}\n{unit_line}", f"Content:\n{content}"]
    if adaptive:
        blocks.append(f"Previous Performance Analysis:\n{performance_summary.text}")
    blocks.append(QUALITY_GUIDELINES.format(course=course))
    if adaptive:
        blocks.append(ADAPTIVE_FOCUS)
    if is_math_course(course):
        blocks.append(MATH_INSTRUCTIONS)
    blocks.append(
        "IMPORTANT: Do NOT include letter prefixes (A., B., C., D.) in the question text or options - "
        "the letters will be added automatically."
    )
    blocks.append(QUESTION_SET_CONTRACT.format_instructions())
    return "\n\n".join(blocks)


# ---------------------------------------------------------------------------
# Fallback banks


def _with_notice(explanation: str) -> str:
    return f"{explanation} {FALLBACK_NOTICE}"


STATISTICS_BANK = (
    {
        "question": "A sample of 25 students has a mean test score of 78 with a standard deviation of 8. What is the 95% confidence interval for the population mean?",
        "options": ["74.86 to 81.14", "76.32 to 79.68", "74.12 to 81.88", "75.44 to 80.56"],
        "correct_answer": "A",
        "explanation": _with_notice(
            "Using x̄ ± t*(s/√n) with df=24, t*=2.064: 78 ± 2.064(8/√25) = 78 ± 3.14 = (74.86, 81.14)."
        ),
    },
    {
        "question": "If the correlation coefficient between two variables is r = 0.85, what percentage of the variation in y is explained by the linear relationship with x?",
        "options": ["72.25%", "85%", "92.5%", "15%"],
        "correct_answer": "A",
        "explanation": _with_notice("The coefficient of determination is r² = (0.85)² = 0.7225 = 72.25%."),
    },
    {
        "question": "In a normal distribution with mean μ = 100 and standard deviation σ = 15, what is the probability that a randomly selected value is between 85 and 115?",
        "options": ["0.6826", "0.9544", "0.9974", "0.5000"],
        "correct_answer": "A",
        "explanation": _with_notice("This is within one standard deviation of the mean, so P(μ-σ < X < μ+σ) ≈ 0.6826."),
    },
)

MATH_BANK = (
    {
        "question": "What is the derivative of f(x) = x² + 3x - 5?",
        "options": ["2x + 3", "x + 3", "2x - 5", "x² + 3"],
        "correct_answer": "A",
        "explanation": _with_notice("By the power rule, d/dx(x²) = 2x, d/dx(3x) = 3 and d/dx(-5) = 0, so f'(x) = 2x + 3."),
    },
    {
        "question": "If f(x) = 2x³ - 4x + 1, what is f'(2)?",
        "options": ["20", "16", "24", "12"],
        "correct_answer": "A",
        "explanation": _with_notice("f'(x) = 6x² - 4, so f'(2) = 6(4) - 4 = 20."),
    },
    {
        "question": "What is the limit as x approaches 0 of (sin x)/x?",
        "options": ["1", "0", "∞", "undefined"],
        "correct_answer": "A",
        "explanation": _with_notice("lim(x→0) (sin x)/x = 1 is a standard result in calculus."),
    },
)


def _general_bank(course: str, unit: str) -> tuple:
    return (
        {
            "question": f"Based on the content in {course} Unit {unit}, which of the following best describes the main topic?",
            "options": [
                "A comprehensive overview of the subject matter",
                "An introduction to basic concepts",
                "Advanced applications and analysis",
                "Historical context and background",
            ],
            "correct_answer": "A",
            "explanation": FALLBACK_NOTICE,
        },
        {
            "question": f"What is the primary focus of Unit {unit} in {course}?",
            "options": [
                "Theoretical foundations",
                "Practical applications",
                "Historical development",
                "Contemporary relevance",
            ],
            "correct_answer": "B",
            "explanation": FALLBACK_NOTICE,
        },
    )


def build_fallback_questions(course: str, unit: str, count: int) -> List[Question]:
    """Deterministic placeholder questions, cycled to ``count`` with ids q1..qN."""

    if is_statistics_course(course):
        bank = STATISTICS_BANK
    elif is_math_course(course):
        bank = MATH_BANK
    else:
        bank = _general_bank(course, unit)
    return [Question(id=f"q{index + 1}", **bank[index % len(bank)]) for index in range(count)]


# ---------------------------------------------------------------------------


class McqGenerator:
    """Generate question sets, retrying on failure and falling back when exhausted."""

    def __init__(
        self,
        client: GenerationClient,
        *,
        settings: McqSettings | None = None,
        role: RoleModelConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
        provenance: ProvenanceLogger | None = None,
    ) -> None:
        self.client = client
        self.settings = settings or McqSettings()
        self.role = role or RoleModelConfig(temperature=0.7, max_tokens=1500)
        self._sleep = sleep
        self.provenance = provenance

    def generate_questions(
        self,
        course: str,
        unit: str | int,
        content: str,
        count: int | None = None,
        performance_summary: PerformanceSummary | None = None,
        unit_title: str | None = None,
    ) -> QuestionSet:
        count = self.settings.default_question_count if count is None else count
        if count < 1:
            raise ValueError(f"count must be positive, got {count}")
        unit = str(unit)
        adaptive = performance_summary is not None and performance_summary.has_data

        if not self.client.available:
            LOGGER.warning("Generation service not configured; returning fallback questions for %s unit %s", course, unit)
            return self._fallback(course, unit, count, attempts=0, reason="service unavailable")

        prompt = build_question_prompt(
            course,
            unit,
            truncate_content(content, self.settings.content_char_budget),
            count,
            unit_title=unit_title,
            performance_summary=performance_summary if adaptive else None,
        )
        request = GenerationRequest(
            prompt=prompt,
            contract=QUESTION_SET_CONTRACT,
            temperature=self.role.temperature,
            max_tokens=self.role.max_tokens,
        )

        attempts = 0
        last_failure: GenerationFailure | None = None
        for attempt in range(1, self.settings.max_attempts + 1):
            attempts += 1
            result = self.client.generate_result(request)
            if result.ok:
                try:
                    questions = self._postprocess(result.value, count, adaptive=adaptive)
                except QuestionValidationError as exc:
                    last_failure = exc
                else:
                    mode = "adaptive" if adaptive else "standard"
                    LOGGER.info("Generated %d %s questions for %s unit %s", len(questions), mode, course, unit)
                    record(
                        self.provenance,
                        operation="generation",
                        outcome=mode,
                        message=f"{course} unit {unit}",
                        payload={"attempts": attempts, "count": len(questions)},
                    )
                    return QuestionSet(questions=questions, course=course, unit=unit, mode=mode, attempts=attempts)
            else:
                last_failure = result.failure

            LOGGER.warning("MCQ generation attempt %d failed (%s): %s", attempt, last_failure.kind.value, last_failure)
            if not last_failure.retryable:
                break
            if attempt < self.settings.max_attempts:
                self._sleep(backoff_delay(attempt, self.settings.backoff_base))

        LOGGER.error("All %d generation attempts failed for %s unit %s; returning fallback questions", attempts, course, unit)
        return self._fallback(course, unit, count, attempts=attempts, reason=str(last_failure))

    def generate_adaptive_questions(
        self,
        course: str,
        unit: str | int,
        content: str,
        answer_records: Iterable[AnswerRecord | Mapping[str, Any]],
        count: int | None = None,
        unit_title: str | None = None,
    ) -> QuestionSet:
        summary = analyze_performance(answer_records)
        return self.generate_questions(
            course,
            unit,
            content,
            count,
            performance_summary=summary if summary.has_data else None,
            unit_title=unit_title,
        )

    # ------------------------------------------------------------------

    def _postprocess(self, payload: QuestionSetPayload, count: int, *, adaptive: bool) -> List[Question]:
        prefix = "adaptive_q" if adaptive else "q"
        raw = [
            {
                "id": f"{prefix}{index}",
                "question": item.question.strip(),
                "options": [strip_option_prefix(option) for option in item.options],
                "correct_answer": item.correct_answer.strip().strip("().").upper(),
                "explanation": item.explanation.strip(),
                "is_adaptive": adaptive,
            }
            for index, item in enumerate(payload.questions[:count], start=1)
        ]
        minimum = min(MIN_ACCEPTED_QUESTIONS, count)
        if len(raw) < minimum:
            raise QuestionValidationError(f"Generated only {len(raw)} questions, expected at least {minimum}")
        if not validate_questions(raw):
            raise QuestionValidationError("Generated questions failed structural validation")
        return [Question.model_validate(item) for item in raw]

    def _fallback(self, course: str, unit: str, count: int, *, attempts: int, reason: str) -> QuestionSet:
        record(
            self.provenance,
            operation="generation",
            outcome="fallback",
            message=f"{course} unit {unit}",
            payload={"attempts": attempts, "count": count, "reason": reason},
        )
        return QuestionSet(
            questions=build_fallback_questions(course, unit, count),
            course=course,
            unit=unit,
            mode="fallback",
            attempts=attempts,
        )


__all__ = [
    "FALLBACK_NOTICE",
    "McqGenerator",
    "backoff_delay",
    "build_fallback_questions",
    "build_question_prompt",
    "estimate_token_usage",
    "is_math_course",
    "strip_option_prefix",
    "truncate_content",
    "validate_questions",
]
