from __future__ import annotations

from typing import List

import pytest

from apps.assessment.mcq_generator import (
    FALLBACK_NOTICE,
    McqGenerator,
    backoff_delay,
    build_fallback_questions,
    estimate_token_usage,
    strip_option_prefix,
    truncate_content,
    validate_questions,
)
from apps.assessment.models import AnswerRecord
from apps.assessment.performance import analyze_performance
from examprep.core.config import McqSettings
from examprep.core.generation import GenerationClient
from tests.mocks.generation import ScriptedTransport, question_json, scripted_client

CONTENT = "Unit content about the causes of the First World War and alliance systems."


def _generator(client: GenerationClient, **settings) -> tuple[McqGenerator, List[float]]:
    delays: List[float] = []
    generator = McqGenerator(client, settings=McqSettings(**settings), sleep=delays.append)
    return generator, delays


def _valid_question(**overrides) -> dict:
    question = {
        "question": "Which alliance included France?",
        "options": ["Triple Entente", "Triple Alliance", "Central Powers", "Axis"],
        "correctAnswer": "A",
        "explanation": "France, Britain and Russia formed the Triple Entente.",
    }
    question.update(overrides)
    return question


# ---------------------------------------------------------------------------
# pure helpers


def test_backoff_delay_is_exponential() -> None:
    assert [backoff_delay(n) for n in (1, 2, 3)] == [2.0, 4.0, 8.0]
    assert backoff_delay(2, base=3) == 9.0
    with pytest.raises(ValueError):
        backoff_delay(0)


def test_estimate_token_usage_rounds_up() -> None:
    assert estimate_token_usage("") == 0
    assert estimate_token_usage("abcde") == 2


def test_truncate_content_appends_ellipsis() -> None:
    assert truncate_content("x" * 10, 5) == "xxxxx..."
    assert truncate_content("short", 5) == "short"


@pytest.mark.parametrize("raw", ["A. Triple Entente", "A) Triple Entente", "(A) Triple Entente", " Triple Entente "])
def test_strip_option_prefix(raw: str) -> None:
    assert strip_option_prefix(raw) == "Triple Entente"


def test_validate_questions_accepts_well_formed_set() -> None:
    assert validate_questions([_valid_question(), _valid_question(correctAnswer="d")])


def test_validate_questions_rejects_three_options() -> None:
    bad = _valid_question(options=["one", "two", "three"])
    assert not validate_questions([_valid_question(), bad])


def test_validate_questions_rejects_label_e() -> None:
    assert not validate_questions([_valid_question(correctAnswer="E")])


def test_validate_questions_rejects_missing_fields_and_non_lists() -> None:
    assert not validate_questions([_valid_question(explanation="")])
    assert not validate_questions("not a list")  # type: ignore[arg-type]


def test_validate_questions_rejects_whitespace_only_text() -> None:
    assert not validate_questions([_valid_question(question="   ")])
    assert not validate_questions([_valid_question(explanation="\n\t ")])
    assert validate_questions([_valid_question()])


# ---------------------------------------------------------------------------
# generation


def test_successful_generation_normalizes_questions() -> None:
    client, transport = scripted_client(question_json(4, fenced=True))
    generator, delays = _generator(client)

    result = generator.generate_questions("AP World History", 3, CONTENT, 4, unit_title="Land-Based Empires")

    assert result.mode == "standard"
    assert result.attempts == 1
    assert delays == []
    assert [q.id for q in result.questions] == ["q1", "q2", "q3", "q4"]
    first = result.questions[0]
    assert first.prompt == "Which of the following best explains development 1?"
    assert first.options[0] == "Choice a1"
    assert first.correct_answer == "B"
    assert first.explanation == "Because of reason 1."
    assert not first.is_adaptive
    assert "Unit: 3 - Land-Based Empires" in transport.calls[0]["prompt"]


def test_every_generated_question_has_four_options_and_valid_label() -> None:
    client, _ = scripted_client(question_json(6))
    generator, _ = _generator(client)

    result = generator.generate_questions("AP Biology", 1, CONTENT, 6)

    assert all(len(q.options) == 4 and q.correct_answer in "ABCD" for q in result.questions)


def test_two_schema_violations_then_success_retries_with_backoff() -> None:
    client, transport = scripted_client("not json", '{"questions": "nope"}', question_json(5))
    generator, delays = _generator(client)

    result = generator.generate_questions("AP Biology", 2, CONTENT, 5)

    assert result.mode == "standard"
    assert not result.is_fallback
    assert result.attempts == 3
    assert len(transport.calls) == 3
    assert delays == [2.0, 4.0]


def test_exhausted_retries_return_fallback() -> None:
    client, transport = scripted_client(TimeoutError("slow"))
    generator, delays = _generator(client)

    result = generator.generate_questions("AP Psychology", 4, CONTENT, 5)

    assert result.mode == "fallback"
    assert result.attempts == 3
    assert len(transport.calls) == 3
    assert delays == [2.0, 4.0]
    assert len(result.questions) == 5


def test_unknown_failure_is_not_retried() -> None:
    client, transport = scripted_client(KeyError("bug"))
    generator, delays = _generator(client)

    result = generator.generate_questions("AP Psychology", 4, CONTENT, 3)

    assert result.mode == "fallback"
    assert len(transport.calls) == 1
    assert delays == []


def test_too_few_questions_counts_as_failed_attempt() -> None:
    client, transport = scripted_client(question_json(2), question_json(6))
    generator, delays = _generator(client)

    result = generator.generate_questions("AP Chemistry", 1, CONTENT, 6)

    assert result.mode == "standard"
    assert len(transport.calls) == 2
    assert delays == [2.0]


def test_small_request_accepts_matching_small_set() -> None:
    client, _ = scripted_client(question_json(2))
    generator, _ = _generator(client)

    result = generator.generate_questions("AP Chemistry", 1, CONTENT, 2)

    assert result.mode == "standard"
    assert len(result.questions) == 2


def test_longer_sets_are_truncated_to_count() -> None:
    client, _ = scripted_client(question_json(8))
    generator, _ = _generator(client)

    assert len(generator.generate_questions("AP Chemistry", 1, CONTENT, 4).questions) == 4


def test_missing_credential_falls_back_without_calls() -> None:
    transport = ScriptedTransport(question_json(6))
    generator, delays = _generator(GenerationClient(transport, credential_present=False))

    result = generator.generate_questions("AP European History", 2, CONTENT, 6)

    assert transport.calls == []
    assert delays == []
    assert result.attempts == 0
    assert result.mode == "fallback"
    assert [q.id for q in result.questions] == [f"q{i}" for i in range(1, 7)]
    assert all(FALLBACK_NOTICE in q.explanation for q in result.questions)


def test_content_is_truncated_in_prompt() -> None:
    client, transport = scripted_client(question_json(3))
    generator, _ = _generator(client, content_char_budget=200)

    generator.generate_questions("AP Biology", 1, "y" * 500, 3)

    prompt = transport.calls[0]["prompt"]
    assert "y" * 200 + "..." in prompt
    assert "y" * 201 not in prompt


def test_math_courses_get_math_instructions() -> None:
    client, transport = scripted_client(question_json(3))
    generator, _ = _generator(client)

    generator.generate_questions("AP Calculus AB", 1, CONTENT, 3)
    generator.generate_questions("AP Art History", 1, CONTENT, 3)

    assert "MATH-SPECIFIC INSTRUCTIONS" in transport.calls[0]["prompt"]
    assert "MATH-SPECIFIC INSTRUCTIONS" not in transport.calls[1]["prompt"]


def test_adaptive_generation_tags_questions_and_embeds_summary() -> None:
    client, transport = scripted_client(question_json(3))
    generator, _ = _generator(client)
    records = [
        AnswerRecord(is_correct=False, topic="Alliances"),
        AnswerRecord(is_correct=False, topic="Alliances"),
        AnswerRecord(is_correct=True, topic="Imperialism"),
    ]

    result = generator.generate_adaptive_questions("AP World History", 7, CONTENT, records, 3)

    assert result.mode == "adaptive"
    assert [q.id for q in result.questions] == ["adaptive_q1", "adaptive_q2", "adaptive_q3"]
    assert all(q.is_adaptive for q in result.questions)
    prompt = transport.calls[0]["prompt"]
    assert analyze_performance(records).text in prompt
    assert "Adaptive Focus" in prompt


def test_adaptive_generation_with_empty_history_is_standard() -> None:
    client, transport = scripted_client(question_json(3))
    generator, _ = _generator(client)

    result = generator.generate_adaptive_questions("AP World History", 7, CONTENT, [], 3)

    assert result.mode == "standard"
    assert not any(q.is_adaptive for q in result.questions)
    assert "Adaptive Focus" not in transport.calls[0]["prompt"]


def test_invalid_count_raises() -> None:
    client, _ = scripted_client(question_json(3))
    generator, _ = _generator(client)
    with pytest.raises(ValueError):
        generator.generate_questions("AP Biology", 1, CONTENT, 0)


def test_default_count_comes_from_settings() -> None:
    generator, _ = _generator(GenerationClient(None, credential_present=False), default_question_count=5)
    assert len(generator.generate_questions("AP Biology", 1, CONTENT)) == 5


# ---------------------------------------------------------------------------
# fallback banks


def test_fallback_six_questions_have_notice_and_sequential_ids() -> None:
    questions = build_fallback_questions("AP United States History", "3", 6)

    assert len(questions) == 6
    assert [q.id for q in questions] == ["q1", "q2", "q3", "q4", "q5", "q6"]
    assert all(FALLBACK_NOTICE in q.explanation for q in questions)
    assert all(len(q.options) == 4 for q in questions)
    assert "Unit 3" in questions[0].prompt


def test_fallback_bank_depends_on_course() -> None:
    stats = build_fallback_questions("AP Statistics", "1", 3)
    calc = build_fallback_questions("AP Calculus BC", "1", 3)

    assert stats[0].options[0] == "74.86 to 81.14"
    assert calc[0].options[0] == "2x + 3"
    assert calc[1].options[0] == "20"
