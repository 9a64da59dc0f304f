from __future__ import annotations

import json
from pathlib import Path

import pytest

from apps.assessment.models import FrqQuestion, FrqSubmission, Question
from apps.assessment.ports import JsonAnswerHistoryStore, YamlUnitCatalog
from apps.assessment.question_cache import QuestionCache, content_hash
from apps.assessment.rubric_store import load_rubric_store
from apps.assessment.service import AssessmentService
from examprep.core.config import AssessmentConfig, CacheSettings, McqSettings
from examprep.core.generation import GenerationClient, offline_client
from tests.mocks.generation import grade_json, question_json, scripted_client

ROOT = Path(__file__).resolve().parents[1]
LONG_ANSWER = "Song China expanded its bureaucracy through the civil service examination system."


@pytest.fixture()
def catalog() -> YamlUnitCatalog:
    return YamlUnitCatalog.from_yaml(ROOT / "data" / "catalog.yaml")


def _service(config: AssessmentConfig | None = None, **kwargs) -> AssessmentService:
    """Service whose generation clients are both offline."""
    return AssessmentService(config, generator_client=offline_client(), grader_client=offline_client(), **kwargs)


def test_catalog_supplies_content_and_title(catalog: YamlUnitCatalog) -> None:
    client, transport = scripted_client(question_json(4))
    service = AssessmentService(generator_client=client, grader_client=offline_client(), unit_catalog=catalog)

    result = service.generate_questions("ap-statistics", 6, count=4)

    assert result.mode == "standard"
    prompt = transport.calls[0]["prompt"]
    assert "Unit: 6 - Inference for Categorical Data - Proportions" in prompt
    assert "confidence interval for a population proportion" in prompt


def test_unknown_unit_without_content_raises(catalog: YamlUnitCatalog) -> None:
    service = _service(unit_catalog=catalog)
    with pytest.raises(ValueError):
        service.generate_questions("ap-statistics", 42)


def test_guest_and_default_counts_come_from_config() -> None:
    service = _service(config=AssessmentConfig(mcq=McqSettings(default_question_count=8, guest_question_count=4)))

    assert len(service.generate_questions("AP Biology", 1, "Cells and organelles.")) == 8
    assert len(service.generate_questions("AP Biology", 1, "Cells and organelles.", guest=True)) == 4


def test_cache_serves_standard_sets_and_skips_fallbacks(tmp_path: Path) -> None:
    cache = QuestionCache(tmp_path / "cache.json")
    client, transport = scripted_client(question_json(4))
    service = AssessmentService(generator_client=client, grader_client=offline_client(), cache=cache)

    first = service.generate_questions("AP Biology", 1, "Cells.", 4)
    second = service.generate_questions("AP Biology", 1, "Cells.", 3)

    assert len(transport.calls) == 1
    assert [q.id for q in second.questions] == [q.id for q in first.questions][:3]

    service.generate_questions("AP Biology", 1, "Changed content.", 4)
    assert len(transport.calls) == 2

    offline = _service(cache=cache)
    offline.generate_questions("AP Chemistry", 2, "Stoichiometry.", 3)
    assert cache.units("AP Chemistry") == []


def test_from_config_builds_offline_service(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("EXAMPREP_DISABLE_LLM", "1")
    config = AssessmentConfig(
        rubrics_path=ROOT / "data" / "rubrics",
        cache=CacheSettings(enabled=True, path=tmp_path / "cache.json"),
        provenance_path=tmp_path / "events.jsonl",
    )

    service = AssessmentService.from_config(config, sleep=lambda _: None)
    result = service.generate_questions("AP World History", 1, "Trade networks.", 3)

    assert result.is_fallback
    assert service.rubric_store is not None
    assert service.cache is not None
    events = (tmp_path / "events.jsonl").read_text(encoding="utf-8").splitlines()
    assert json.loads(events[-1])["outcome"] == "fallback"


def test_adaptive_uses_history_store(tmp_path: Path) -> None:
    history = tmp_path / "history.json"
    history.write_text(
        json.dumps({"ap-statistics": {"sam": [{"isCorrect": False, "topic": "Sampling"}, {"isCorrect": True}]}}),
        encoding="utf-8",
    )
    client, transport = scripted_client(question_json(3))
    service = AssessmentService(
        generator_client=client,
        grader_client=offline_client(),
        history_store=JsonAnswerHistoryStore(history),
    )

    result = service.generate_adaptive_questions("ap-statistics", 1, "Sampling content.", count=3, learner_id="sam")

    assert result.mode == "adaptive"
    assert "Sampling (1 incorrect)" in transport.calls[0]["prompt"]
    assert service.analyze_performance(course="ap-statistics", learner_id="sam").accuracy_percent == 50.0
    assert not service.analyze_performance(course="ap-statistics", learner_id="nobody").has_data


def test_grade_submission_selects_rubrics_from_store() -> None:
    client, transport = scripted_client(grade_json())
    service = AssessmentService(
        generator_client=offline_client(),
        grader_client=client,
        rubric_store=load_rubric_store(ROOT / "data" / "rubrics"),
    )

    grade = service.grade_submission(
        FrqSubmission(prompt="Evaluate the documents.", response_text=LONG_ANSWER, question_type="DBQ"),
        course_id="ap-world-history",
    )

    assert grade.graded
    assert "Rubric 1: DBQ" in transport.calls[0]["prompt"]


def test_grade_exam_derives_time_from_remaining_seconds() -> None:
    client, transport = scripted_client(grade_json(overall=4, maximum=7))
    service = AssessmentService(
        generator_client=offline_client(),
        grader_client=client,
        rubric_store=load_rubric_store(ROOT / "data" / "rubrics"),
    )
    question = Question(id="q1", prompt="?", options=["a", "b", "c", "d"], correct_answer="C", explanation=".")

    report = service.grade_exam(
        "ap-world-history",
        [question],
        {"q1": "c"},
        [FrqQuestion(id="frq1", prompt="Explain one change in Song China.", question_type="SAQ")],
        {"frq1": LONG_ANSWER},
        remaining_seconds=155 * 60 - 600,
    )

    assert report.time_used_seconds == 600
    assert report.overall.score == 2
    assert report.overall.estimated_scale == 5
    assert "SAQ Scoring" in transport.calls[0]["prompt"]


def test_grade_exam_offline_grader_fails_frq() -> None:
    service = _service()
    question = Question(id="q1", prompt="?", options=["a", "b", "c", "d"], correct_answer="C", explanation=".")

    report = service.grade_exam("ap-biology", [question], {"q1": "C"}, [FrqQuestion(id="f", prompt="P")], {"f": LONG_ANSWER})

    assert report.overall.score == 1
    assert report.overall.percentage == 50.0
    assert report.time_used_seconds == 0


def test_exam_format_delegates() -> None:
    assert _service().exam_format("ap-seminar").frq_only


def test_malformed_cache_entry_falls_through_to_generation(tmp_path: Path) -> None:
    path = tmp_path / "cache.json"
    stale = json.loads(question_json(3, options=3, label="E"))["questions"]
    for index, item in enumerate(stale, start=1):
        item["id"] = f"q{index}"
    path.write_text(
        json.dumps({"AP Biology": {"unit-1": {"questions": stale, "cedHash": content_hash("Cells.")}}}),
        encoding="utf-8",
    )
    client, transport = scripted_client(question_json(3))
    service = AssessmentService(generator_client=client, grader_client=offline_client(), cache=QuestionCache(path))

    result = service.generate_questions("AP Biology", 1, "Cells.", 3)

    assert result.mode == "standard"
    assert len(transport.calls) == 1
    assert QuestionCache(path).get("AP Biology", 1, content_hash("Cells.")) is not None


class _ClosingTransport:
    def __init__(self) -> None:
        self.closed = 0

    def __call__(self, prompt, **kwargs):
        return question_json(1)

    def close(self) -> None:
        self.closed += 1


def test_service_context_closes_each_transport_once() -> None:
    generator_transport, grader_transport = _ClosingTransport(), _ClosingTransport()

    with AssessmentService(
        generator_client=GenerationClient(generator_transport),
        grader_client=GenerationClient(grader_transport),
    ) as service:
        assert service.generate_questions("AP Biology", 1, "Cells.", 1).mode == "standard"

    assert (generator_transport.closed, grader_transport.closed) == (1, 1)

    shared = _ClosingTransport()
    client = GenerationClient(shared)
    AssessmentService(generator_client=client, grader_client=client).close()
    assert shared.closed == 1
