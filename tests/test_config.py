from pathlib import Path

import pytest

from examprep.core.config import (
    AssessmentConfig,
    RoleModelConfig,
    llm_disabled,
    load_assessment_config,
    resolve_api_key,
)
from examprep.core.validation import ValidationFailure, ValidationFramework, summarize_errors

REPO_CONFIG = Path(__file__).resolve().parents[1] / "config" / "assessment.yaml"


def test_repo_config_loads_and_absolutizes_paths() -> None:
    config = load_assessment_config(REPO_CONFIG)

    assert config.models.grader.temperature == 0.25
    assert config.models.generator.max_tokens == 1500
    assert config.mcq.guest_question_count == 6
    assert config.rubrics_path is not None and config.rubrics_path.is_absolute()
    assert config.rubrics_path.name == "rubrics"
    assert config.cache.path.is_absolute()
    assert config.cache.enabled is False


def test_missing_path_returns_defaults() -> None:
    config = load_assessment_config(None)

    assert config == AssessmentConfig()
    assert config.exam.frq_pass_ratio == 0.5
    assert config.grader.fallback_max_score == 7


def test_relative_paths_resolve_against_base_dir(tmp_path: Path) -> None:
    path = tmp_path / "conf" / "assessment.yaml"
    path.parent.mkdir()
    path.write_text("rubrics_path: rubrics\nprovenance_path: logs/events.jsonl\n", encoding="utf-8")

    config = load_assessment_config(path, base_dir=tmp_path)

    assert config.rubrics_path == (tmp_path / "rubrics").resolve()
    assert config.provenance_path == (tmp_path / "logs" / "events.jsonl").resolve()


def test_invalid_config_raises_value_error(tmp_path: Path) -> None:
    path = tmp_path / "assessment.yaml"
    path.write_text("mcq:\n  max_attempts: 0\n", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid assessment config"):
        load_assessment_config(path)


def test_non_mapping_config_raises(tmp_path: Path) -> None:
    path = tmp_path / "assessment.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_assessment_config(path)


def test_role_extra_kwargs_are_kept() -> None:
    role = RoleModelConfig(model="gpt-4o", top_p=0.9)
    assert role.extra_kwargs == {"top_p": 0.9}


def test_resolve_api_key_prefers_role_env(monkeypatch) -> None:
    monkeypatch.setenv("CUSTOM_KEY", "sk-custom")
    monkeypatch.setenv("OPENAI_API_KEY_GRADER", "sk-grader")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-shared")
    monkeypatch.delenv("OPENAI_API_KEY_GENERATOR", raising=False)

    assert resolve_api_key(RoleModelConfig(api_key_env="CUSTOM_KEY"), "grader") == "sk-custom"
    assert resolve_api_key(RoleModelConfig(), "grader") == "sk-grader"
    assert resolve_api_key(RoleModelConfig(), "generator") == "sk-shared"


def test_resolve_api_key_skips_placeholders(monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY_GENERATOR", raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "  your_openai_api_key_here ")

    assert resolve_api_key(RoleModelConfig(), "generator") is None


@pytest.mark.parametrize(("value", "expected"), [("1", True), ("TRUE", True), ("off", False), ("0", False)])
def test_llm_disabled_switch(monkeypatch, value: str, expected: bool) -> None:
    monkeypatch.setenv("EXAMPREP_DISABLE_LLM", value)
    assert llm_disabled() is expected


def test_llm_enabled_when_switch_unset(monkeypatch) -> None:
    monkeypatch.delenv("EXAMPREP_DISABLE_LLM", raising=False)
    assert llm_disabled() is False


# ---------------------------------------------------------------------------
# validation helpers


def test_lenient_validation_reports_errors(tmp_path: Path) -> None:
    lenient = ValidationFramework(strict=False)
    path = tmp_path / "data.json"
    path.write_text("{broken", encoding="utf-8")

    result = lenient.validate_json_file(path)

    assert not result.valid
    assert "Invalid JSON" in result.errors[0]


def test_strict_validation_raises(tmp_path: Path) -> None:
    strict = ValidationFramework(strict=True)

    with pytest.raises(ValidationFailure) as excinfo:
        strict.validate_yaml_file(tmp_path / "missing.yaml")
    assert "does not exist" in excinfo.value.errors[0]


def test_empty_yaml_is_an_error_but_null_yaml_warns(tmp_path: Path) -> None:
    lenient = ValidationFramework(strict=False)
    empty = tmp_path / "empty.yaml"
    empty.write_text("   \n", encoding="utf-8")
    null = tmp_path / "null.yaml"
    null.write_text("~\n", encoding="utf-8")

    assert not lenient.validate_yaml_file(empty).valid
    result = lenient.validate_yaml_file(null)
    assert result.valid
    assert result.data == {}
    assert result.has_warnings


def test_pydantic_validation_reports_field_locations() -> None:
    lenient = ValidationFramework(strict=False)

    model = lenient.validate_pydantic_model({"temperature": 5}, RoleModelConfig)
    assert not model.valid
    assert model.errors[0].startswith("temperature:")


def test_summarize_errors_truncates() -> None:
    assert summarize_errors(["a", "b"]) == "a; b"
    assert summarize_errors(["a", "b", "c", "d", "e"], limit=2) == "a; b (+3 more)"
