"""
Typed configuration for the assessment engine.

The models mirror ``config/assessment.yaml``. Every field has a default so the
engine can run from an empty config (offline, fallback-only) during tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Literal, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

DISABLE_LLM_ENV = "EXAMPREP_DISABLE_LLM"
PLACEHOLDER_KEYS = frozenset({"your_key_here", "your_openai_api_key_here", "changeme", "change-me"})


class RoleModelConfig(BaseModel):
    """Provider-specific configuration for one generation role."""

    model_config = ConfigDict(extra="allow")

    provider: Literal["openai", "dspy"] = "openai"
    model: str = "gpt-4o-mini"
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1500, ge=64)
    api_key_env: str | None = None
    api_base: str = "https://api.openai.com/v1"
    timeout_seconds: float = Field(default=60.0, gt=0)

    @property
    def extra_kwargs(self) -> Dict[str, Any]:
        return getattr(self, "model_extra", {}) or {}


class ModelConfig(BaseModel):
    """Model defaults for question generation and rubric grading."""

    model_config = ConfigDict(extra="ignore")

    generator: RoleModelConfig = Field(default_factory=lambda: RoleModelConfig(temperature=0.7, max_tokens=1500))
    grader: RoleModelConfig = Field(default_factory=lambda: RoleModelConfig(temperature=0.25, max_tokens=1400))

    def get_role(self, role: Literal["generator", "grader"]) -> RoleModelConfig:
        return getattr(self, role)


class McqSettings(BaseModel):
    """Retry and prompt-budget policy for multiple-choice generation."""

    max_attempts: int = Field(default=3, ge=1, le=10)
    backoff_base: float = Field(default=2.0, ge=1.0)
    content_char_budget: int = Field(default=3000, ge=200)
    default_question_count: int = Field(default=12, ge=1)
    guest_question_count: int = Field(default=6, ge=1)


class GraderSettings(BaseModel):
    """Rubric grading policy."""

    fallback_max_score: int = Field(default=7, ge=1)
    rubric_char_budget: int = Field(default=6000, ge=200)


class ExamSettings(BaseModel):
    """Full practice exam scoring policy."""

    frq_min_chars: int = Field(default=30, ge=0)
    frq_pass_ratio: float = Field(default=0.5, ge=0.0, le=1.0)

    @property
    def scale_breakpoints(self) -> Tuple[Tuple[float, int], ...]:
        return ((80.0, 5), (65.0, 4), (50.0, 3), (35.0, 2))


class CacheSettings(BaseModel):
    """On-disk cache for standard question sets."""

    enabled: bool = False
    path: Path = Field(default=Path("data/mcq_cache.json"))

    @field_validator("path", mode="before")
    @classmethod
    def coerce_path(cls, value: Any) -> Path:
        return Path(value).expanduser()


class AssessmentConfig(BaseModel):
    """Top-level configuration for the assessment engine."""

    models: ModelConfig = Field(default_factory=ModelConfig)
    mcq: McqSettings = Field(default_factory=McqSettings)
    grader: GraderSettings = Field(default_factory=GraderSettings)
    exam: ExamSettings = Field(default_factory=ExamSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    rubrics_path: Path | None = None
    provenance_path: Path | None = None

    @model_validator(mode="before")
    @classmethod
    def ensure_mapping(cls, values: Any) -> Any:
        if values is None:
            return {}
        if not isinstance(values, dict):
            raise ValueError(f"Assessment config must be a mapping, received {type(values).__name__}")
        return values


def llm_disabled() -> bool:
    """Return True when every generation call should take the offline path."""

    value = os.getenv(DISABLE_LLM_ENV)
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def resolve_api_key(role_cfg: RoleModelConfig, role_name: str) -> str | None:
    """Find the credential for a role, ignoring placeholder values."""

    preferred_envs = []
    if role_cfg.api_key_env:
        preferred_envs.append(role_cfg.api_key_env)
    preferred_envs.append(f"OPENAI_API_KEY_{role_name.upper()}")
    preferred_envs.append("OPENAI_API_KEY")
    for env_var in preferred_envs:
        value = os.getenv(env_var)
        if value and value.strip() and value.strip().lower() not in PLACEHOLDER_KEYS:
            return value.strip()
    return None


def read_yaml_file(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return a dictionary."""
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected mapping at root of {path}, received {type(data)}")
    return data


def _resolve_config_path(value: Any, base_dir: Path) -> str:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (base_dir / path).resolve()
    return str(path)


def _absolutize_paths(data: Dict[str, Any], base_dir: Path) -> None:
    for key in ("rubrics_path", "provenance_path"):
        if data.get(key):
            data[key] = _resolve_config_path(data[key], base_dir)
    cache = data.get("cache")
    if isinstance(cache, dict) and cache.get("path"):
        cache["path"] = _resolve_config_path(cache["path"], base_dir)


def load_assessment_config(path: Path | None = None, *, base_dir: Path | None = None) -> AssessmentConfig:
    """Load the engine config; a missing path yields the defaults."""
    if path is None:
        return AssessmentConfig()
    path = path.expanduser().resolve()
    data = read_yaml_file(path)
    _absolutize_paths(data, base_dir=(base_dir or path.parent).resolve())
    try:
        return AssessmentConfig.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid assessment config in {path}") from exc


__all__ = [
    "AssessmentConfig",
    "CacheSettings",
    "DISABLE_LLM_ENV",
    "ExamSettings",
    "GraderSettings",
    "McqSettings",
    "ModelConfig",
    "RoleModelConfig",
    "llm_disabled",
    "load_assessment_config",
    "read_yaml_file",
    "resolve_api_key",
]
