"""Helpers for configuring DSPy language models from the assessment config."""

from __future__ import annotations

from typing import Any, Dict

import dspy

from .config import ModelConfig, RoleModelConfig, resolve_api_key


class DSPyConfigurationError(RuntimeError):
    """Raised when DSPy cannot be configured for the requested role."""


def _model_identifier(model_name: str) -> str:
    # dspy.LM routes through litellm, which expects a provider prefix.
    return model_name if "/" in model_name else f"openai/{model_name}"


def build_dspy_lm(role_cfg: RoleModelConfig, *, api_key: str | None = None, role_name: str = "generator") -> object:
    """Instantiate a ``dspy.LM`` for one role."""

    key = api_key or resolve_api_key(role_cfg, role_name)
    if not key:
        expected_env = role_cfg.api_key_env or f"OPENAI_API_KEY_{role_name.upper()}"
        raise DSPyConfigurationError(f"Missing API key for {role_name}; set {expected_env} or OPENAI_API_KEY.")

    kwargs: Dict[str, Any] = {
        "temperature": role_cfg.temperature,
        "max_tokens": role_cfg.max_tokens,
        "api_key": key,
    }
    if role_cfg.api_base:
        kwargs["api_base"] = role_cfg.api_base
    if role_cfg.extra_kwargs:
        kwargs.update(role_cfg.extra_kwargs)
    return dspy.LM(_model_identifier(role_cfg.model), **kwargs)


def configure_dspy_models(model_cfg: ModelConfig, *, api_key: str | None = None) -> Dict[str, object]:
    """Build LMs for the generator and grader roles and make the generator the default."""

    handles = {
        role: build_dspy_lm(model_cfg.get_role(role), api_key=api_key, role_name=role)
        for role in ("generator", "grader")
    }
    dspy.settings.configure(lm=handles["generator"])
    return handles


__all__ = ["DSPyConfigurationError", "build_dspy_lm", "configure_dspy_models"]
