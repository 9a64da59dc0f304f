"""Loading and checking helpers that report problems as values.

Data files (rubrics, catalogs, answer logs, the question cache) and model
payloads all pass through :class:`ValidationFramework`. The lenient instance
returns a :class:`ValidationResult` for the caller to inspect; the strict one
raises :class:`ValidationFailure` instead.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Type

import yaml
from pydantic import BaseModel, ValidationError

LOGGER = logging.getLogger(__name__)


class ValidationFailure(ValueError):
    """Raised by strict validators; carries every collected error."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(f"Validation failed: {'; '.join(self.errors)}")


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    data: Any = None

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    def raise_if_invalid(self) -> None:
        if not self.valid:
            raise ValidationFailure(self.errors)


def _parse_yaml(text: str) -> tuple[Any, List[str]]:
    data = yaml.safe_load(text)
    if data is None:
        return {}, ["document contains only null/empty data"]
    return data, []


def _parse_json(text: str) -> tuple[Any, List[str]]:
    return json.loads(text), []


class ValidationFramework:
    """Shared loaders for the engine's JSON/YAML files and pydantic payloads."""

    def __init__(self, *, strict: bool = True):
        self.strict = strict

    def _finish(self, result: ValidationResult, label: str) -> ValidationResult:
        if not result.valid:
            LOGGER.debug("%s check failed: %s", label, result.errors)
        elif result.has_warnings:
            LOGGER.warning("%s check warnings: %s", label, result.warnings)
        if self.strict:
            result.raise_if_invalid()
        return result

    def validate_file_exists(self, path: Path | str) -> ValidationResult:
        target = Path(path)
        errors: List[str] = []
        warnings: List[str] = []
        if not target.exists():
            errors.append(f"File does not exist: {path}")
        elif not target.is_file():
            errors.append(f"Path is not a file: {path}")
        elif target.stat().st_size == 0:
            warnings.append(f"File is empty: {path}")
        return self._finish(ValidationResult(not errors, errors, warnings, target if not errors else None), "File")

    def _load_document(
        self,
        path: Path | str,
        label: str,
        parse: Callable[[str], tuple[Any, List[str]]],
        parse_errors: tuple[type[Exception], ...],
    ) -> ValidationResult:
        existing = self.validate_file_exists(path)
        if not existing.valid:
            return existing

        errors: List[str] = []
        warnings: List[str] = []
        data = None
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            errors.append(f"Error reading {label} file {path}: {exc}")
        else:
            if not text.strip():
                errors.append(f"{label} file is empty: {path}")
            else:
                try:
                    data, notes = parse(text)
                    warnings.extend(f"{note}: {path}" for note in notes)
                except parse_errors as exc:
                    errors.append(f"Invalid {label} in {path}: {exc}")
        return self._finish(ValidationResult(not errors, errors, warnings, data), label)

    def validate_json_file(self, path: Path | str) -> ValidationResult:
        return self._load_document(path, "JSON", _parse_json, (json.JSONDecodeError,))

    def validate_yaml_file(self, path: Path | str) -> ValidationResult:
        """Load YAML; a null document loads as ``{}`` with a warning."""
        return self._load_document(path, "YAML", _parse_yaml, (yaml.YAMLError,))

    def validate_pydantic_model(self, data: Any, model_class: Type[BaseModel]) -> ValidationResult:
        try:
            instance = model_class.model_validate(data)
        except ValidationError as exc:
            errors = [
                f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}" for error in exc.errors()
            ]
            return self._finish(ValidationResult(False, errors), model_class.__name__)
        return self._finish(ValidationResult(True, data=instance), model_class.__name__)


def summarize_errors(errors: List[str], limit: int = 3) -> str:
    """Collapse validation errors into one log-friendly line."""
    head = "; ".join(errors[:limit])
    remaining = len(errors) - limit
    return f"{head} (+{remaining} more)" if remaining > 0 else head


validation = ValidationFramework(strict=False)
strict_validation = ValidationFramework(strict=True)


__all__ = [
    "ValidationFailure",
    "ValidationFramework",
    "ValidationResult",
    "strict_validation",
    "summarize_errors",
    "validation",
]
