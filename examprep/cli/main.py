"""Command-line entry point for generating, grading and scoring practice material."""

from __future__ import annotations

import base64
import json
import logging
import mimetypes
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from apps.assessment.exam_format import get_exam_format
from apps.assessment.models import FrqQuestion, FrqSubmission, Question
from apps.assessment.performance import analyze_performance
from apps.assessment.ports import YamlUnitCatalog
from apps.assessment.rubric_store import load_rubric_store
from apps.assessment.service import AssessmentService
from examprep.core.config import AssessmentConfig, load_assessment_config
from examprep.core.validation import ValidationFailure, strict_validation

CONFIG_ENV = "EXAMPREP_CONFIG"
DEFAULT_CONFIG = Path("config") / "assessment.yaml"

app = typer.Typer(help="Generate practice questions, grade free responses and score practice exams.")
console = Console()

_CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    show_default=False,
    help=f"Assessment config YAML (defaults to ${CONFIG_ENV} or {DEFAULT_CONFIG} when present).",
)


def _resolve_config(path: Path | None) -> AssessmentConfig:
    load_dotenv(Path.cwd() / ".env")
    if path is None:
        env_path = os.environ.get(CONFIG_ENV)
        if env_path:
            path = Path(env_path)
        elif DEFAULT_CONFIG.exists():
            path = DEFAULT_CONFIG
    try:
        return load_assessment_config(path)
    except (OSError, ValueError) as exc:
        typer.echo(f"Could not load config {path}: {exc}", err=True)
        raise typer.Exit(code=2) from exc


def _load_json(path: Path) -> Any:
    try:
        return strict_validation.validate_json_file(path).data
    except ValidationFailure as exc:
        raise typer.BadParameter(str(exc)) from exc


def _build_service(config_path: Path | None, catalog: Path | None = None) -> AssessmentService:
    config = _resolve_config(config_path)
    unit_catalog = None
    if catalog is not None:
        try:
            unit_catalog = YamlUnitCatalog.from_yaml(catalog)
        except (FileNotFoundError, ValueError) as exc:
            raise typer.BadParameter(str(exc)) from exc
    return AssessmentService.from_config(config, unit_catalog=unit_catalog)


def _emit(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def _image_data_url(path: Path) -> str:
    mime = mimetypes.guess_type(path.name)[0] or "image/png"
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime};base64,{encoded}"


def _print_questions(payload: Dict[str, Any]) -> None:
    console.print(
        f"[bold]{payload['course']}[/bold] unit {payload['unit']} "
        f"({payload['mode']}, {len(payload['questions'])} questions, {payload['attempts']} attempts)"
    )
    for question in payload["questions"]:
        console.print(f"\n[bold]{question['id']}[/bold]. {question['question']}")
        for label, option in zip("ABCD", question["options"]):
            marker = "*" if label == question["correctAnswer"] else " "
            console.print(f"  {marker} {label}. {option}")


@app.command()
def generate(
    course: str = typer.Argument(..., help="Course name used in prompts, e.g. 'AP Statistics'."),
    unit: str = typer.Argument(..., help="Unit number or identifier."),
    content_file: Optional[Path] = typer.Option(None, "--content-file", help="Text file with the unit content."),
    catalog: Optional[Path] = typer.Option(None, "--catalog", help="Unit catalog YAML used when no content file is given."),
    unit_title: Optional[str] = typer.Option(None, "--unit-title"),
    count: Optional[int] = typer.Option(None, "--count", "-n", min=1, help="Number of questions (defaults to config)."),
    guest: bool = typer.Option(False, "--guest", help="Use the guest question count."),
    history: Optional[Path] = typer.Option(None, "--history", help="JSON answer log; enables adaptive generation."),
    config: Optional[Path] = _CONFIG_OPTION,
    as_json: bool = typer.Option(False, "--json", help="Emit JSON instead of formatted text."),
) -> None:
    """Generate a multiple-choice question set for one unit."""

    content = content_file.read_text(encoding="utf-8") if content_file else None
    records = None
    if history is not None:
        records = _load_json(history)
        if not isinstance(records, list):
            raise typer.BadParameter("History file must contain a JSON list of answer records")
    with _build_service(config, catalog) as service:
        try:
            if records is not None:
                result = service.generate_adaptive_questions(course, unit, content, records, count, unit_title=unit_title)
            else:
                result = service.generate_questions(course, unit, content, count, unit_title=unit_title, guest=guest)
        except ValueError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(code=1) from exc

    payload = result.model_dump(mode="json", by_alias=True)
    if as_json:
        _emit(payload)
        return
    _print_questions(payload)


@app.command()
def grade(
    course: str = typer.Argument(..., help="Course identifier, e.g. 'ap-world-history'."),
    prompt: str = typer.Option("", "--prompt", help="The FRQ prompt."),
    response: Optional[str] = typer.Option(None, "--response", help="Typed student response."),
    response_file: Optional[Path] = typer.Option(None, "--response-file", help="File with the student response."),
    image: Optional[Path] = typer.Option(None, "--image", help="Handwritten response image to attach."),
    question_type: str = typer.Option("general", "--question-type", "-t"),
    rubrics: Optional[Path] = typer.Option(None, "--rubrics", help="Rubric YAML file or directory (overrides config)."),
    config: Optional[Path] = _CONFIG_OPTION,
    as_json: bool = typer.Option(False, "--json"),
) -> None:
    """Grade a free response against the course rubric."""

    rubric_store = None
    if rubrics is not None:
        try:
            rubric_store = load_rubric_store(rubrics)
        except (FileNotFoundError, ValueError) as exc:
            raise typer.BadParameter(str(exc)) from exc

    text = response_file.read_text(encoding="utf-8") if response_file else (response or "")
    submission = FrqSubmission(
        course=course,
        prompt=prompt,
        response_text=text,
        question_type=question_type,
        image_data=_image_data_url(image) if image else None,
    )
    with _build_service(config) as service:
        if rubric_store is not None:
            service.rubric_store = rubric_store
        result = service.grade_submission(submission, course_id=course)
    payload = result.model_dump(mode="json", by_alias=True)
    if as_json:
        _emit(payload)
        return

    score = "-" if payload["overallScore"] is None else payload["overallScore"]
    maximum = "-" if payload["maxScore"] is None else payload["maxScore"]
    status = "graded" if payload["graded"] else "[yellow]not graded[/yellow]"
    console.print(f"[bold]{score}/{maximum}[/bold] {payload['performanceLevel']} ({status})")
    console.print(payload["summary"])
    for item in payload["strengths"]:
        console.print(f"  [green]+[/green] {item}")
    for item in payload["improvements"]:
        console.print(f"  [red]-[/red] {item}")


@app.command()
def analyze(
    history: Path = typer.Argument(..., help="JSON list of answer records."),
    as_json: bool = typer.Option(False, "--json"),
) -> None:
    """Summarize accuracy and weak topics from an answer log."""

    records = _load_json(history)
    if not isinstance(records, list):
        raise typer.BadParameter("History file must contain a JSON list of answer records")

    summary = analyze_performance(records)
    payload = summary.model_dump(mode="json", by_alias=True)
    if as_json:
        _emit(payload)
        return
    console.print(payload["text"])
    if payload["weakTopics"]:
        table = Table("Topic", "Incorrect")
        for topic in payload["weakTopics"]:
            table.add_row(topic["topic"], str(topic["incorrectCount"]))
        console.print(table)


@app.command("score-exam")
def score_exam(
    exam_file: Path = typer.Argument(..., help="JSON with mcqQuestions, mcqAnswers, frqQuestions, frqResponses."),
    course: str = typer.Option("ap-course", "--course", help="Course identifier used for format and rubrics."),
    config: Optional[Path] = _CONFIG_OPTION,
    as_json: bool = typer.Option(False, "--json"),
) -> None:
    """Score a completed practice exam."""

    data = _load_json(exam_file)
    if not isinstance(data, dict):
        raise typer.BadParameter("Exam file must contain a JSON object")
    try:
        mcq_questions = [Question.model_validate(item) for item in data.get("mcqQuestions") or []]
        frq_questions = [FrqQuestion.model_validate(item) for item in data.get("frqQuestions") or []]
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid exam questions: {exc}") from exc

    with _build_service(config) as service:
        report = service.grade_exam(
            course,
            mcq_questions,
            data.get("mcqAnswers") or {},
            frq_questions,
            data.get("frqResponses") or {},
            time_used_seconds=data.get("timeUsedSeconds"),
            remaining_seconds=data.get("remainingSeconds"),
        )
    payload = report.model_dump(mode="json", by_alias=True)
    if as_json:
        _emit(payload)
        return

    table = Table("Section", "Score", "Total", "Percentage")
    for section in ("mcq", "frq", "overall"):
        entry = payload[section]
        table.add_row(section.upper(), str(entry["score"]), str(entry["total"]), f"{entry['percentage']:.1f}%")
    console.print(table)
    console.print(f"Estimated scale: [bold]{payload['overall']['estimatedScale']}[/bold]")


@app.command("format")
def exam_format(
    course: str = typer.Argument(..., help="Course identifier, e.g. 'ap-calculus-ab'."),
    as_json: bool = typer.Option(False, "--json"),
) -> None:
    """Show the default exam format for a course."""

    fmt = get_exam_format(course)
    payload = fmt.model_dump(mode="json", by_alias=True)
    payload["totalTimeMinutes"] = fmt.total_time_minutes
    payload["examType"] = fmt.exam_type
    if as_json:
        _emit(payload)
        return
    rows: List[tuple] = [
        ("Exam type", fmt.exam_type),
        ("MCQ", f"{fmt.mcq_count} questions / {fmt.mcq_time_minutes} min"),
        ("FRQ", f"{fmt.frq_count} questions / {fmt.frq_time_minutes} min"),
        ("Question types", ", ".join(fmt.question_types) or "-"),
        ("Total time", f"{fmt.total_time_minutes} min"),
        ("Source", fmt.source),
    ]
    table = Table("Field", "Value", title=fmt.course_id)
    for row in rows:
        table.add_row(*row)
    console.print(table)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging.")) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format="%(levelname)s %(name)s: %(message)s")


if __name__ == "__main__":
    app()
