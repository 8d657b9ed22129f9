from __future__ import annotations

import logging
import mimetypes
import sys
from pathlib import Path
from typing import Optional

import typer
import uvicorn
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .confidence import format_confidence_percent, tier_for
from .contracts import RecognitionResult
from .integrations.container import build_container
from .integrations.in_memory import StaticRecognizer, load_recognition, save_recognition
from .models.enums import FieldType, ProcessingStatus, ValidationSeverity
from .models.pipeline import ReceiptProcessingResult
from .quality import analyze_image_quality
from .services.ports import TextRecognizer
from .settings import load_settings
from .validation import get_format_examples, should_highlight_field, validate_field

app = typer.Typer(help="Receipt OCR extraction and confidence scoring CLI.")
console = Console()

_SEVERITY_STYLE = {
    ValidationSeverity.INFO: "green",
    ValidationSeverity.WARNING: "yellow",
    ValidationSeverity.ERROR: "red",
}


def _ensure_src_on_path() -> None:
    """Allow running `python cli/main.py` without installation."""
    repo_root = Path(__file__).resolve().parents[2]
    src_dir = repo_root / "src"
    if src_dir.exists():
        sys.path.insert(0, str(src_dir))


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def _read_image(path: Path) -> tuple[bytes, str | None]:
    if not path.exists():
        console.print(f"[red]File not found:[/red] {path}")
        raise typer.Exit(code=2)
    mime_type, _ = mimetypes.guess_type(path.name)
    return path.read_bytes(), mime_type


@app.callback()
def _root(
    log_level: Optional[str] = typer.Option(None, help="Logging level (defaults to LOG_LEVEL)."),
) -> None:
    _configure_logging(log_level or load_settings().log_level)


@app.command()
def quality(image: Path) -> None:
    """Score one image for OCR fitness."""

    content, mime_type = _read_image(image)
    result = analyze_image_quality(content, mime_type)
    color = "green" if result.is_acceptable else "red"
    console.print(
        f"[bold]Quality[/bold] {result.score}/100 "
        f"[{color}]{result.recommendation.value}[/{color}]"
    )
    for issue in result.issues:
        console.print(f"  - [{issue.severity.value}] {issue.type.value}: {issue.message}")
    for suggestion in result.suggestions:
        console.print(f"  > {suggestion}")


def _print_result(result: ReceiptProcessingResult) -> None:
    console.print(
        f"[bold]Status[/bold] {result.status.value}  "
        f"quality {result.quality.score}/100 ({result.quality.recommendation.value})"
    )
    fields = result.extracted_fields
    if fields is not None:
        table = Table(title="Extracted fields")
        table.add_column("field")
        table.add_column("value")
        table.add_column("confidence")
        table.add_column("validation")
        for candidate in fields.scalar_fields():
            check = result.validation.get(candidate.name)
            note = ""
            if check is not None:
                style = _SEVERITY_STYLE[check.severity]
                note = f"[{style}]{check.message}[/{style}]"
            conf = format_confidence_percent(candidate.confidence)
            if should_highlight_field(candidate.confidence):
                conf = f"[yellow]{conf}[/yellow]"
            table.add_row(candidate.name, candidate.value or "-", conf, note)
        console.print(table)
        if fields.line_items:
            items = Table(title="Line items")
            items.add_column("description")
            items.add_column("qty")
            items.add_column("total")
            items.add_column("confidence")
            for item in fields.line_items:
                items.add_row(
                    item.description,
                    str(item.quantity or ""),
                    f"{item.total_price:.2f}",
                    format_confidence_percent(item.confidence),
                )
            console.print(items)
        console.print(
            f"Overall confidence {format_confidence_percent(result.overall_confidence)} "
            f"({tier_for(result.overall_confidence).value})"
        )
    if result.consistency is not None:
        for issue in result.consistency.issues:
            console.print(f"  [yellow]{issue.check}[/yellow] {issue.message}")
    for error in result.errors:
        console.print(f"[red]{error.code}[/red] {error.message}")
    if result.status == ProcessingStatus.RETAKE_REQUESTED:
        for suggestion in result.quality.suggestions:
            console.print(f"  > {suggestion}")
    console.print(f"Session {result.session.session_id} in {result.session.metrics.processing_time}ms")


class _RecordingRecognizer:
    """Wraps a recognizer and keeps the last result for `--save-tokens`."""

    def __init__(self, inner: TextRecognizer) -> None:
        self.inner = inner
        self.name = inner.name
        self.last: RecognitionResult | None = None

    @property
    def configured(self) -> bool:
        return self.inner.configured

    def recognize(self, image_bytes: bytes, mime_type: str = "image/png") -> RecognitionResult:
        self.last = self.inner.recognize(image_bytes, mime_type)
        return self.last


@app.command()
def process(
    image: Path,
    tokens: Optional[Path] = typer.Option(
        None, help="Replay a saved recognition JSON instead of calling the OCR service."
    ),
    save_tokens: Optional[Path] = typer.Option(
        None, help="Write the recognition used for this run to JSON."
    ),
    document_type: str = typer.Option("receipt", help="Document type hint."),
    force: bool = typer.Option(False, help="Run OCR even when a retake is recommended."),
    out: Optional[Path] = typer.Option(None, help="Write the full result JSON here."),
) -> None:
    """Run the full pipeline on one receipt image."""

    content, mime_type = _read_image(image)
    settings = load_settings()
    recognizer = StaticRecognizer(load_recognition(tokens)) if tokens else None
    container = build_container(settings, recognizer=recognizer)
    recorder: _RecordingRecognizer | None = None
    if save_tokens is not None:
        recorder = _RecordingRecognizer(container.recognizer)
        container.service.recognizer = recorder
    try:
        result = container.service.process(
            content,
            mime_type,
            document_type=document_type,
            force_ocr=force,
        )
    finally:
        container.service.close()

    if recorder is not None and recorder.last is not None:
        save_recognition(recorder.last, save_tokens)
        console.print(f"[green]Saved recognition[/green] {save_tokens}")

    _print_result(result)
    if out is not None:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(result.model_dump_json(indent=2), encoding="utf-8")
        console.print(f"[green]Wrote[/green] {out}")


@app.command()
def validate(
    field_type: FieldType,
    value: str,
    confidence: Optional[float] = typer.Option(None, min=0.0, max=1.0, help="OCR confidence 0..1."),
) -> None:
    """Validate one field value and print the feedback."""

    result = validate_field(field_type, value, confidence)
    style = _SEVERITY_STYLE[result.severity]
    console.print(f"[{style}]{result.severity.value}[/{style}] {result.message}")
    if result.suggestion:
        console.print(f"  suggestion: {result.suggestion}")
    if result.format_example:
        console.print(f"  example: {result.format_example}")
    elif not result.is_valid:
        console.print(f"  examples: {', '.join(get_format_examples(field_type))}")
    if not result.is_valid:
        raise typer.Exit(code=1)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (defaults to HOST)."),
    port: Optional[int] = typer.Option(None, help="Port (defaults to PORT)."),
) -> None:
    """Serve the HTTP API with uvicorn."""

    settings = load_settings()
    uvicorn.run(
        "receipt_ocr.api.main:app",
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


def main() -> None:
    _ensure_src_on_path()
    app()


if __name__ == "__main__":
    main()
