"""Rich console output for the diagnosis CLI.

A live status line names the running stage; on success the score table and
the rendered report are printed, on failure a short reason.
"""

from __future__ import annotations

import json
from collections.abc import Sequence

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.status import Status
from rich.table import Table

from geo_diagnosis.schemas.diagnosis import DiagnosisResult, ScoreRecord
from geo_diagnosis.schemas.phases import STAGE_LABELS, Stage
from geo_diagnosis.utils.scoring import dimension_averages, rating_label

console = Console()

_VERBOSE_JSON_OUTPUT = False


def set_verbose_json_output(enabled: bool) -> None:
    """Enable/disable raw JSON rendering of the score records."""
    global _VERBOSE_JSON_OUTPUT
    _VERBOSE_JSON_OUTPUT = enabled


class StageStatus:
    """Spinner whose label follows the running stage.

    Leaving the block clears the indicator whether the run succeeded or not.
    """

    def __init__(self) -> None:
        self._status: Status | None = None

    def __enter__(self) -> "StageStatus":
        self._status = console.status(STAGE_LABELS[Stage.QUESTIONS], spinner="dots")
        self._status.start()
        return self

    def __exit__(self, *exc_info) -> None:
        if self._status is not None:
            self._status.stop()
            self._status = None

    def update(self, stage: Stage) -> None:
        label = STAGE_LABELS.get(stage, str(stage))
        if self._status is not None:
            self._status.update(label)
        console.print(f"  [bold bright_yellow]→ {label}[/bold bright_yellow]")


def print_header(brand_name: str) -> None:
    """Print the startup banner with model/retry/fallback status."""
    from geo_diagnosis.config import get_agent_settings, get_settings

    agent_settings = get_agent_settings()
    settings = get_settings()

    fallback_parts = []
    if agent_settings.providers.groq.enabled and settings.groq_api_key:
        fallback_parts.append("Groq")
    if agent_settings.providers.ollama.enabled:
        fallback_parts.append("Ollama")
    fallback_text = " → ".join(fallback_parts) if fallback_parts else "None"

    retry_cfg = agent_settings.retry
    retry_text = f"{retry_cfg.max_attempts} attempts (backoff: {retry_cfg.backoff_factor}x)"

    console.print()
    console.print(
        Panel(
            f"[bold]GEO Brand Comprehension Diagnosis[/bold]\n\n"
            f"  Brand: [cyan]{brand_name}[/cyan]\n"
            f"  Model under test: [cyan]{agent_settings.get_model(Stage.ANSWERS.value)}[/cyan]\n"
            f"  Judge model: [cyan]{agent_settings.get_model(Stage.SCORING.value)}[/cyan]\n"
            f"  Fallback: [cyan]{fallback_text}[/cyan]\n"
            f"  Retry: [cyan]{retry_text}[/cyan]",
            border_style="bright_blue",
            padding=(1, 2),
        )
    )
    console.print()


def build_score_table(scores: Sequence[ScoreRecord], overall: float) -> Table:
    """Per-question sub-scores plus a dimension-average footer row."""
    table = Table(title=f"GEO score {overall:.1f} / 100 ({rating_label(overall)})")
    table.add_column("#", justify="right")
    table.add_column("Question")
    table.add_column("Salience", justify="right")
    table.add_column("Relevance", justify="right")
    table.add_column("Specificity", justify="right")
    table.add_column("GEO", justify="right")

    for number, record in enumerate(scores, start=1):
        table.add_row(
            record.id or str(number),
            record.question,
            f"{record.salience:.2f}",
            f"{record.relevance:.2f}",
            f"{record.specificity:.1f}",
            f"{record.geo_score * 100:.1f}",
        )

    averages = dimension_averages(scores)
    table.add_section()
    table.add_row(
        "",
        "[bold]Average[/bold]",
        f"{averages['salience']:.2f}",
        f"{averages['relevance']:.2f}",
        f"{averages['specificity']:.2f}",
        f"{overall:.1f}",
    )
    return table


def print_score_table(result: DiagnosisResult) -> None:
    console.print()
    if _VERBOSE_JSON_OUTPUT:
        payload = [s.model_dump(by_alias=True) for s in result.scores]
        console.print_json(json.dumps(payload, ensure_ascii=False))
    else:
        console.print(build_score_table(result.scores, result.overall_score))


def print_final_report(report: str) -> None:
    """Print the rendered markdown report."""
    console.print()
    console.print(
        Panel(
            Markdown(report),
            title="[bold green]Diagnosis Report[/bold green]",
            border_style="green",
            padding=(1, 2),
        )
    )
    console.print()


def print_error(message: str) -> None:
    console.print(f"  [bold red]✗ {message}[/bold red]")


def print_info(message: str) -> None:
    """Print an informational message."""
    console.print(f"  [dim]{message}[/dim]")


def print_langsmith_status(enabled: bool) -> None:
    """Print LangSmith tracing status."""
    if enabled:
        console.print("  [green]LangSmith tracing: enabled[/green]")
    else:
        console.print("  [dim]LangSmith tracing: disabled[/dim]")
