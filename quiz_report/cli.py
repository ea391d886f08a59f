"""
Typer command-line interface exposing the quiz report pipeline.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Dict, Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table
from rich.traceback import install as install_rich_traceback

from .class_stats import ClassStatistics, class_scores, compute_class_statistics
from .config import Settings, load_settings
from .errors import NotFoundError, QuizReportError, ValidationError
from .export import build_export_rows, write_csv, write_xlsx
from .logging_config import setup_logging
from .render import write_reports_pdf
from .report import (
    StudentReport,
    build_class_reports,
    build_student_report,
    find_student_document,
    load_quiz_documents,
)
from .responses import normalize_responses
from .roster import RosterEntry, RosterError, resolve_roster
from .scoring import OUTCOME_LABELS, OUTCOME_ORDER, overall_percent
from .store import JsonDocumentStore, record_answer
from .utils import write_json

app = typer.Typer(
    help="Build student and class reports from recorded quiz responses.",
    no_args_is_help=True,
    pretty_exceptions_enable=False,
)
console = Console()
logger = logging.getLogger(__name__)
install_rich_traceback(show_locals=False)

DataDirOption = Annotated[
    Optional[Path],
    typer.Option("-d", "--data", help="Directory of <collection>.json files (defaults to QUIZ_REPORT_DATA_DIR).", file_okay=False),
]
RosterOption = Annotated[
    Optional[Path],
    typer.Option("--roster", help="CSV/XLSX roster overriding the roster collection.", exists=True, readable=True),
]
ClassOption = Annotated[
    Optional[str],
    typer.Option("-c", "--class", help="Restrict class statistics to this class label."),
]


def _settings(ctx: typer.Context) -> Settings:
    settings = ctx.obj if isinstance(ctx.obj, Settings) else None
    return settings or load_settings()


def _open_store(settings: Settings, data_dir: Optional[Path]) -> JsonDocumentStore:
    root = data_dir or settings.DATA_DIR
    if not root.exists():
        raise typer.BadParameter(f"Data directory not found: {root}")
    try:
        return JsonDocumentStore(root)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _load_roster(store: JsonDocumentStore, settings: Settings, roster_path: Optional[Path]) -> Dict[str, RosterEntry]:
    try:
        return resolve_roster(store, settings.ROSTER_COLLECTION, roster_path)
    except RosterError as exc:
        console.print(f"[bold red]Roster error:[/] {exc}")
        raise typer.Exit(code=2) from exc


def _fail(exc: QuizReportError) -> typer.Exit:
    style = "yellow" if isinstance(exc, NotFoundError) else "red"
    console.print(f"[bold {style}]{type(exc).__name__}:[/] {exc}")
    return typer.Exit(code=1)


def _report_table(report: StudentReport) -> Table:
    table = Table(title=report.header.student_name, box=box.SIMPLE_HEAVY, expand=False)
    table.add_column("Measure", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right")
    table.add_row("Task", report.header.task_name)
    table.add_row("Class", report.header.class_name or "-")
    table.add_row("Completed", report.header.date_completed or "-")
    table.add_row(
        "Overall",
        f"{report.score.overall.correct}/{report.score.overall.total} "
        f"({report.header.overall_percent:.1f}%, {report.header.overall_grade})",
    )
    for outcome in OUTCOME_ORDER:
        mark = report.score.outcomes[outcome]
        table.add_row(OUTCOME_LABELS[outcome], f"{mark.correct}/{mark.total} ({mark.percent:.1f}%)")
    table.add_row("Percentile", f"{report.class_stats.percentile:.0f}")
    return table


def _stats_table(stats: ClassStatistics) -> Table:
    table = Table(title="Class statistics", box=box.SIMPLE_HEAVY, expand=False)
    table.add_column("Statistic", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right")
    table.add_row("Students", str(stats.count))
    table.add_row("Min", f"{stats.minimum:.1f}")
    table.add_row("Q1", f"{stats.q1:.1f}")
    table.add_row("Median", f"{stats.median:.1f}")
    table.add_row("Q3", f"{stats.q3:.1f}")
    table.add_row("Max", f"{stats.maximum:.1f}")
    table.add_row("Mean", f"{stats.mean:.1f}")
    table.add_row("Std dev", f"{stats.std_dev:.2f}")
    table.add_row("Student score", f"{stats.student_score:.1f}")
    table.add_row("Percentile rank", f"{stats.percentile:.1f}")
    return table


@app.callback()
def main(
    ctx: typer.Context,
    config: Annotated[
        Optional[Path],
        typer.Option("--config", help="YAML settings file.", exists=True, readable=True, dir_okay=False),
    ] = None,
    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", help="Override the configured log level."),
    ] = None,
) -> None:
    """
    Quiz report tools.
    """
    settings = load_settings(config)
    setup_logging(log_level or settings.LOG_LEVEL, json_format=settings.LOG_JSON)
    ctx.obj = settings


@app.command("student-report")
def student_report(
    ctx: typer.Context,
    quiz_id: Annotated[str, typer.Argument(help="Quiz identifier, e.g. task1_2025.")],
    email: Annotated[str, typer.Argument(help="Student email address.")],
    class_label: ClassOption = None,
    data_dir: DataDirOption = None,
    roster_path: RosterOption = None,
    output: Annotated[
        Optional[Path],
        typer.Option("-o", "--output", help="Output PDF (or JSON with --json).", dir_okay=False),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Write the report model as JSON instead of a PDF."),
    ] = False,
) -> None:
    """
    Build one student's report.
    """
    settings = _settings(ctx)
    store = _open_store(settings, data_dir)
    roster = _load_roster(store, settings, roster_path)

    try:
        report = build_student_report(
            store,
            roster,
            quiz_id,
            email,
            class_label,
            collection=settings.RESPONSES_COLLECTION,
        )
    except QuizReportError as exc:
        raise _fail(exc) from exc

    console.print(_report_table(report))
    if as_json:
        out_path = output or Path(f"{quiz_id}-report.json")
        write_json(out_path, report.to_dict())
        typer.echo(f"Report model saved → {out_path}")
        return

    out_path = output or Path(f"{quiz_id}-report.pdf")
    write_reports_pdf([report], out_path)
    typer.echo(f"Report PDF generated → {out_path}")


@app.command("class-report")
def class_report(
    ctx: typer.Context,
    quiz_id: Annotated[str, typer.Argument(help="Quiz identifier.")],
    class_label: Annotated[str, typer.Argument(help="Class label, e.g. 7Sci3.")],
    data_dir: DataDirOption = None,
    roster_path: RosterOption = None,
    output: Annotated[
        Optional[Path],
        typer.Option("-o", "--output", help="Output PDF path.", dir_okay=False),
    ] = None,
    new_page: Annotated[
        bool,
        typer.Option("--new-page/--same-page", help="Start each student's report on a new page."),
    ] = True,
) -> None:
    """
    Build reports for every student of a class into one PDF.
    """
    settings = _settings(ctx)
    store = _open_store(settings, data_dir)
    roster = _load_roster(store, settings, roster_path)

    try:
        reports = build_class_reports(
            store,
            roster,
            quiz_id,
            class_label,
            collection=settings.RESPONSES_COLLECTION,
        )
    except QuizReportError as exc:
        raise _fail(exc) from exc

    out_path = output or Path(f"{class_label}-{quiz_id}.pdf")
    document = write_reports_pdf(reports, out_path, new_page_per_report=new_page)

    table = Table(title=f"{class_label} • {quiz_id}", box=box.SIMPLE_HEAVY, expand=False)
    table.add_column("Student", style="cyan")
    table.add_column("Overall", justify="right")
    table.add_column("Grade", justify="center")
    table.add_column("Page", justify="right")
    for report, start in zip(reports, document.report_start_pages):
        table.add_row(
            report.header.student_name,
            f"{report.header.overall_percent:.1f}%",
            report.header.overall_grade,
            str(start),
        )
    console.print(table)
    typer.echo(f"Class report generated → {out_path} ({len(reports)} student(s), {document.page_count} page(s))")


@app.command()
def stats(
    ctx: typer.Context,
    quiz_id: Annotated[str, typer.Argument(help="Quiz identifier.")],
    email: Annotated[str, typer.Argument(help="Student whose percentile rank is reported.")],
    class_label: ClassOption = None,
    data_dir: DataDirOption = None,
    roster_path: RosterOption = None,
) -> None:
    """
    Show class statistics for a quiz and one student's place in them.
    """
    settings = _settings(ctx)
    store = _open_store(settings, data_dir)
    roster = _load_roster(store, settings, roster_path)

    try:
        documents = load_quiz_documents(store, quiz_id, collection=settings.RESPONSES_COLLECTION)
        student_score = overall_percent(normalize_responses(find_student_document(documents, email)))
    except QuizReportError as exc:
        raise _fail(exc) from exc

    distribution = class_scores(documents, roster, class_label)
    console.print(_stats_table(compute_class_statistics(list(distribution.values()), student_score)))


@app.command()
def export(
    ctx: typer.Context,
    quiz_id: Annotated[str, typer.Argument(help="Quiz identifier.")],
    class_label: ClassOption = None,
    data_dir: DataDirOption = None,
    roster_path: RosterOption = None,
    output: Annotated[
        Optional[Path],
        typer.Option("-o", "--output", help="Output spreadsheet path.", dir_okay=False),
    ] = None,
    format: Annotated[
        str,
        typer.Option("-f", "--format", help="Export format (xlsx or csv).", show_choices=True),
    ] = "xlsx",
) -> None:
    """
    Export responses joined with the roster as a spreadsheet.
    """
    if format not in {"xlsx", "csv"}:
        raise typer.BadParameter("--format must be 'xlsx' or 'csv'.")

    settings = _settings(ctx)
    store = _open_store(settings, data_dir)
    roster = _load_roster(store, settings, roster_path)

    try:
        table = build_export_rows(
            store,
            roster,
            quiz_id,
            class_label,
            collection=settings.RESPONSES_COLLECTION,
        )
    except QuizReportError as exc:
        raise _fail(exc) from exc

    out_path = output or Path(f"{quiz_id}.{format}")
    if format == "csv":
        write_csv(table, out_path)
    else:
        write_xlsx(table, out_path, title=quiz_id)
    typer.echo(f"Export written → {out_path} ({len(table.rows)} row(s))")


@app.command()
def record(
    ctx: typer.Context,
    quiz_id: Annotated[str, typer.Argument(help="Quiz identifier.")],
    question_id: Annotated[str, typer.Argument(help="Question identifier, e.g. q3.")],
    answer: Annotated[str, typer.Argument(help="Answer letter chosen by the student.")],
    uid: Annotated[str, typer.Option("--uid", help="Student account id (document key).")],
    email: Annotated[str, typer.Option("--email", help="Student email address.")],
    correct: Annotated[Optional[str], typer.Option("--correct", help="Correct answer, if scored.")] = None,
    outcome: Annotated[Optional[str], typer.Option("--outcome", help="Outcome category (KU, PCE, PS, CM).")] = None,
    topic: Annotated[Optional[str], typer.Option("--topic", help="Topic identifier.")] = None,
    grade_level: Annotated[Optional[str], typer.Option("--grade-level", help="Grade level tag, e.g. Year 7.")] = None,
    data_dir: DataDirOption = None,
) -> None:
    """
    Record one answer the way the quiz client does (merge upsert).
    """
    settings = _settings(ctx)
    root = data_dir or settings.DATA_DIR
    store = JsonDocumentStore(root)
    try:
        record_answer(
            store,
            uid=uid,
            email=email,
            quiz_id=quiz_id,
            question_id=question_id,
            answer=answer,
            correct_answer=correct,
            outcome=outcome,
            topic=topic,
            grade_level=grade_level,
            collection=settings.RESPONSES_COLLECTION,
        )
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(f"Recorded {question_id} for {email} → {root / (settings.RESPONSES_COLLECTION + '.json')}")


@app.command()
def serve(
    ctx: typer.Context,
    host: Annotated[str, typer.Option("--host", help="Interface to bind.")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", min=1, max=65535, help="Port to listen on.")] = 8000,
    roster_path: RosterOption = None,
) -> None:
    """
    Run the HTTP API with uvicorn.
    """
    import uvicorn  # Lazy import; only needed to serve

    from .api import create_app

    settings = _settings(ctx)
    logger.info("Serving %s on http://%s:%d", settings.APP_NAME, host, port)
    uvicorn.run(create_app(settings, roster_path=roster_path), host=host, port=port, log_config=None)
