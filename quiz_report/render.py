"""Paint student report models onto paginated A4 PDF pages."""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Mapping, Sequence, Union
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_LEFT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import mm
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas
from reportlab.platypus import Paragraph

from .report import StudentReport
from .scoring import OUTCOME_LABELS, OUTCOME_ORDER

logger = logging.getLogger(__name__)

# Geometry/appearance constants
PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN = 18 * mm
CONTENT_WIDTH = PAGE_WIDTH - 2 * MARGIN
BODY_FONT = "Helvetica"
BOLD_FONT = "Helvetica-Bold"
BODY_SIZE = 10
SECTION_SIZE = 13
TITLE_SIZE = 18
LINE_GAP = 4
SECTION_GAP = 10
BOX_PLOT_WIDTH = 400.0
BOX_PLOT_HEIGHT = 24.0
BOX_PLOT_TICK = 8.0
STUDENT_MARKER_RADIUS = 4.0
MAX_ADVICE_TOPICS = 5
BOX_PLOT_INDENT = 8.0
ACCENT = colors.Color(0.16, 0.36, 0.64)
MARKER = colors.Color(0.85, 0.10, 0.10)
BOX_FILL = colors.Color(0.85, 0.90, 0.97)

ReportLike = Union[StudentReport, Mapping[str, Any]]


@dataclass(frozen=True)
class BoxPlotGeometry:
    """Horizontal positions (points) of the box-plot features."""

    x_min: float
    x_q1: float
    x_median: float
    x_q3: float
    x_max: float
    x_student: float


@dataclass(frozen=True)
class RenderedDocument:
    """PDF bytes plus where each report and its summary start."""

    content: bytes
    page_count: int
    report_start_pages: List[int] = field(default_factory=list)
    summary_pages: List[int] = field(default_factory=list)

    def write(self, path: Path) -> Path:
        path.write_bytes(self.content)
        return path


def scale_score(score: float, width: float = BOX_PLOT_WIDTH, x0: float = 0.0) -> float:
    """Map a 0-100 score linearly onto ``[x0, x0 + width]``, clamping out-of-range values."""
    clamped = max(0.0, min(100.0, float(score)))
    return x0 + clamped / 100.0 * width


def box_plot_geometry(
    box: Mapping[str, float],
    width: float = BOX_PLOT_WIDTH,
    x0: float = 0.0,
) -> BoxPlotGeometry:
    return BoxPlotGeometry(
        x_min=scale_score(box.get("min", 0.0), width, x0),
        x_q1=scale_score(box.get("q1", 0.0), width, x0),
        x_median=scale_score(box.get("median", 0.0), width, x0),
        x_q3=scale_score(box.get("q3", 0.0), width, x0),
        x_max=scale_score(box.get("max", 0.0), width, x0),
        x_student=scale_score(box.get("student", 0.0), width, x0),
    )


class _ReportCanvas:
    """Cursor-based writer over a ReportLab canvas with automatic page breaks."""

    def __init__(self, buf: io.BytesIO) -> None:
        self.c = canvas.Canvas(buf, pagesize=A4)
        self.c.setTitle("Student quiz reports")
        self.page_count = 1
        self.summary_pages: List[int] = []
        self.y = PAGE_HEIGHT - MARGIN

    def new_page(self) -> None:
        self.c.showPage()
        self.page_count += 1
        self.y = PAGE_HEIGHT - MARGIN

    def ensure_space(self, height: float) -> None:
        if self.y - height < MARGIN:
            self.new_page()

    def gap(self, height: float = SECTION_GAP) -> None:
        self.y -= height

    def text(self, value: str, *, size: int = BODY_SIZE, bold: bool = False, indent: float = 0.0) -> None:
        font = BOLD_FONT if bold else BODY_FONT
        lines = simpleSplit(value, font, size, CONTENT_WIDTH - indent) or [""]
        for line in lines:
            self.ensure_space(size + LINE_GAP)
            self.y -= size
            self.c.setFont(font, size)
            self.c.setFillColor(colors.black)
            self.c.drawString(MARGIN + indent, self.y, line)
            self.y -= LINE_GAP

    def section(self, title: str) -> None:
        self.ensure_space(SECTION_SIZE + 3 * (BODY_SIZE + LINE_GAP))
        self.gap()
        self.y -= SECTION_SIZE
        self.c.setFont(BOLD_FONT, SECTION_SIZE)
        self.c.setFillColor(ACCENT)
        self.c.drawString(MARGIN, self.y, title)
        self.c.setStrokeColor(ACCENT)
        self.c.setLineWidth(0.5)
        self.c.line(MARGIN, self.y - 3, MARGIN + CONTENT_WIDTH, self.y - 3)
        self.y -= LINE_GAP + 4

    def bullets(self, items: Sequence[str], *, empty: str) -> None:
        if not items:
            self.text(empty, indent=8)
            return
        for item in items:
            self.text(f"• {item}", indent=8)

    def box_plot(self, box: Mapping[str, float]) -> None:
        height = BOX_PLOT_HEIGHT + 2 * BOX_PLOT_TICK + BODY_SIZE + 2 * LINE_GAP
        self.ensure_space(height)
        x0 = MARGIN + BOX_PLOT_INDENT
        centre = self.y - BOX_PLOT_TICK - BOX_PLOT_HEIGHT / 2
        geometry = box_plot_geometry(box, BOX_PLOT_WIDTH, x0)
        c = self.c

        c.setStrokeColor(colors.black)
        c.setLineWidth(1)
        # Whisker line with min/max ticks.
        c.line(geometry.x_min, centre, geometry.x_max, centre)
        c.line(geometry.x_min, centre - BOX_PLOT_TICK, geometry.x_min, centre + BOX_PLOT_TICK)
        c.line(geometry.x_max, centre - BOX_PLOT_TICK, geometry.x_max, centre + BOX_PLOT_TICK)

        c.setFillColor(BOX_FILL)
        c.rect(
            geometry.x_q1,
            centre - BOX_PLOT_HEIGHT / 2,
            geometry.x_q3 - geometry.x_q1,
            BOX_PLOT_HEIGHT,
            stroke=1,
            fill=1,
        )
        c.setLineWidth(2)
        c.line(geometry.x_median, centre - BOX_PLOT_HEIGHT / 2, geometry.x_median, centre + BOX_PLOT_HEIGHT / 2)

        c.setFillColor(MARKER)
        c.circle(geometry.x_student, centre, STUDENT_MARKER_RADIUS, stroke=0, fill=1)

        axis_y = centre - BOX_PLOT_HEIGHT / 2 - BOX_PLOT_TICK - BODY_SIZE
        c.setFillColor(colors.grey)
        c.setFont(BODY_FONT, 8)
        for tick in (0, 25, 50, 75, 100):
            c.drawCentredString(scale_score(tick, BOX_PLOT_WIDTH, x0), axis_y, str(tick))

        self.y = axis_y - 2 * LINE_GAP

    def paragraph(self, paragraph: Paragraph) -> None:
        """Draw ``paragraph`` at the cursor, splitting it across pages when it overflows."""
        pending: List[Paragraph] = [paragraph]
        while pending:
            current = pending.pop(0)
            available = self.y - MARGIN
            _, height = current.wrap(CONTENT_WIDTH, available)
            if height <= available:
                current.drawOn(self.c, MARGIN, self.y - height)
                self.y -= height + LINE_GAP
                continue
            parts = current.split(CONTENT_WIDTH, available)
            if len(parts) > 1:
                pending[:0] = parts
                continue
            if self.y >= PAGE_HEIGHT - MARGIN:
                # Does not split and a fresh page cannot hold it either.
                current.drawOn(self.c, MARGIN, self.y - height)
                self.y = MARGIN
                continue
            self.new_page()
            pending.insert(0, current)

    def summary_page(self, text: str) -> None:
        self.new_page()
        self.summary_pages.append(self.page_count)
        self.y -= SECTION_SIZE
        self.c.setFont(BOLD_FONT, SECTION_SIZE)
        self.c.setFillColor(ACCENT)
        self.c.drawString(MARGIN, self.y, "Summary")
        self.y -= SECTION_GAP

        style = ParagraphStyle(
            name="summary",
            fontName=BODY_FONT,
            fontSize=11,
            leading=15,
            alignment=TA_LEFT,
        )
        self.paragraph(Paragraph(escape(text), style))

    def save(self) -> None:
        self.c.save()


def _as_model(report: ReportLike) -> Mapping[str, Any]:
    if isinstance(report, StudentReport):
        return report.to_dict()
    return report


def _percent(value: Any) -> str:
    try:
        return f"{float(value):.1f}%"
    except (TypeError, ValueError):
        return "-"


def _topic_line(topic: Mapping[str, Any]) -> str:
    return (
        f"{topic.get('topicName') or topic.get('topicId')}: {topic.get('correct', 0)}/{topic.get('total', 0)} "
        f"({_percent(topic.get('percent'))}) - {topic.get('level', '')}"
    )


def _render_one(page: _ReportCanvas, model: Mapping[str, Any]) -> None:
    header = model.get("header", {})
    raw = model.get("rawMarks", {})
    outcomes = model.get("outcomes", {})
    stats = model.get("stats", {})
    strengths = model.get("strengths", {})
    weaknesses = model.get("weaknesses", {})
    advice = model.get("advice", {})

    page.text(str(header.get("studentName", "")), size=TITLE_SIZE, bold=True)
    page.text(f"Class: {header.get('className') or '-'}    Task: {header.get('taskName', '')}")
    page.text(f"Completed: {header.get('dateCompleted') or '-'}")
    page.text(
        f"Overall: {_percent(header.get('overallPercent'))}    Grade: {header.get('overallGrade', '')}",
        bold=True,
    )

    page.section("Raw marks")
    overall_raw = raw.get("overallRaw", {})
    page.text(f"Overall: {overall_raw.get('correct', 0)}/{overall_raw.get('total', 0)}")
    outcome_raw = raw.get("outcomeRaw", {})
    for outcome in OUTCOME_ORDER:
        mark = outcome_raw.get(outcome, {})
        page.text(f"{outcome}: {mark.get('correct', 0)}/{mark.get('total', 0)}", indent=8)

    page.section("Outcome breakdown")
    percentages = outcomes.get("outcomePercentages", {})
    for outcome in OUTCOME_ORDER:
        page.text(
            f"{OUTCOME_LABELS[outcome]} ({outcome}): {_percent(percentages.get(outcome, 0.0))}",
            indent=8,
        )

    page.section("Class summary")
    class_stats = stats.get("classStats", {})
    page.text(
        f"Students: {class_stats.get('count', 0)}    Lowest: {_percent(class_stats.get('min'))}    "
        f"Highest: {_percent(class_stats.get('max'))}"
    )
    page.text(
        f"Mean: {_percent(class_stats.get('mean'))}    Std dev: {float(class_stats.get('stdDev', 0.0)):.1f}    "
        f"Percentile rank: {float(class_stats.get('percentile', 0.0)):.0f}"
    )
    page.box_plot(stats.get("boxPlot", {}))

    page.section("Topic performance")
    page.bullets([_topic_line(topic) for topic in model.get("topics", [])], empty="No topics assessed.")

    page.section("Strengths")
    strength_items = [f"{OUTCOME_LABELS.get(code, code)} ({code})" for code in strengths.get("strengthOutcomes", [])]
    strength_items += [_topic_line(topic) for topic in strengths.get("strengthTopics", [])]
    strength_items += list(strengths.get("strengthSkills", []))
    page.bullets(strength_items, empty="Keep working towards the 70% benchmark.")

    page.section("Areas for improvement")
    weak_items = [f"{OUTCOME_LABELS.get(code, code)} ({code})" for code in weaknesses.get("weakOutcomes", [])]
    weak_items += [_topic_line(topic) for topic in weaknesses.get("weakTopics", [])]
    weak_items += list(weaknesses.get("errorTypes", []))
    page.bullets(weak_items, empty="No areas below 50%.")

    page.section("Study advice")
    priority = advice.get("priorityTopics", [])[:MAX_ADVICE_TOPICS]
    page.bullets([_topic_line(topic) for topic in priority], empty="No priority topics.")
    skills = list(advice.get("recommendedSkills", []))
    if skills:
        page.bullets(skills, empty="")
    if advice.get("personalisedNote"):
        page.gap(LINE_GAP)
        page.text(str(advice["personalisedNote"]))

    page.summary_page(str(model.get("summaryText", "")))


def render_reports(
    reports: Sequence[ReportLike],
    *,
    new_page_per_report: bool = True,
) -> RenderedDocument:
    """
    Render one or more report models into a single PDF.

    Each report after the first starts on a new page unless
    ``new_page_per_report`` is false, in which case it continues below the
    previous report's summary.
    """
    buf = io.BytesIO()
    page = _ReportCanvas(buf)
    starts: List[int] = []

    for index, report in enumerate(reports):
        if index and new_page_per_report:
            page.new_page()
        elif index:
            page.gap(2 * SECTION_GAP)
        starts.append(page.page_count)
        _render_one(page, _as_model(report))

    page.save()
    logger.debug("Rendered %d report(s) on %d page(s)", len(starts), page.page_count)
    return RenderedDocument(
        content=buf.getvalue(),
        page_count=page.page_count,
        report_start_pages=starts,
        summary_pages=list(page.summary_pages),
    )


def write_reports_pdf(
    reports: Sequence[ReportLike],
    output: Path,
    *,
    new_page_per_report: bool = True,
) -> RenderedDocument:
    document = render_reports(reports, new_page_per_report=new_page_per_report)
    document.write(output)
    return document


def report_filename(model: ReportLike, suffix: str = ".pdf") -> str:
    """Filesystem-safe file name derived from the report header."""
    header = _as_model(model).get("header", {})
    parts = [str(header.get("studentName") or "student"), str(header.get("taskName") or "")]
    raw = "-".join(part for part in parts if part)
    safe = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in raw).strip("_")
    return (safe or "report") + suffix
