"""
Tests for PDF rendering of report models.
"""
import fitz
import pytest

from conftest import CLASS_LABEL, QUIZ_ID

from quiz_report.render import (
    BOX_FILL,
    BOX_PLOT_HEIGHT,
    BOX_PLOT_INDENT,
    BOX_PLOT_WIDTH,
    MARGIN,
    MARKER,
    STUDENT_MARKER_RADIUS,
    box_plot_geometry,
    render_reports,
    report_filename,
    scale_score,
    write_reports_pdf,
)
from quiz_report.report import build_class_reports, build_student_report


def _page_texts(content: bytes):
    with fitz.open(stream=content, filetype="pdf") as pdf:
        return [page.get_text() for page in pdf]


@pytest.fixture
def baker_report(store, roster):
    return build_student_report(store, roster, QUIZ_ID, "liam.baker@student.example.edu", CLASS_LABEL)


class TestBoxPlotGeometry:
    """Linear 0-100 scale onto the plot width."""

    def test_scale_endpoints(self):
        assert scale_score(0.0) == 0.0
        assert scale_score(100.0) == BOX_PLOT_WIDTH
        assert scale_score(50.0, 200.0, 10.0) == 110.0

    def test_out_of_range_scores_are_clamped(self):
        assert scale_score(-5.0) == 0.0
        assert scale_score(140.0) == BOX_PLOT_WIDTH

    def test_geometry(self):
        box = {"min": 0.0, "q1": 25.0, "median": 50.0, "q3": 75.0, "max": 100.0, "student": 60.0}
        geometry = box_plot_geometry(box, width=400.0, x0=10.0)
        assert (geometry.x_min, geometry.x_q1, geometry.x_median, geometry.x_q3, geometry.x_max) == (
            10.0,
            110.0,
            210.0,
            310.0,
            410.0,
        )
        assert geometry.x_student == 250.0


def _close(a, b, tol=1.5):
    return abs(a - b) <= tol


def _filled(drawings, color):
    return [d for d in drawings if d.get("fill") and all(_close(x, y, 0.01) for x, y in zip(d["fill"], color))]


def _line_segments(drawings):
    return [(item[1], item[2]) for d in drawings for item in d["items"] if item[0] == "l"]


class TestBoxPlotDrawing:
    """Vector shapes of the box plot on the first page."""

    @pytest.fixture
    def drawn(self, baker_report):
        document = render_reports([baker_report])
        with fitz.open(stream=document.content, filetype="pdf") as pdf:
            drawings = pdf[0].get_drawings()
        box = baker_report.to_dict()["stats"]["boxPlot"]
        return drawings, box_plot_geometry(box, BOX_PLOT_WIDTH, MARGIN + BOX_PLOT_INDENT)

    def test_box_spans_quartiles(self, drawn):
        drawings, geometry = drawn
        (box,) = _filled(drawings, BOX_FILL.rgb())
        assert _close(box["rect"].x0, geometry.x_q1)
        assert _close(box["rect"].x1, geometry.x_q3)

    def test_student_marker_position(self, drawn):
        drawings, geometry = drawn
        (marker,) = _filled(drawings, MARKER.rgb())
        rect = marker["rect"]
        assert _close((rect.x0 + rect.x1) / 2, geometry.x_student)
        assert _close(rect.width, 2 * STUDENT_MARKER_RADIUS)

    def test_whisker_and_median_lines(self, drawn):
        drawings, geometry = drawn
        segments = _line_segments(drawings)
        whiskers = [
            (p1, p2)
            for p1, p2 in segments
            if _close(p1.y, p2.y) and _close(min(p1.x, p2.x), geometry.x_min) and _close(max(p1.x, p2.x), geometry.x_max)
        ]
        medians = [(p1, p2) for p1, p2 in segments if _close(p1.x, geometry.x_median) and _close(p2.x, geometry.x_median)]
        assert whiskers
        assert medians
        (p1, p2) = medians[0]
        assert _close(abs(p1.y - p2.y), BOX_PLOT_HEIGHT)


class TestRenderReports:
    """Rendered document structure."""

    def test_sections_in_order(self, baker_report):
        document = render_reports([baker_report])
        texts = _page_texts(document.content)
        assert document.page_count == len(texts)
        assert document.report_start_pages == [1]

        body = "\n".join(texts[:-1])
        headings = [
            "Liam Baker",
            "Raw marks",
            "Outcome breakdown",
            "Class summary",
            "Topic performance",
            "Strengths",
            "Areas for improvement",
            "Study advice",
        ]
        positions = [body.index(heading) for heading in headings]
        assert positions == sorted(positions)

    def test_summary_on_its_own_page(self, baker_report):
        texts = _page_texts(render_reports([baker_report]).content)
        assert texts[-1].lstrip().startswith("Summary")
        assert "Liam Baker scored 60.0%" in texts[-1]
        assert "Summary" not in "\n".join(texts[:-1])

    def test_outcomes_in_fixed_order(self, baker_report):
        text = "\n".join(_page_texts(render_reports([baker_report]).content))
        positions = [text.index(f"({code}): ") for code in ("KU", "PCE", "PS", "CM")]
        assert positions == sorted(positions)

    def test_renders_serialised_models(self, baker_report):
        document = render_reports([baker_report.to_dict()])
        assert "Liam Baker" in _page_texts(document.content)[0]

    def test_batch_starts_each_report_on_a_new_page(self, batch_store, roster):
        reports = build_class_reports(batch_store, roster, QUIZ_ID, CLASS_LABEL)
        document = render_reports(reports)
        texts = _page_texts(document.content)

        assert len(document.report_start_pages) == 3
        assert document.report_start_pages == sorted(set(document.report_start_pages))
        for start, name in zip(document.report_start_pages, ["Zara Adams", "Liam Baker", "Ruby Evans"]):
            assert texts[start - 1].lstrip().startswith(name)

    def test_same_page_mode_continues_on_summary_page(self, batch_store, roster):
        reports = build_class_reports(batch_store, roster, QUIZ_ID, CLASS_LABEL)
        separate = render_reports(reports, new_page_per_report=True)
        packed = render_reports(reports, new_page_per_report=False)

        assert len(separate.summary_pages) == len(packed.summary_pages) == 3
        for index in range(2):
            assert separate.report_start_pages[index + 1] == separate.summary_pages[index] + 1
            assert packed.report_start_pages[index + 1] == packed.summary_pages[index]

        texts = _page_texts(packed.content)
        shared = texts[packed.summary_pages[0] - 1]
        assert shared.index("Summary") < shared.index("Liam Baker")

    def test_long_summary_flows_onto_following_pages(self, baker_report):
        model = baker_report.to_dict()
        model["summaryText"] = "revise " * 3000 + "FINALWORD"
        document = render_reports([model])

        assert len(document.summary_pages) == 1
        assert document.page_count > document.summary_pages[0]
        with fitz.open(stream=document.content, filetype="pdf") as pdf:
            assert "FINALWORD" in pdf[-1].get_text()
            for number in range(document.summary_pages[0] - 1, len(pdf)):
                page = pdf[number]
                bottom = page.rect.height - MARGIN + 1
                assert all(word[3] <= bottom for word in page.get_text("words"))

    def test_write_reports_pdf(self, baker_report, tmp_path):
        out = tmp_path / "baker.pdf"
        document = write_reports_pdf([baker_report], out)
        assert out.read_bytes() == document.content
        assert document.content.startswith(b"%PDF")


def test_report_filename(baker_report):
    assert report_filename(baker_report) == "Liam_Baker-task1_2025.pdf"
