# Clinical report layout:
#   1. header   - title, subtitle, right-aligned patient / appointment / timestamp
#   2. facts    - key/value table
#   3. sensors  - one row per stream: name, measurement, description
#   4. narrative
# Footer "page X / N" is stamped after layout, once N is known.

from __future__ import annotations

import json
from datetime import datetime, timezone
from io import BytesIO
from typing import Any
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import cm
from reportlab.pdfgen import canvas
from reportlab.platypus import (
    HRFlowable, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle,
)

from rmt_backend.core.narrative import MISSING
from rmt_backend.schemas.report import REPORT_FORMAT_VERSION, REPORT_LANGUAGE, ReportDraft
from rmt_backend.schemas.sensor_snapshot import SensorSnapshot

# ── Page geometry ──────────────────────────────────────────────────────────────
PAGE_SIZE = A4
MARGIN = 2 * cm
CONTENT_WIDTH = PAGE_SIZE[0] - 2 * MARGIN
FOOTER_Y = 1.2 * cm

# ── Colour palette ─────────────────────────────────────────────────────────────
NAVY       = colors.HexColor("#1A2B4A")
TEAL       = colors.HexColor("#0D7377")
LIGHT_GREY = colors.HexColor("#F5F5F5")
MID_GREY   = colors.HexColor("#888888")
DARK_GREY  = colors.HexColor("#333333")
WHITE      = colors.white

TIMESTAMP_FORMAT = "%d %b %Y, %H:%M UTC"

STREAM_DESCRIPTIONS = {
    "PPG":  "Photoplethysmography pulse sensor heart rate",
    "MPU":  "Inertial motion unit movement summary",
    "Flex": "Flex sensor finger bend state",
    "FSR":  "Force-sensitive resistor grip pressure",
}


def _make_styles() -> dict:
    return {
        "title":    ParagraphStyle("Title",    fontName="Helvetica-Bold", fontSize=18, textColor=NAVY, spaceAfter=4, leading=22),
        "subtitle": ParagraphStyle("Subtitle", fontName="Helvetica",      fontSize=10, textColor=MID_GREY, leading=13),
        "meta":     ParagraphStyle("Meta",     fontName="Helvetica",      fontSize=8,  textColor=DARK_GREY, alignment=TA_RIGHT, leading=11),
        "section":  ParagraphStyle("Section",  fontName="Helvetica-Bold", fontSize=12, textColor=NAVY, spaceBefore=6, spaceAfter=6),
        "label":    ParagraphStyle("Label",    fontName="Helvetica-Bold", fontSize=9,  textColor=NAVY),
        "cell":     ParagraphStyle("Cell",     fontName="Helvetica",      fontSize=9,  textColor=DARK_GREY, leading=12),
        "body":     ParagraphStyle("Body",     fontName="Helvetica",      fontSize=10, textColor=DARK_GREY, spaceAfter=8, leading=15),
    }


def format_measurement(value: Any, unit: str = "") -> str:
    """Floats get two decimals, everything else is shown as stored."""
    if value is None:
        return MISSING
    if isinstance(value, float):
        text = f"{value:.2f}"
    else:
        text = str(value)
    return f"{text} {unit}" if unit else text


def _format_motion_value(value: Any) -> str:
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return format_measurement(value)


def _format_motion(snapshot: SensorSnapshot) -> str:
    if snapshot.motion_summary is None:
        return MISSING
    parts = [
        f"{key}: {_format_motion_value(value)}"
        for key, value in snapshot.motion_summary.compact().items()
    ]
    return ", ".join(parts) if parts else MISSING


def sensor_rows(snapshot: SensorSnapshot) -> list[tuple[str, str, str]]:
    """(stream, measurement, description) for the four sensor streams, in table order."""
    return [
        ("PPG", format_measurement(snapshot.heart_rate_bpm, "bpm"), STREAM_DESCRIPTIONS["PPG"]),
        ("MPU", _format_motion(snapshot), STREAM_DESCRIPTIONS["MPU"]),
        ("Flex", format_measurement(snapshot.flex_bent), STREAM_DESCRIPTIONS["Flex"]),
        ("FSR", format_measurement(snapshot.pressure, "kPa"), STREAM_DESCRIPTIONS["FSR"]),
    ]


def page_footer_text(page: int, total: int) -> str:
    return f"page {page} / {total}"


class NumberedCanvas(canvas.Canvas):
    """
    Buffers every page and writes them out on save(), once the total page
    count is known, stamping the centred footer on each.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._saved_page_states: list[dict] = []

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self._draw_footer(total)
            super().showPage()
        super().save()

    def _draw_footer(self, total: int) -> None:
        self.saveState()
        self.setFont("Helvetica", 8)
        self.setFillColor(MID_GREY)
        self.drawCentredString(PAGE_SIZE[0] / 2, FOOTER_Y, page_footer_text(self._pageNumber, total))
        self.restoreState()


class ReportDocumentRenderer:
    """Lays out the clinical report as a paginated PDF."""

    def __init__(self, clock=None, page_compression: int | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._page_compression = page_compression   # None keeps the reportlab default
        self._styles = _make_styles()

    def _separator(self) -> list:
        return [
            Spacer(1, 0.3 * cm),
            HRFlowable(width="100%", color=TEAL, thickness=1),
            Spacer(1, 0.3 * cm),
        ]

    def _header(self, patient_id: str, appointment_id: str | None, generated_at: datetime) -> Table:
        s = self._styles
        left = [
            Paragraph("Clinical Monitoring Report", s["title"]),
            Paragraph("Wearable sensor summary and clinical narrative", s["subtitle"]),
        ]
        meta = "<br/>".join([
            f"<b>Patient ID:</b> {escape(patient_id)}",
            f"<b>Appointment ID:</b> {escape(appointment_id or 'none')}",
            f"<b>Generated:</b> {generated_at.strftime(TIMESTAMP_FORMAT)}",
        ])
        t = Table([[left, Paragraph(meta, s["meta"])]], colWidths=[CONTENT_WIDTH * 0.62, CONTENT_WIDTH * 0.38])
        t.setStyle(TableStyle([
            ("VALIGN",        (0, 0), (-1, -1), "TOP"),
            ("LEFTPADDING",   (0, 0), (-1, -1), 0),
            ("RIGHTPADDING",  (0, 0), (-1, -1), 0),
        ]))
        return t

    def _facts(self, patient_id: str, appointment_id: str | None, draft: ReportDraft) -> Table:
        s = self._styles
        facts = [
            ("Patient ID", patient_id),
            ("Appointment", appointment_id or "none"),
            ("Narrative source", "Language model" if draft.generated_via == "model" else "Automatic template"),
            ("Language", REPORT_LANGUAGE),
            ("Format version", str(REPORT_FORMAT_VERSION)),
        ]
        rows = [[Paragraph(label, s["label"]), Paragraph(escape(value), s["cell"])] for label, value in facts]
        t = Table(rows, colWidths=[CONTENT_WIDTH * 0.3, CONTENT_WIDTH * 0.7])
        t.setStyle(TableStyle([
            ("ROWBACKGROUNDS", (0, 0), (-1, -1), [WHITE, LIGHT_GREY]),
            ("TOPPADDING",     (0, 0), (-1, -1), 4),
            ("BOTTOMPADDING",  (0, 0), (-1, -1), 4),
            ("LEFTPADDING",    (0, 0), (-1, -1), 8),
            ("GRID",           (0, 0), (-1, -1), 0.3, MID_GREY),
        ]))
        return t

    def _sensor_table(self, snapshot: SensorSnapshot) -> Table:
        s = self._styles
        rows = [[Paragraph(h, s["label"]) for h in ("Stream", "Measurement", "Description")]]
        for stream, measurement, description in sensor_rows(snapshot):
            rows.append([
                Paragraph(stream, s["cell"]),
                Paragraph(escape(measurement), s["cell"]),
                Paragraph(description, s["cell"]),
            ])
        t = Table(rows, colWidths=[CONTENT_WIDTH * 0.15, CONTENT_WIDTH * 0.35, CONTENT_WIDTH * 0.5], repeatRows=1)
        t.setStyle(TableStyle([
            ("BACKGROUND",     (0, 0), (-1, 0), LIGHT_GREY),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [WHITE, LIGHT_GREY]),
            ("VALIGN",         (0, 0), (-1, -1), "TOP"),
            ("TOPPADDING",     (0, 0), (-1, -1), 4),
            ("BOTTOMPADDING",  (0, 0), (-1, -1), 4),
            ("GRID",           (0, 0), (-1, -1), 0.3, MID_GREY),
        ]))
        return t

    def _narrative(self, text: str) -> list:
        paragraphs = [p.strip() for p in text.split("\n\n") if p.strip()]
        return [
            Paragraph(escape(p).replace("\n", "<br/>"), self._styles["body"])
            for p in paragraphs
        ]

    def build_story(self, patient_id: str, appointment_id: str | None, draft: ReportDraft) -> list:
        s = self._styles
        story: list = [self._header(patient_id, appointment_id, self._clock())]
        story += self._separator()
        story.append(Paragraph("Patient", s["section"]))
        story.append(self._facts(patient_id, appointment_id, draft))
        story += self._separator()
        story.append(Paragraph("Sensor Summary", s["section"]))
        story.append(self._sensor_table(draft.summary))
        story += self._separator()
        story.append(Paragraph("Clinical Narrative", s["section"]))
        story += self._narrative(draft.narrative_text)
        return story

    def render(self, patient_id: str, appointment_id: str | None, draft: ReportDraft) -> bytes:
        """Build the whole document in memory and return the finished PDF bytes."""
        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer, pagesize=PAGE_SIZE,
            leftMargin=MARGIN, rightMargin=MARGIN,
            topMargin=MARGIN, bottomMargin=MARGIN,
            title="Clinical Monitoring Report",
            author="RMT report service",
            pageCompression=self._page_compression,
        )
        doc.build(self.build_story(patient_id, appointment_id, draft), canvasmaker=NumberedCanvas)
        return buffer.getvalue()
