"""PDF export of a session report using ReportLab."""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_LEFT
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import (
    KeepTogether,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

import config
from tracking.analytics import format_duration
from tracking.models import ParsedReport, ReportPattern

logger = logging.getLogger(__name__)

# Tag colors per pattern type
PATTERN_TYPE_COLORS = {
    "positive": "#2E8B57",
    "negative": "#C0392B",
    "neutral": "#7F8C8D",
}

CONFIDENCE_LABELS = {
    "high": "High confidence",
    "medium": "Medium confidence",
    "low": "Low confidence",
}


def _add_gradient_background(canvas_obj, doc):
    """
    Blue gradient fading from the top of the page to the middle.

    Args:
        canvas_obj: ReportLab canvas object
        doc: Document object
    """
    canvas_obj.saveState()
    width, height = letter
    gradient_color = colors.HexColor('#B8D5E8')

    num_steps = 50
    gradient_height = height * 0.5
    step_height = gradient_height / num_steps

    for i in range(num_steps):
        alpha = 1 - (i / num_steps)
        canvas_obj.setFillColor(colors.Color(
            gradient_color.red,
            gradient_color.green,
            gradient_color.blue,
            alpha=alpha * 0.9,
        ))
        y_pos = height - (i * step_height)
        canvas_obj.rect(0, y_pos - step_height, width, step_height, fill=1, stroke=0)

    canvas_obj.restoreState()


def _format_minutes(minutes: float) -> str:
    return format_duration(minutes * 60.0)


def _safe_filename(name: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9 ._-]+", "", name).strip()
    return cleaned or "Session Report"


def _build_styles() -> Dict[str, ParagraphStyle]:
    styles = getSampleStyleSheet()
    return {
        "title": ParagraphStyle(
            'CustomTitle',
            parent=styles['Heading1'],
            fontName='Times-Bold',
            fontSize=28,
            textColor=colors.HexColor('#2C3E50'),
            spaceAfter=12,
            spaceBefore=20,
            alignment=TA_LEFT,
            leading=34,
        ),
        "subtitle": ParagraphStyle(
            'Subtitle',
            parent=styles['Normal'],
            fontName='Times-Italic',
            fontSize=12,
            textColor=colors.HexColor('#7F8C8D'),
            spaceAfter=24,
            alignment=TA_LEFT,
        ),
        "heading": ParagraphStyle(
            'CustomHeading',
            parent=styles['Heading2'],
            fontName='Times-Bold',
            fontSize=18,
            textColor=colors.HexColor('#34495E'),
            spaceAfter=14,
            spaceBefore=18,
            alignment=TA_LEFT,
            leading=24,
        ),
        "pattern_name": ParagraphStyle(
            'PatternName',
            parent=styles['Heading3'],
            fontName='Times-Bold',
            fontSize=14,
            textColor=colors.HexColor('#2C3E50'),
            spaceAfter=4,
            spaceBefore=10,
            leading=18,
        ),
        "body": ParagraphStyle(
            'CustomBody',
            parent=styles['Normal'],
            fontName='Times-Roman',
            fontSize=12,
            textColor=colors.HexColor('#2C3E50'),
            leading=17,
            spaceAfter=8,
        ),
        "evidence": ParagraphStyle(
            'Evidence',
            parent=styles['Normal'],
            fontName='Times-Roman',
            fontSize=10,
            textColor=colors.HexColor('#566573'),
            leading=14,
            leftIndent=14,
            spaceAfter=3,
        ),
    }


def _build_time_table(session: Dict[str, Any]) -> Table:
    data = [
        ['Category', 'Duration'],
        ['Total', _format_minutes(session.get("total_minutes", 0.0))],
        ['Active', _format_minutes(session.get("active_minutes", 0.0))],
        ['Paused', _format_minutes(session.get("paused_minutes", 0.0))],
    ]
    table = Table(data, colWidths=[3.2 * inch, 2.6 * inch])
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#34495E')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTNAME', (0, 0), (-1, 0), 'Times-Bold'),
        ('FONTNAME', (0, 1), (-1, -1), 'Times-Roman'),
        ('FONTSIZE', (0, 0), (-1, -1), 12),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#F4F8FB')]),
        ('TEXTCOLOR', (0, 3), (-1, 3), colors.HexColor('#7F8C8D')),
        ('LINEBELOW', (0, 0), (-1, -1), 0.5, colors.HexColor('#A8C0D4')),
        ('TOPPADDING', (0, 0), (-1, -1), 8),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 8),
        ('LEFTPADDING', (0, 0), (-1, -1), 10),
    ]))
    return table


def _build_pattern(pattern: ReportPattern, styles: Dict[str, ParagraphStyle]) -> KeepTogether:
    color = PATTERN_TYPE_COLORS.get(pattern.type, "#7F8C8D")
    label = CONFIDENCE_LABELS.get(pattern.confidence, pattern.confidence)
    flowables: List[Any] = [
        Paragraph(escape(pattern.name), styles["pattern_name"]),
        Paragraph(
            f'<font color="{color}"><b>{escape(pattern.type.capitalize())}</b></font>'
            f' &middot; <i>{escape(label)}</i>',
            styles["body"],
        ),
        Paragraph(escape(pattern.description), styles["body"]),
    ]
    for item in pattern.evidence:
        when = item.start_time if not item.end_time else f"{item.start_time} to {item.end_time}"
        flowables.append(Paragraph(
            f"&bull; [{escape(item.type)}] {escape(item.description)} <i>({escape(when)})</i>",
            styles["evidence"],
        ))
    return KeepTogether(flowables)


def generate_report_pdf(
    report_data: Dict[str, Any],
    session_id: str,
    output_dir: Optional[Path] = None,
) -> Path:
    """
    Render a ready report to PDF.

    Args:
        report_data: Result of ReportService.get_report() with status "ready".
        session_id: Session the report belongs to (used for the file name).
        output_dir: Output directory (defaults to config.REPORTS_DIR).

    Returns:
        Path to the generated PDF file.

    Raises:
        ValueError: If the report is not ready.
    """
    if report_data.get("status") != config.REPORT_READY:
        raise ValueError(f"Report is not ready (status: {report_data.get('status')})")

    report: ParsedReport = report_data["report"]
    session: Dict[str, Any] = report_data["session"]

    output_dir = Path(output_dir) if output_dir is not None else config.REPORTS_DIR
    output_dir.mkdir(parents=True, exist_ok=True)

    filepath = output_dir / f"{_safe_filename(session.get('name', ''))} {session_id[:8]}.pdf"

    doc = SimpleDocTemplate(
        str(filepath),
        pagesize=letter,
        rightMargin=60,
        leftMargin=60,
        topMargin=45,
        bottomMargin=60,
        title=f"Unblurry Report - {session.get('name', '')}",
    )
    styles = _build_styles()

    story: List[Any] = [
        Paragraph(escape(session.get("name") or "Session Report"), styles["title"]),
        Paragraph(f"Intent: {escape(session.get('intent', ''))}", styles["subtitle"]),
        Paragraph("Time", styles["heading"]),
        _build_time_table(session),
        Paragraph("Verdict", styles["heading"]),
        Paragraph(escape(report.verdict), styles["body"]),
    ]

    story.append(Paragraph("Patterns", styles["heading"]))
    if report.patterns:
        for pattern in report.patterns:
            story.append(_build_pattern(pattern, styles))
    else:
        story.append(Paragraph("No clear patterns in this session.", styles["body"]))

    story.append(Paragraph("Suggestions", styles["heading"]))
    if report.suggestions:
        for suggestion in report.suggestions:
            addresses = f" <i>({escape(suggestion.addresses_pattern)})</i>" if suggestion.addresses_pattern else ""
            story.append(Paragraph(f"&bull; {escape(suggestion.text)}{addresses}", styles["body"]))
    else:
        story.append(Paragraph("No suggestions for this session.", styles["body"]))

    story.append(Spacer(1, 0.3 * inch))

    doc.build(story, onFirstPage=_add_gradient_background, onLaterPages=_add_gradient_background)
    logger.info(f"Report PDF written to {filepath}")
    return filepath
