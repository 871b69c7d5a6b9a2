# backend/screener/services/export.py

from __future__ import annotations

import io
import re
from datetime import date
from typing import Iterable, List, Optional, Sequence
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas as pdf_canvas
from reportlab.platypus import (
    PageBreak,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from ..schemas.report import ComprehensiveReport, ReportSource

BRAND = "KYC Business Screener"
HEADER_COLOR = colors.HexColor("#4f46e5")
MUTED_COLOR = colors.HexColor("#6b7280")
GRID_COLOR = colors.HexColor("#d1d5db")
ZEBRA_COLOR = colors.HexColor("#f3f4f6")

PAGE_MARGIN = 18 * mm

_styles = getSampleStyleSheet()
STYLES = {
    "cover_title": ParagraphStyle(
        "CoverTitle", parent=_styles["Title"], fontSize=28, leading=34, alignment=TA_CENTER
    ),
    "cover_company": ParagraphStyle(
        "CoverCompany", parent=_styles["Heading1"], fontSize=20, leading=26, alignment=TA_CENTER,
        textColor=HEADER_COLOR,
    ),
    "cover_meta": ParagraphStyle(
        "CoverMeta", parent=_styles["Normal"], fontSize=11, alignment=TA_CENTER, textColor=MUTED_COLOR
    ),
    "title": ParagraphStyle("ReportTitle", parent=_styles["Title"], fontSize=20, leading=24),
    "h2": ParagraphStyle(
        "H2", parent=_styles["Heading2"], textColor=HEADER_COLOR, spaceBefore=12, spaceAfter=6
    ),
    "h4": ParagraphStyle("H4", parent=_styles["Heading4"], spaceBefore=6, spaceAfter=3),
    "body": ParagraphStyle("Body", parent=_styles["BodyText"], fontSize=10, leading=14),
    "bullet": ParagraphStyle(
        "Bullet", parent=_styles["BodyText"], fontSize=10, leading=14, leftIndent=12, bulletIndent=2
    ),
    "muted": ParagraphStyle(
        "Muted", parent=_styles["BodyText"], fontSize=10, leading=14, textColor=MUTED_COLOR
    ),
    "cell": ParagraphStyle("Cell", parent=_styles["BodyText"], fontSize=8.5, leading=11),
    "cell_header": ParagraphStyle(
        "CellHeader", parent=_styles["BodyText"], fontSize=8.5, leading=11,
        textColor=colors.white, fontName="Helvetica-Bold",
    ),
}


def _esc(value) -> str:
    """Escape dynamic text for ReportLab paragraph markup, attribute values included."""
    text = "" if value is None else str(value)
    return escape(text, {'"': "&quot;"})


def report_filename(report: ComprehensiveReport) -> str:
    name = re.sub(r"[\s.]+", "_", report.company_summary.name.strip())
    return f"KYC-Report-{name}.pdf"


class _NumberedCanvas(pdf_canvas.Canvas):
    """
    Two-pass canvas: pages are buffered so the footer can show the total
    page count. The cover (page 1) gets no header or footer.
    """

    def __init__(self, *args, company_name: str = "", generated_on: str = "", **kwargs):
        super().__init__(*args, **kwargs)
        self._saved_pages: List[dict] = []
        self._company_name = company_name
        self._generated_on = generated_on

    def showPage(self):
        self._saved_pages.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total = len(self._saved_pages)
        for state in self._saved_pages:
            self.__dict__.update(state)
            if self._pageNumber > 1:
                self._draw_chrome(total)
            super().showPage()
        super().save()

    def _draw_chrome(self, total: int) -> None:
        width, height = self._pagesize
        self.saveState()
        self.setFont("Helvetica", 8)
        self.setFillColor(MUTED_COLOR)
        self.drawString(PAGE_MARGIN, height - 12 * mm, f"{BRAND} | {self._company_name}")
        self.setStrokeColor(GRID_COLOR)
        self.line(PAGE_MARGIN, height - 13.5 * mm, width - PAGE_MARGIN, height - 13.5 * mm)
        self.drawString(PAGE_MARGIN, 10 * mm, self._generated_on)
        self.drawRightString(width - PAGE_MARGIN, 10 * mm, f"Page {self._pageNumber} of {total}")
        self.restoreState()


def _canvas_factory(company_name: str, generated_on: str):
    def _make(*args, **kwargs):
        return _NumberedCanvas(*args, company_name=company_name, generated_on=generated_on, **kwargs)

    return _make


def _heading(text: str, level: str = "h2") -> Paragraph:
    return Paragraph(_esc(text), STYLES[level])


def _text(text) -> Paragraph:
    return Paragraph(_esc(text).replace("\n", "<br/>"), STYLES["body"])


def _key_value(label: str, value) -> Paragraph:
    return Paragraph(f"<b>{_esc(label)}:</b> {_esc(value)}", STYLES["body"])


def _bullets(items: Sequence[str], empty_message: str) -> List:
    if not items:
        return [Paragraph(_esc(empty_message), STYLES["muted"])]
    return [Paragraph(_esc(item), STYLES["bullet"], bulletText="•") for item in items]


def _table(headers: Sequence[str], rows: Iterable[Sequence], col_widths: Sequence[float]) -> Table:
    data = [[Paragraph(_esc(h), STYLES["cell_header"]) for h in headers]]
    data += [[Paragraph(_esc(cell), STYLES["cell"]) for cell in row] for row in rows]
    table = Table(data, colWidths=list(col_widths), repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), HEADER_COLOR),
                ("GRID", (0, 0), (-1, -1), 0.5, GRID_COLOR),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, ZEBRA_COLOR]),
                ("TOPPADDING", (0, 0), (-1, -1), 4),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
            ]
        )
    )
    return table


def _table_or_message(
    headers: Sequence[str],
    rows: List[Sequence],
    col_widths: Sequence[float],
    empty_message: str,
) -> List:
    if not rows:
        return [Paragraph(_esc(empty_message), STYLES["muted"])]
    return [_table(headers, rows, col_widths), Spacer(1, 4)]


def _cover(report: ComprehensiveReport, generated_on: str) -> List:
    return [
        Spacer(1, 70 * mm),
        Paragraph("Business Due Diligence Report", STYLES["cover_title"]),
        Spacer(1, 10 * mm),
        Paragraph(_esc(report.company_summary.name), STYLES["cover_company"]),
        Spacer(1, 8 * mm),
        Paragraph(f"Generated on {_esc(generated_on)}", STYLES["cover_meta"]),
        Paragraph(f"Prepared with {BRAND}", STYLES["cover_meta"]),
        PageBreak(),
    ]


def _sources(sources: Sequence[ReportSource], empty_message: str) -> List:
    if not sources:
        return [Paragraph(_esc(empty_message), STYLES["muted"])]
    flow = []
    for source in sources:
        link = f'<link href="{_esc(source.uri)}" color="blue">{_esc(source.uri)}</link>'
        flow.append(
            Paragraph(f"{_esc(source.title)}<br/>{link}", STYLES["bullet"], bulletText="•")
        )
    return flow


def build_story(report: ComprehensiveReport, *, content_width: float, generated_on: str) -> List:
    w = content_width
    company = report.company_summary
    story: List = _cover(report, generated_on)

    story.append(Paragraph(f"Due Diligence Report: {_esc(company.name)}", STYLES["title"]))

    summary = report.executive_summary
    story += [
        _heading("Executive Summary"),
        _key_value("Overall risk", summary.overall_risk),
        _text(summary.summary),
        _heading("Key findings", "h4"),
        *_bullets(summary.key_findings, "No key findings reported."),
    ]

    go = report.go_no_go_assessment
    story += [
        _heading("Go / No-Go Assessment"),
        _key_value("Recommendation", go.recommendation),
        _text(go.justification),
    ]

    story += [
        _heading("Company Summary"),
        _key_value("Name", company.name),
        _key_value("Registration number", company.registration_number or "N/A"),
        _key_value("Address", company.address or "N/A"),
        _key_value("Website", company.website or "N/A"),
        _text(company.overview),
    ]

    story.append(_heading("Key Personnel"))
    story += _table_or_message(
        ["Name", "Title", "Bio"],
        [[p.name, p.title, p.bio] for p in report.key_personnel],
        [0.22 * w, 0.22 * w, 0.56 * w],
        "No key personnel identified.",
    )

    story.append(_heading("Financial Health Analysis"))
    story += _table_or_message(
        ["Metric", "Value"],
        [[k, v] for k, v in report.financial_health_analysis.items()],
        [0.45 * w, 0.55 * w],
        "No financial data available.",
    )

    story += [
        _heading("Market Presence"),
        _text(report.market_presence),
        _heading("Products and Services"),
        _text(report.products_and_services),
    ]

    swot = report.strategic_analysis
    story.append(_heading("Strategic Analysis (SWOT)"))
    for title, items in (
        ("Strengths", swot.strengths),
        ("Weaknesses", swot.weaknesses),
        ("Opportunities", swot.opportunities),
        ("Threats", swot.threats),
    ):
        story.append(_heading(title, "h4"))
        story += _bullets(items, f"No {title.lower()} identified.")

    aml = report.aml_risk_assessment
    story += [
        _heading("AML Risk Assessment"),
        _key_value("Risk level", aml.risk_level),
        _text(aml.summary),
        _heading("Red flags", "h4"),
        *_bullets(aml.red_flags, "No red flags found."),
    ]
    if aml.detailed_breakdown is not None:
        breakdown = aml.detailed_breakdown
        story += [
            _heading("Jurisdiction risk", "h4"),
            _key_value("Risk level", breakdown.jurisdiction_risk.risk_level),
            _text(breakdown.jurisdiction_risk.summary),
            _heading("Industry risk", "h4"),
            _key_value("Risk level", breakdown.industry_risk.risk_level),
            _text(breakdown.industry_risk.summary),
            _heading("Sanctions screening", "h4"),
            _key_value("Risk level", breakdown.sanctions_matches.risk_level),
            _text(breakdown.sanctions_matches.summary),
        ]
        story += _table_or_message(
            ["Name", "List", "Details"],
            [[m.name, m.list_name, m.details] for m in breakdown.sanctions_matches.matches],
            [0.25 * w, 0.25 * w, 0.5 * w],
            "No sanctions matches found.",
        )
    story += [
        _heading("Crime typologies", "h4"),
        *_bullets(aml.crime_typologies, "No crime typologies identified."),
        _heading("Mitigation strategies", "h4"),
        *_bullets(aml.mitigation_strategies, "No mitigation strategies suggested."),
    ]

    pep = report.pep_screening
    story += [
        _heading("PEP Screening"),
        _key_value("PEP involvement", "Yes" if pep.is_pep_involved else "No"),
    ]
    story += _table_or_message(
        ["Name", "Title", "Reason", "Relationship"],
        [[d.name, d.title, d.reason, d.relationship or "N/A"] for d in pep.details],
        [0.2 * w, 0.2 * w, 0.35 * w, 0.25 * w],
        "No politically exposed persons found.",
    )

    ownership = report.beneficial_ownership
    story += [_heading("Beneficial Ownership"), _text(ownership.summary)]
    story += _table_or_message(
        ["Name", "Ownership", "Nationality"],
        [[u.name, u.ownership_percentage or "N/A", u.nationality or "N/A"] for u in ownership.ubos],
        [0.45 * w, 0.25 * w, 0.3 * w],
        "No ultimate beneficial owners identified.",
    )

    compliance = report.regulatory_compliance
    story += [
        _heading("Regulatory Compliance"),
        _text(compliance.summary),
        _heading("Legal issues", "h4"),
        *_bullets(compliance.legal_issues, "No legal issues found."),
        _heading("Regulatory actions", "h4"),
        *_bullets(compliance.regulatory_actions, "No regulatory actions found."),
    ]

    reputation = report.reputational_risk
    story += [
        _heading("Reputational Risk"),
        _key_value("Sentiment", reputation.sentiment),
        _text(reputation.summary),
        _heading("Key mentions", "h4"),
        *_bullets(reputation.key_mentions, "No key mentions found."),
    ]

    social = report.social_media_presence
    story += [_heading("Social Media Presence"), _text(social.summary)]
    story += _table_or_message(
        ["Platform", "URL", "Summary"],
        [[p.platform, p.url, p.summary] for p in social.profiles],
        [0.18 * w, 0.37 * w, 0.45 * w],
        "No social media profiles found.",
    )

    story.append(_heading("Certifications"))
    story += _table_or_message(
        ["Name", "Issuing body", "Description"],
        [[c.name, c.issuing_body, c.description] for c in report.certifications],
        [0.25 * w, 0.25 * w, 0.5 * w],
        "No certifications found.",
    )

    dd = report.due_diligence_report
    verification = dd.verification_summary
    story += [
        _heading("Due Diligence Verification"),
        _key_value("Registered name", verification.company_name or company.name),
        _key_value("Legal status", verification.legal_status),
        _key_value("Registration details", verification.registration_details),
        _key_value("Regulatory oversight", verification.regulatory_oversight),
        _key_value("Existence confirmed", "Yes" if verification.existence_confirmed else "No"),
        _heading("Risk consolidation", "h4"),
        _text(dd.risk_consolidation),
        _heading("Final recommendation", "h4"),
        _text(dd.final_recommendation),
    ]

    story += [
        _heading("Sources"),
        _heading("Web sources", "h4"),
        *_sources(report.sources.web, "No web sources cited."),
        _heading("Map sources", "h4"),
        *_sources(report.sources.maps, "No map sources cited."),
    ]
    return story


def render_report_pdf(report: ComprehensiveReport, *, generated_on: Optional[date] = None) -> bytes:
    """Render the report as a paginated A4 PDF and return the file bytes."""
    generated = (generated_on or date.today()).strftime("%d %B %Y")
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=PAGE_MARGIN,
        rightMargin=PAGE_MARGIN,
        topMargin=PAGE_MARGIN + 6 * mm,
        bottomMargin=PAGE_MARGIN,
        title=f"Due Diligence Report: {report.company_summary.name}",
        author=BRAND,
    )
    story = build_story(report, content_width=doc.width, generated_on=generated)
    doc.build(story, canvasmaker=_canvas_factory(report.company_summary.name, generated))
    return buffer.getvalue()
