"""
Tests for export.py - PDF rendering of the assembled report.
"""
import asyncio
from datetime import date

from screener.schemas.report import Company, ReportSource, ReportSources
from screener.services.assembler import assemble_report
from screener.services.export import build_story, render_report_pdf, report_filename
from screener.services.orchestrator import generate_comprehensive_report

from tests.fixtures.report_fixtures import ACME, ACME_REGISTERED, ScriptedLLM, grounded


def _full_report():
    llm = ScriptedLLM(
        ACME_REGISTERED,
        {
            "aml_risk_assessment": [
                grounded(
                    '{"riskLevel": "High", "summary": "Sanctions exposure <via> subsidiary & partner.",'
                    ' "redFlags": ["x"], "detailedBreakdown": {"sanctionsMatches": {"riskLevel": "High",'
                    ' "summary": "One match.", "matches": [{"name": "Acme Trading", "list": "OFAC SDN",'
                    ' "details": "Same address."}]}}}',
                    web=[("OFAC", "https://sanctionssearch.ofac.treas.gov/")],
                    maps=[("Map View", "https://maps.google.com/?cid=1")],
                )
            ]
        },
    )
    return asyncio.run(
        generate_comprehensive_report(ACME_REGISTERED, call=llm, backoff_seconds=0)
    )


class TestRenderReportPdf:

    def test_full_report_renders(self):
        content = render_report_pdf(_full_report(), generated_on=date(2024, 5, 1))
        assert content.startswith(b"%PDF")
        assert len(content) > 2000

    def test_default_report_renders(self):
        content = render_report_pdf(assemble_report(ACME, {}))
        assert content.startswith(b"%PDF")

    def test_story_contains_empty_list_messages(self):
        story = build_story(assemble_report(ACME, {}), content_width=400, generated_on="1 May 2024")
        texts = [getattr(flowable, "text", "") for flowable in story]
        assert "No red flags found." in texts
        assert "No key personnel identified." in texts
        assert "No web sources cited." in texts


class TestReportFilename:

    def test_spaces_and_dots_are_replaced(self):
        report = assemble_report(Company(name="Acme Holdings Inc."), {})
        assert report_filename(report) == "KYC-Report-Acme_Holdings_Inc_.pdf"


class TestMarkupEscaping:

    def test_quotes_in_citation_uri_render(self):
        report = assemble_report(ACME, {}).model_copy(
            update={
                "sources": ReportSources(
                    web=[ReportSource(title='Acme "quoted" <news>', uri='https://news.example/a?q="acme"&x=1')]
                )
            }
        )
        content = render_report_pdf(report)
        assert content.startswith(b"%PDF")
