"""
Tests for the HTTP API - search, preferences and report job routes.
"""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from screener.api import routes_reports, routes_search
from screener.main import app
from screener.schemas.report import Company
from screener.services import preferences
from screener.services.assembler import assemble_report
from screener.services.search import CompanySearchError
from screener.services.sections import SECTION_DEFINITIONS

from tests.fixtures.report_fixtures import ACME
from tests.fixtures.redis_fixtures import FakeRedis


@pytest.fixture
def client(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(preferences, "_get_sync_redis", lambda: fake)
    return TestClient(app)


def _job(state, result=None, info=None):
    return MagicMock(state=state, result=result, info=info)


class TestSearchRoutes:

    def test_search_records_history(self, client):
        companies = [Company(name="Acme Corp", registration_number="123")]
        with patch.object(routes_search, "search_companies", AsyncMock(return_value=companies)):
            response = client.post("/api/search", json={"query": " Acme "})

        assert response.status_code == 200
        body = response.json()
        assert body["query"] == "Acme"
        assert body["companies"][0]["registration_number"] == "123"

        history = client.get("/api/history").json()
        assert history == {"history": ["Acme"]}

    def test_blank_query_returns_no_companies(self, client):
        search = AsyncMock()
        with patch.object(routes_search, "search_companies", search):
            response = client.post("/api/search", json={"query": "   "})

        assert response.status_code == 200
        assert response.json()["companies"] == []
        search.assert_not_called()
        assert client.get("/api/history").json() == {"history": []}

    def test_search_failure_is_502(self, client):
        with patch.object(
            routes_search, "search_companies", AsyncMock(side_effect=CompanySearchError())
        ):
            response = client.post("/api/search", json={"query": "Acme"})

        assert response.status_code == 502
        assert response.json()["detail"].startswith("Failed to search for companies.")
        assert client.get("/api/history").json() == {"history": []}

    def test_history_is_per_client(self, client):
        with patch.object(routes_search, "search_companies", AsyncMock(return_value=[])):
            client.post("/api/search", json={"query": "Acme"}, headers={"X-Client-Id": "a"})

        assert client.get("/api/history", headers={"X-Client-Id": "a"}).json()["history"] == ["Acme"]
        assert client.get("/api/history", headers={"X-Client-Id": "b"}).json()["history"] == []

    def test_clear_history(self, client):
        preferences.add_to_history("Acme")
        assert client.delete("/api/history").json() == {"history": []}
        assert client.get("/api/history").json() == {"history": []}

    def test_theme(self, client):
        assert client.get("/api/preferences/theme").json() == {"theme": "light"}
        assert client.put("/api/preferences/theme", json={"theme": "dark"}).json() == {"theme": "dark"}
        assert client.get("/api/preferences/theme").json() == {"theme": "dark"}
        assert client.put("/api/preferences/theme", json={"theme": "sepia"}).status_code == 422


class TestReportRoutes:

    def test_create_report_job(self, client):
        with patch.object(routes_reports.celery_app, "send_task", return_value=MagicMock(id="job-1")) as send:
            response = client.post("/api/reports", json={"company": {"name": "Acme Ltd"}})

        assert response.status_code == 202
        body = response.json()
        assert body["job_id"] == "job-1"
        assert body["status"] == "pending"
        assert len(body["progress"]) == len(SECTION_DEFINITIONS)

        args, kwargs = send.call_args
        assert args[0] == routes_reports.REPORT_TASK_NAME
        assert kwargs["args"][0]["name"] == "Acme Ltd"
        assert kwargs["queue"] == "reports"

    def test_company_name_is_required(self, client):
        response = client.post("/api/reports", json={"company": {}})
        assert response.status_code == 422

    def test_running_job_reports_progress(self, client):
        progress = [
            {"key": d.key, "label": d.label, "status": "complete" if i == 0 else "pending"}
            for i, d in enumerate(SECTION_DEFINITIONS)
        ]
        job = _job("PROGRESS", info={"progress": progress})
        with patch.object(routes_reports, "_get_job_result", return_value=job):
            body = client.get("/api/reports/job-1").json()

        assert body["status"] == "running"
        assert body["progress"][0]["status"] == "complete"
        assert body["report"] is None

    def test_completed_job_returns_report(self, client):
        report = assemble_report(ACME, {})
        job = _job("SUCCESS", result={"report": report.model_dump(mode="json"), "progress": []})
        with patch.object(routes_reports, "_get_job_result", return_value=job):
            body = client.get("/api/reports/job-1").json()

        assert body["status"] == "complete"
        assert body["report"]["company_summary"]["name"] == "Acme Ltd"
        assert body["report"]["aml_risk_assessment"]["risk_level"] == "Unknown"

    def test_failed_job_hides_details(self, client):
        job = _job("FAILURE", result=RuntimeError("secret stack detail"))
        with patch.object(routes_reports, "_get_job_result", return_value=job):
            body = client.get("/api/reports/job-1").json()

        assert body["status"] == "failed"
        assert body["error"] == "An unexpected error occurred. Please try again."

    def test_unknown_job_is_pending(self, client):
        with patch.object(routes_reports, "_get_job_result", return_value=_job("PENDING")):
            body = client.get("/api/reports/nope").json()
        assert body["status"] == "pending"

    def test_pdf_not_ready(self, client):
        with patch.object(routes_reports, "_get_job_result", return_value=_job("PROGRESS", info={})):
            response = client.get("/api/reports/job-1/pdf")
        assert response.status_code == 409

    def test_pdf_download(self, client):
        report = assemble_report(Company(name="Acme Ltd."), {})
        job = _job("SUCCESS", result={"report": report.model_dump(mode="json")})
        with patch.object(routes_reports, "_get_job_result", return_value=job):
            response = client.get("/api/reports/job-1/pdf")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert 'filename="KYC-Report-Acme_Ltd_.pdf"' in response.headers["content-disposition"]
        assert response.content.startswith(b"%PDF")


class TestApiKey:

    def test_wrong_key_rejected_when_configured(self, client, monkeypatch):
        monkeypatch.setattr(routes_reports.settings, "API_AUTH_KEY", "secret")
        assert client.get("/api/history").status_code == 401
        assert client.get("/api/history", headers={"X-API-Key": "secret"}).status_code == 200
