from uuid import uuid4
import logging

from celery.result import AsyncResult
from fastapi import APIRouter, Depends, HTTPException, Response, Security
from fastapi.security.api_key import APIKeyHeader

from ..core.celery_app import celery_app
from ..core.config import get_settings
from ..schemas.api import ReportJobOut, ReportRequest
from ..schemas.report import ComprehensiveReport
from ..services.export import render_report_pdf, report_filename
from ..services.progress import ProgressTracker
from ..services.sections import SECTION_DEFINITIONS

router = APIRouter(tags=["reports"])

settings = get_settings()
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
logger = logging.getLogger(__name__)

REPORT_TASK_NAME = "screener.services.orchestrator.run_report_job"
GENERIC_FAILURE_MESSAGE = "An unexpected error occurred. Please try again."

_RUNNING_STATES = {"STARTED", "PROGRESS", "RETRY"}


def verify_api_key(api_key: str | None = Security(api_key_header)) -> None:
    """
    Simple header-based API key authentication.

    - In dev, if API_AUTH_KEY is not set, auth is skipped.
    - Otherwise, require X-API-Key == API_AUTH_KEY.
    """
    expected = settings.API_AUTH_KEY

    # In dev with no configured key, skip auth for convenience
    if settings.ENV == "dev" and not expected:
        return

    if not expected:
        # In non-dev environments, missing config is treated as misconfiguration
        raise HTTPException(status_code=401, detail="API key not configured")

    if api_key != expected:
        raise HTTPException(status_code=401, detail="Invalid API key")


def _get_job_result(job_id: str) -> AsyncResult:
    return celery_app.AsyncResult(job_id)


def _initial_progress() -> list[dict]:
    return ProgressTracker(SECTION_DEFINITIONS).snapshot()


def _job_view(job_id: str, result: AsyncResult) -> ReportJobOut:
    state = result.state

    if state == "SUCCESS":
        payload = result.result or {}
        return ReportJobOut(
            job_id=job_id,
            status="complete",
            progress=payload.get("progress") or [],
            report=payload.get("report"),
            llm_usage=payload.get("llm_usage"),
        )

    if state in _RUNNING_STATES:
        info = result.info if isinstance(result.info, dict) else {}
        return ReportJobOut(
            job_id=job_id,
            status="running",
            progress=info.get("progress") or _initial_progress(),
        )

    if state in {"FAILURE", "REVOKED"}:
        # The worker has already logged the traceback; never leak it to the client
        return ReportJobOut(job_id=job_id, status="failed", error=GENERIC_FAILURE_MESSAGE)

    # PENDING: queued, or an id the backend has never seen (expired results too)
    return ReportJobOut(job_id=job_id, status="pending", progress=_initial_progress())


@router.post("/reports", response_model=ReportJobOut, status_code=202)
def create_report_job(
    payload: ReportRequest,
    _: None = Depends(verify_api_key),
):
    # Correlation ID so the job can be traced end-to-end
    request_id = str(uuid4())

    task = celery_app.send_task(
        REPORT_TASK_NAME,
        args=[payload.company.model_dump(), request_id],
        queue="reports",
    )

    logger.info(
        "Report job queued",
        extra={
            "job_id": task.id,
            "request_id": request_id,
            "step": "job_created",
        },
    )

    return ReportJobOut(job_id=task.id, status="pending", progress=_initial_progress())


@router.get("/reports/{job_id}", response_model=ReportJobOut)
def get_report_job(
    job_id: str,
    _: None = Depends(verify_api_key),
):
    return _job_view(job_id, _get_job_result(job_id))


@router.get("/reports/{job_id}/pdf")
def download_report_pdf(
    job_id: str,
    _: None = Depends(verify_api_key),
):
    result = _get_job_result(job_id)
    if result.state != "SUCCESS":
        raise HTTPException(status_code=409, detail="Report is not ready yet.")

    payload = result.result or {}
    if not payload.get("report"):
        raise HTTPException(status_code=404, detail="Report not found")

    report = ComprehensiveReport.model_validate(payload["report"])
    try:
        content = render_report_pdf(report)
    except Exception as e:
        logger.exception(
            "PDF export failed for job %s: %s", job_id, e,
            extra={"job_id": job_id, "step": "export"},
        )
        raise HTTPException(status_code=500, detail="Failed to generate the PDF. Please try again.")

    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{report_filename(report)}"'},
    )
