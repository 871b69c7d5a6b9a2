from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from ..core.celery_app import celery_app
from ..schemas.report import Company, ComprehensiveReport
from .assembler import assemble_report
from .generator import GroundedCall, generate_section
from .llm_costs import LLMCostTracker
from .progress import ProgressCallback, ProgressStatus, ProgressTracker
from .sections import SECTION_DEFINITIONS, company_identifier

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def generate_comprehensive_report(
    company: Company,
    *,
    on_progress: Optional[ProgressCallback] = None,
    call: Optional[GroundedCall] = None,
    cost_tracker: Optional[LLMCostTracker] = None,
    max_attempts: Optional[int] = None,
    backoff_seconds: Optional[float] = None,
    request_id: Optional[str] = None,
) -> ComprehensiveReport:
    """
    Generate every report section concurrently and assemble the result.

    All sections are marked pending up front, then issued at once; the
    report is assembled only after every section has settled (generated or
    fallen back). Section failures never abort the report.
    """
    identifier = company_identifier(company)

    if on_progress is not None:
        for definition in SECTION_DEFINITIONS:
            on_progress(definition.key, ProgressStatus.PENDING)

    logger.info(
        "Generating report for '%s' (%s sections)",
        identifier,
        len(SECTION_DEFINITIONS),
        extra={"request_id": request_id, "step": "fan_out"},
    )

    results = await asyncio.gather(
        *(
            generate_section(
                definition,
                identifier,
                call=call,
                on_progress=on_progress,
                max_attempts=max_attempts,
                backoff_seconds=backoff_seconds,
                request_id=request_id,
            )
            for definition in SECTION_DEFINITIONS
        )
    )

    if cost_tracker is not None:
        for result in results:
            cost_tracker.add_usage(result.key, result.usage)

    failed = [r.key for r in results if r.fell_back]
    if failed:
        logger.warning(
            "%s of %s sections fell back to defaults: %s",
            len(failed),
            len(results),
            ", ".join(failed),
            extra={"request_id": request_id, "step": "assemble"},
        )

    return assemble_report(company, results)


def _run_sync(make_coro: Callable[[], Awaitable[T]]) -> T:
    # Celery workers are synchronous; give each job its own event loop.
    # A coroutine can only be awaited once, so each attempt builds a fresh one.
    try:
        return asyncio.run(make_coro())
    except RuntimeError as e:
        if "asyncio.run() cannot be called from a running event loop" not in str(e):
            raise
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            return loop.run_until_complete(make_coro())
        finally:
            loop.close()


@celery_app.task(name="screener.services.orchestrator.run_report_job", bind=True, queue="reports")
def run_report_job(self, company_payload: Dict[str, Any], request_id: str | None = None) -> Dict[str, Any]:
    job_id = self.request.id
    company = Company.model_validate(company_payload)
    log_extra = {"job_id": job_id, "request_id": request_id}

    def _publish(snapshot: list[dict]) -> None:
        self.update_state(state="PROGRESS", meta={"progress": snapshot})

    progress = ProgressTracker(SECTION_DEFINITIONS, on_change=_publish)
    tracker = LLMCostTracker(job_id=job_id)

    logger.info("Starting report job", extra={**log_extra, "step": "start"})
    try:
        report = _run_sync(
            lambda: generate_comprehensive_report(
                company,
                on_progress=progress.update,
                cost_tracker=tracker,
                request_id=request_id,
            )
        )
    except Exception:
        logger.exception("Report job failed", extra={**log_extra, "step": "failed"})
        raise

    usage = tracker.summarize()
    logger.info(
        "Report job completed",
        extra={**log_extra, "step": "completed"},
    )
    return {
        "report": report.model_dump(mode="json"),
        "progress": progress.snapshot(),
        "llm_usage": usage,
    }
