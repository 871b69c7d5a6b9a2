from celery import Celery

from .config import get_settings
from .logging import configure_logging

settings = get_settings()
configure_logging()

celery_app = Celery(
    "kyc_screener",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

celery_app.conf.update(
    task_routes={"screener.services.orchestrator.run_report_job": {"queue": "reports"}},
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # Reports are ephemeral: a finished report is only kept long enough
    # for the browser to render and export it.
    result_expires=settings.REPORT_RESULT_TTL_SECONDS,
    # Needed so PENDING (unknown id) can be told apart from STARTED
    task_track_started=True,
    imports=("screener.services.orchestrator",),
)
