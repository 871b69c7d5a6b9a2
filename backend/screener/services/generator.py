# backend/screener/services/generator.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from ..core.config import get_settings
from ..schemas.report import ReportSources
from .grounding import GroundedResponse, generate_grounded
from .parsing import parse_json_with_fallback
from .progress import ProgressCallback, ProgressStatus
from .sections import SectionDefinition, thaw

logger = logging.getLogger(__name__)
settings = get_settings()

GroundedCall = Callable[[str], Awaitable[GroundedResponse]]


@dataclass
class SectionResult:
    key: str
    data: Any
    status: ProgressStatus
    sources: ReportSources = field(default_factory=ReportSources)
    usage: Dict[str, Any] = field(default_factory=dict)
    attempts: int = 0
    fell_back: bool = False


def _log_retry(retry_state: RetryCallState) -> None:
    section = retry_state.kwargs.get("section") if retry_state.kwargs else None
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Section request failed (attempt %s), retrying in %.1fs: %s",
        retry_state.attempt_number,
        retry_state.next_action.sleep if retry_state.next_action else 0.0,
        exc,
        extra={"section": section, "attempt": retry_state.attempt_number},
    )


def _notify(on_progress: Optional[ProgressCallback], key: str, status: ProgressStatus) -> None:
    if on_progress is None:
        return
    try:
        on_progress(key, status)
    except Exception:
        # A broken progress sink must not lose the section result
        logger.exception("Progress callback failed", extra={"section": key})


async def generate_section(
    definition: SectionDefinition,
    company_identifier: str,
    *,
    call: Optional[GroundedCall] = None,
    on_progress: Optional[ProgressCallback] = None,
    max_attempts: Optional[int] = None,
    backoff_seconds: Optional[float] = None,
    request_id: Optional[str] = None,
) -> SectionResult:
    """
    Generate one report section.

    Transport/model errors are retried with linearly increasing waits
    (backoff, 2*backoff, ...) up to `max_attempts`; after that the section
    falls back to its default. Unparsable JSON falls back immediately.
    Exactly one terminal status (complete or error) is reported through
    `on_progress`. Never raises for LLM failures.
    """
    call = call or generate_grounded
    attempts_allowed = max(1, max_attempts or settings.SECTION_MAX_ATTEMPTS)
    backoff = settings.SECTION_RETRY_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
    prompt = definition.render(company_identifier)
    log_extra = {"section": definition.key, "request_id": request_id}

    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts_allowed),
        wait=wait_incrementing(start=backoff, increment=backoff),
        retry=retry_if_exception_type(Exception),
        before_sleep=_log_retry,
        reraise=True,
    )

    async def _attempt(section: str) -> GroundedResponse:
        return await call(prompt)

    try:
        response: GroundedResponse = await retrying(_attempt, section=definition.key)
    except Exception as e:
        attempts = retrying.statistics.get("attempt_number", attempts_allowed)
        logger.warning(
            "Section '%s' failed after %s attempts, using default: %s",
            definition.key,
            attempts,
            e,
            extra=log_extra,
        )
        _notify(on_progress, definition.key, ProgressStatus.ERROR)
        return SectionResult(
            key=definition.key,
            data=thaw(definition.default),
            status=ProgressStatus.ERROR,
            attempts=attempts,
            fell_back=True,
        )

    attempts = retrying.statistics.get("attempt_number", 1)

    if definition.expects_json or not response.text:
        parsed = parse_json_with_fallback(response.text, thaw(definition.default))
        if not parsed.ok:
            logger.warning(
                "Section '%s' returned malformed JSON, using default: %s",
                definition.key,
                parsed.error,
                extra=log_extra,
            )
            _notify(on_progress, definition.key, ProgressStatus.ERROR)
            return SectionResult(
                key=definition.key,
                data=parsed.value,
                status=ProgressStatus.ERROR,
                sources=response.sources,
                usage=response.usage,
                attempts=attempts,
                fell_back=True,
            )
        data = parsed.value
    else:
        data = {"text": response.text}

    logger.info(
        "Section '%s' generated",
        definition.key,
        extra={**log_extra, "attempt": attempts},
    )
    _notify(on_progress, definition.key, ProgressStatus.COMPLETE)
    return SectionResult(
        key=definition.key,
        data=data,
        status=ProgressStatus.COMPLETE,
        sources=response.sources,
        usage=response.usage,
        attempts=attempts,
    )
