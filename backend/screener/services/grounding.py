# backend/screener/services/grounding.py

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from .llm import create_response
from ..core.config import get_settings
from ..schemas.report import ReportSource, ReportSources

logger = logging.getLogger(__name__)
settings = get_settings()

# (host suffix, required path prefix) pairs that identify map links
_MAPS_LOCATIONS = (
    ("maps.google.com", ""),
    ("google.com", "/maps"),
    ("maps.app.goo.gl", ""),
    ("goo.gl", "/maps"),
    ("maps.apple.com", ""),
    ("openstreetmap.org", ""),
    ("bing.com", "/maps"),
)


@dataclass
class GroundedResponse:
    """Generated text plus the citations and token usage of one request."""

    text: str
    sources: ReportSources = field(default_factory=ReportSources)
    usage: Dict[str, Any] = field(default_factory=dict)


def _attr(source: Any, key: str) -> Any:
    if source is None:
        return None
    if isinstance(source, dict):
        return source.get(key)
    return getattr(source, key, None)


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def clean_citation_uri(uri: str) -> str:
    """Strip utm_* tracking parameters (the web_search tool adds utm_source=openai)."""
    try:
        parsed = urlparse(uri)
    except ValueError:
        return uri
    if not parsed.query:
        return uri
    query = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if not k.startswith("utm_")]
    return urlunparse(parsed._replace(query=urlencode(query)))


def is_maps_uri(uri: str) -> bool:
    try:
        parsed = urlparse(uri if "://" in uri else "https://" + uri)
    except ValueError:
        return False
    host = (parsed.netloc or "").lower().split(":")[0]
    path = parsed.path or ""
    for suffix, path_prefix in _MAPS_LOCATIONS:
        if (host == suffix or host.endswith("." + suffix)) and path.startswith(path_prefix):
            return True
    return False


def extract_sources(response: Any) -> ReportSources:
    """
    Collect `url_citation` annotations from a Responses API result.

    Map links go to `maps` (titled "Map View" when the annotation has no
    title), everything else to `web` (titled with the URI as fallback).
    """
    web: List[ReportSource] = []
    maps: List[ReportSource] = []

    for item in _attr(response, "output") or []:
        if _attr(item, "type") != "message":
            continue
        for part in _attr(item, "content") or []:
            for annotation in _attr(part, "annotations") or []:
                if _attr(annotation, "type") != "url_citation":
                    continue
                raw_uri = _attr(annotation, "url")
                if not raw_uri:
                    continue
                uri = clean_citation_uri(str(raw_uri))
                title = _attr(annotation, "title")
                if is_maps_uri(uri):
                    maps.append(ReportSource(title=title or "Map View", uri=uri))
                else:
                    web.append(ReportSource(title=title or uri, uri=uri))

    return ReportSources(web=web, maps=maps)


def extract_usage(response: Any, requested_model: str) -> Dict[str, Any]:
    usage_obj = _attr(response, "usage")
    web_search_calls = sum(
        1 for item in (_attr(response, "output") or []) if _attr(item, "type") == "web_search_call"
    )
    return {
        "model": _attr(response, "model") or requested_model,
        "input_tokens": _as_int(_attr(usage_obj, "input_tokens")),
        "output_tokens": _as_int(_attr(usage_obj, "output_tokens")),
        "cached_input_tokens": _as_int(
            _attr(_attr(usage_obj, "input_tokens_details"), "cached_tokens")
        ),
        "reasoning_output_tokens": _as_int(
            _attr(_attr(usage_obj, "output_tokens_details"), "reasoning_tokens")
        ),
        "web_search_calls": web_search_calls,
    }


def extract_text(response: Any) -> str:
    # Prefer the SDK convenience property
    raw_text: Optional[str] = _attr(response, "output_text")
    if raw_text:
        return raw_text

    chunks: List[str] = []
    for item in _attr(response, "output") or []:
        if _attr(item, "type") != "message":
            continue
        for part in _attr(item, "content") or []:
            text = _attr(part, "text")
            if text:
                chunks.append(text)
    return "".join(chunks)


def build_request(
    prompt: str,
    *,
    model: str,
    json_schema: Optional[Dict[str, Any]] = None,
    schema_name: str = "response",
) -> Dict[str, Any]:
    request: Dict[str, Any] = {
        "model": model,
        "tools": [{"type": "web_search"}],
        "tool_choice": "auto",
        "input": prompt,
    }
    if settings.LLM_REASONING_EFFORT:
        request["reasoning"] = {"effort": settings.LLM_REASONING_EFFORT}
    if json_schema is not None:
        request["text"] = {
            "format": {
                "type": "json_schema",
                "name": schema_name,
                "schema": json_schema,
                "strict": False,
            }
        }
    return request


async def generate_grounded(
    prompt: str,
    *,
    model: Optional[str] = None,
    json_schema: Optional[Dict[str, Any]] = None,
    schema_name: str = "response",
) -> GroundedResponse:
    """
    One web-grounded generation request.

    The blocking SDK call runs in a worker thread. Transport and model errors
    propagate; retrying is the caller's job.
    """
    effective_model = model or settings.LLM_MODEL
    request = build_request(
        prompt, model=effective_model, json_schema=json_schema, schema_name=schema_name
    )

    response = await asyncio.to_thread(create_response, **request)

    return GroundedResponse(
        text=extract_text(response).strip(),
        sources=extract_sources(response),
        usage=extract_usage(response, effective_model),
    )
