from __future__ import annotations

import copy
import json
import re
from dataclasses import dataclass
from typing import Any, Optional

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)\n?\s*```", re.DOTALL)


@dataclass(frozen=True)
class ParseResult:
    """
    Outcome of parsing model output.

    `ok` is True when `value` came from the text; otherwise `value` is a copy
    of the fallback and `error` says why.
    """

    ok: bool
    value: Any
    error: Optional[str] = None


def strip_markdown_fences(text: str) -> str:
    """Return the body of the first fenced code block, or the text unchanged."""
    match = _FENCE_RE.search(text or "")
    if match:
        return match.group(1).strip()
    return (text or "").strip()


def _outermost_object(text: str) -> Optional[str]:
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and end > start:
        return text[start : end + 1]
    return None


def parse_json_with_fallback(text: str, default: Any) -> ParseResult:
    """
    Parse JSON out of an LLM reply without ever raising.

    Tries the raw text, then the first markdown-fenced block, then the
    outermost {...} span.
    """
    if not text or not text.strip():
        return ParseResult(ok=False, value=copy.deepcopy(default), error="empty response")

    candidates = [text.strip()]
    fenced = strip_markdown_fences(text)
    if fenced != candidates[0]:
        candidates.append(fenced)
    salvaged = _outermost_object(text)
    if salvaged and salvaged not in candidates:
        candidates.append(salvaged)

    last_error = "no JSON found"
    for candidate in candidates:
        try:
            return ParseResult(ok=True, value=json.loads(candidate))
        except json.JSONDecodeError as e:
            last_error = str(e)

    return ParseResult(ok=False, value=copy.deepcopy(default), error=last_error)
