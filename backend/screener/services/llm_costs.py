from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..core.config import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelRate:
    input_per_mtok: float
    output_per_mtok: float
    cached_input_per_mtok: Optional[float] = None


def _build_default_pricebook() -> Dict[str, ModelRate]:
    # USD per 1M tokens
    return {
        "gpt-5.1": ModelRate(1.250, 10.000, 0.125),
        "gpt-5": ModelRate(1.250, 10.000, 0.125),
        "gpt-5-mini": ModelRate(0.250, 2.000, 0.025),
        "gpt-4.1": ModelRate(2.000, 8.000, 0.500),
        "gpt-4.1-mini": ModelRate(0.400, 1.600, 0.100),
    }


def _load_pricebook() -> Dict[str, ModelRate]:
    pricebook = _build_default_pricebook()
    override_raw = get_settings().LLM_PRICEBOOK_JSON
    if not override_raw:
        return pricebook

    try:
        override = json.loads(override_raw)
    except json.JSONDecodeError:
        logger.warning("LLM_PRICEBOOK_JSON is not valid JSON; using default prices")
        return pricebook

    if not isinstance(override, dict):
        return pricebook

    for key, value in override.items():
        if not isinstance(value, dict):
            continue
        try:
            cached = value.get("cached_input_per_mtok")
            pricebook[key.strip().lower()] = ModelRate(
                input_per_mtok=float(value["input_per_mtok"]),
                output_per_mtok=float(value["output_per_mtok"]),
                cached_input_per_mtok=float(cached) if cached is not None else None,
            )
        except (KeyError, ValueError, TypeError):
            logger.warning("Skipping malformed pricebook entry for '%s'", key)
            continue
    return pricebook


_PRICEBOOK: Dict[str, ModelRate] = _load_pricebook()


def normalize_model_name(model: str | None) -> str:
    m = (model or "").strip().lower()
    if "/" in m:
        m = m.split("/")[-1]
    if ":" in m:
        m = m.split(":")[0]
    return m


def _rate_for(model: str | None) -> ModelRate | None:
    key = normalize_model_name(model)
    rate = _PRICEBOOK.get(key)
    if rate is None:
        # Dated snapshots, e.g. "gpt-5.1-2025-11-13"
        for name in sorted(_PRICEBOOK, key=len, reverse=True):
            if key.startswith(name + "-"):
                return _PRICEBOOK[name]
    return rate


def cost_for_tokens(
    model: str | None,
    input_tokens: int,
    output_tokens: int,
    cached_input_tokens: int = 0,
) -> float:
    rate = _rate_for(model)
    if not rate:
        return 0.0

    cached_input = max(0, int(cached_input_tokens))
    paid_input = max(0, int(input_tokens) - cached_input)
    output = max(0, int(output_tokens))

    total = (paid_input / 1_000_000) * rate.input_per_mtok
    total += (output / 1_000_000) * rate.output_per_mtok
    if cached_input:
        cached_rate = rate.cached_input_per_mtok or rate.input_per_mtok
        total += (cached_input / 1_000_000) * cached_rate
    return total


def cost_for_web_search_calls(call_count: int) -> float:
    return max(0, int(call_count)) * get_settings().WEB_SEARCH_PER_CALL_USD


class LLMCostTracker:
    """Thread-safe per-report usage ledger, one record per LLM call."""

    def __init__(self, job_id: str | None):
        self.job_id = job_id
        self._lock = threading.Lock()
        self._records: List[Dict[str, Any]] = []

    def add_usage(self, section: str | None, usage: Dict[str, Any], kind: str = "section") -> None:
        """Record a usage payload as produced by `grounding.extract_usage`."""
        if not usage:
            return
        model = usage.get("model")
        input_tokens = int(usage.get("input_tokens") or 0)
        output_tokens = int(usage.get("output_tokens") or 0)
        cached = int(usage.get("cached_input_tokens") or 0)
        web_calls = int(usage.get("web_search_calls") or 0)
        record = {
            "model": model or "",
            "kind": kind,
            "section": section,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "cached_input_tokens": cached,
            "reasoning_output_tokens": int(usage.get("reasoning_output_tokens") or 0),
            "web_search_calls": web_calls,
            "cost_usd": cost_for_tokens(model, input_tokens, output_tokens, cached),
            "tool_cost_usd": cost_for_web_search_calls(web_calls),
        }
        with self._lock:
            self._records.append(record)

    def summarize(self) -> dict:
        with self._lock:
            records_snapshot = list(self._records)

        totals = {
            "input": 0,
            "output": 0,
            "cached_input": 0,
            "reasoning_output": 0,
            "web_search_calls": 0,
        }
        calls: List[Dict[str, Any]] = []
        total_cost = 0.0

        for rec in records_snapshot:
            totals["input"] += rec["input_tokens"]
            totals["output"] += rec["output_tokens"]
            totals["cached_input"] += rec["cached_input_tokens"]
            totals["reasoning_output"] += rec["reasoning_output_tokens"]
            totals["web_search_calls"] += rec["web_search_calls"]

            call_cost = rec["cost_usd"] + rec["tool_cost_usd"]
            total_cost += call_cost
            calls.append(
                {
                    "kind": rec["kind"],
                    "section": rec["section"],
                    "model": rec["model"],
                    "input": rec["input_tokens"],
                    "output": rec["output_tokens"],
                    "web_search_calls": rec["web_search_calls"],
                    "cost_usd": call_cost,
                }
            )

        return {
            "job_id": self.job_id,
            "totals": totals,
            "calls": calls,
            "total_cost_usd": total_cost,
        }
