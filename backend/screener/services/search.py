from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..core.config import get_settings
from ..schemas.api import GeoLocation
from ..schemas.report import Company
from .generator import GroundedCall
from .grounding import generate_grounded
from .parsing import parse_json_with_fallback

logger = logging.getLogger(__name__)
settings = get_settings()

SEARCH_FAILED_MESSAGE = (
    "Failed to search for companies. The API may be unavailable or the query may be invalid."
)

COMPANY_SEARCH_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "companies": {
            "type": "array",
            "description": "List of companies found.",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Official company name."},
                    "registration_number": {
                        "type": ["string", "null"],
                        "description": "Official business registration number, if available.",
                    },
                    "address": {
                        "type": ["string", "null"],
                        "description": "Full headquarters address.",
                    },
                    "website": {
                        "type": ["string", "null"],
                        "description": "Official company website URL.",
                    },
                    "description": {
                        "type": ["string", "null"],
                        "description": "A brief, one-sentence description of the company's primary business.",
                    },
                },
                "required": ["name"],
            },
        }
    },
    "required": ["companies"],
}


class CompanySearchError(Exception):
    """Search failed; `str(exc)` is safe to show to the user."""

    def __init__(self, message: str = SEARCH_FAILED_MESSAGE) -> None:
        super().__init__(message)


def build_search_prompt(query: str, location: Optional[GeoLocation] = None) -> str:
    prompt = (
        f'Find companies matching the query: "{query}". Provide official names, and if available, '
        "their registration number, address, website, and a brief description. "
        "If no companies are found, return an empty array."
    )
    if location is not None:
        prompt += (
            f" The user is located near latitude {location.latitude:.4f}, longitude "
            f"{location.longitude:.4f}; when several companies share the name, list the ones "
            "closest to that location first."
        )
    return prompt


def _to_companies(payload: Any) -> List[Company]:
    items = payload.get("companies") if isinstance(payload, dict) else None
    if not isinstance(items, list):
        raise CompanySearchError()

    companies: List[Company] = []
    for item in items:
        if not isinstance(item, dict) or not str(item.get("name") or "").strip():
            continue
        try:
            companies.append(Company.model_validate({**item, "name": str(item["name"]).strip()}))
        except ValidationError:
            logger.warning("Dropping malformed company candidate: %r", item)
    return companies


async def search_companies(
    query: str,
    location: Optional[GeoLocation] = None,
    *,
    call: Optional[GroundedCall] = None,
) -> List[Company]:
    """
    Candidate companies for a free-text name.

    Blank queries return [] without touching the LLM. An empty result is a
    valid answer; any failure raises CompanySearchError.
    """
    query = (query or "").strip()
    if not query:
        return []

    prompt = build_search_prompt(query, location)
    try:
        if call is not None:
            response = await call(prompt)
        else:
            response = await generate_grounded(
                prompt,
                model=settings.SEARCH_MODEL or settings.LLM_MODEL,
                json_schema=COMPANY_SEARCH_SCHEMA,
                schema_name="company_search",
            )
    except Exception as e:
        logger.exception("Company search request failed: %s", e, extra={"step": "search"})
        raise CompanySearchError() from e

    parsed = parse_json_with_fallback(response.text, None)
    if not parsed.ok:
        logger.error(
            "Company search returned malformed JSON: %s", parsed.error, extra={"step": "search"}
        )
        raise CompanySearchError()

    companies = _to_companies(parsed.value)
    logger.info("Company search returned %s candidates", len(companies), extra={"step": "search"})
    return companies
