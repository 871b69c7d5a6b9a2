from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, Iterable, Mapping

from pydantic import TypeAdapter, ValidationError

from ..schemas.report import Company, ComprehensiveReport
from .generator import SectionResult
from .sections import SECTION_DEFINITIONS, SectionDefinition, thaw
from .sources import merge_sources

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def _field_adapter(key: str) -> TypeAdapter:
    return TypeAdapter(ComprehensiveReport.model_fields[key].annotation)


def _unwrap(definition: SectionDefinition, data: Any) -> Any:
    if definition.unwrap and isinstance(data, Mapping):
        return data.get(definition.unwrap)
    return data


def _shape_field(definition: SectionDefinition, data: Any, company: Company) -> Any:
    value = _unwrap(definition, data)

    if definition.key == "company_summary" and isinstance(value, Mapping):
        # The selected company is authoritative for identity fields
        return {"overview": value.get("overview"), **company.model_dump(exclude_none=True)}

    if definition.key == "financial_health_analysis" and isinstance(value, Mapping):
        return {
            str(metric): str(figure)
            for metric, figure in value.items()
            if figure is not None and not isinstance(figure, (dict, list))
        }

    return value


def _validated(definition: SectionDefinition, data: Any, company: Company) -> Any:
    adapter = _field_adapter(definition.key)
    try:
        return adapter.validate_python(_shape_field(definition, data, company))
    except ValidationError as e:
        logger.warning(
            "Section '%s' data did not match the report schema, using default (%s errors)",
            definition.key,
            e.error_count(),
            extra={"section": definition.key},
        )
    return adapter.validate_python(_shape_field(definition, thaw(definition.default), company))


def assemble_report(
    company: Company,
    results: Mapping[str, SectionResult] | Iterable[SectionResult],
) -> ComprehensiveReport:
    """
    Build the final report from per-section results.

    Every declared section fills exactly one report field: from its
    generated data when that validates, otherwise from the section default.
    Citations from all sections are merged and deduplicated by URI.
    """
    if not isinstance(results, Mapping):
        results = {r.key: r for r in results}

    fields: Dict[str, Any] = {}
    for definition in SECTION_DEFINITIONS:
        result = results.get(definition.key)
        data = result.data if result is not None else thaw(definition.default)
        if result is None:
            logger.warning(
                "No result for section '%s', using default",
                definition.key,
                extra={"section": definition.key},
            )
        fields[definition.key] = _validated(definition, data, company)

    fields["sources"] = merge_sources(*(r.sources for r in results.values()))
    return ComprehensiveReport(**fields)
