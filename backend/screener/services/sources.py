from __future__ import annotations

from typing import Iterable

from ..schemas.report import ReportSource, ReportSources


def _dedupe(groups: Iterable[list[ReportSource]]) -> list[ReportSource]:
    seen: set[str] = set()
    merged: list[ReportSource] = []
    for group in groups:
        for source in group:
            if not source.uri or source.uri in seen:
                continue
            seen.add(source.uri)
            merged.append(source)
    return merged


def merge_sources(*source_lists: ReportSources) -> ReportSources:
    """
    Merge citation lists from several sections into one aggregate.

    Web and map citations are deduplicated separately by URI; the first
    occurrence wins (and keeps its title), order of first appearance is
    preserved, entries without a URI are dropped. Merging a list with itself
    yields the same list.
    """
    return ReportSources(
        web=_dedupe(s.web for s in source_lists),
        maps=_dedupe(s.maps for s in source_lists),
    )
