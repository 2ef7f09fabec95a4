"""Search callback factories and result normalization for ajax_select fields."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable, Dict, Iterable, List, Optional

from component_registry import resolve_value
from panelkit.text_clean import clean_text


SearchResults = List[Dict[str, Any]]
RecordFetcher = Callable[[str, Optional[List[Any]]], Iterable[Any]]


def normalize_search_results(raw: Any) -> SearchResults:
    """Coerce a callback result into an ordered ``[{id, text}]`` list.

    Accepts ``{id: label}`` mappings, lists of ``{id, text}`` / ``{value, label}``
    rows, and lists of bare scalars (used as both id and text).
    """
    if not raw:
        return []
    if isinstance(raw, Mapping):
        return [{"id": key, "text": str(label)} for key, label in raw.items()]
    results = []
    if not isinstance(raw, (list, tuple)):
        return results
    for row in raw:
        if isinstance(row, Mapping):
            row_id = row.get("id", row.get("value"))
            text = row.get("text", row.get("label", row_id))
            if row_id is None:
                continue
            results.append({"id": row_id, "text": str(text)})
        elif row is not None:
            results.append({"id": row, "text": str(row)})
    return results


def results_to_options(raw: Any) -> Dict[str, str]:
    return {str(row["id"]): row["text"] for row in normalize_search_results(raw)}


def _id_set(ids: Iterable[Any]) -> set:
    return {str(item) for item in ids}


def static_options(options: Mapping | Iterable[Any]) -> Callable[[str, Optional[List[Any]]], Dict[Any, str]]:
    """Search over a fixed option set; hydration returns the requested ids only."""
    rows = normalize_search_results(dict(options) if isinstance(options, Mapping) else list(options))

    def search(term: str, ids: Optional[List[Any]] = None) -> Dict[Any, str]:
        if ids:
            wanted = _id_set(ids)
            return {row["id"]: row["text"] for row in rows if str(row["id"]) in wanted}
        needle = clean_text(term).lower()
        return {row["id"]: row["text"] for row in rows if needle in row["text"].lower()}

    return search


def records(fetch: RecordFetcher, id_field: str = "id", label_field: str = "name", limit: int = 20):
    """Search backed by a host record fetcher returning dicts or model objects."""

    def search(term: str, ids: Optional[List[Any]] = None) -> Dict[Any, str]:
        found: Dict[Any, str] = {}
        for record in fetch(clean_text(term), list(ids) if ids else None) or []:
            record_id = resolve_value(id_field, record)
            if record_id is None:
                continue
            label = resolve_value(label_field, record)
            found[record_id] = str(label if label is not None else record_id)
            if not ids and len(found) >= limit:
                break
        return found

    return search
