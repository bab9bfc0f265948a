"""Lookup over the catalogue of common HTTP header names."""

from dataclasses import dataclass

from repost.constants import COMMON_HEADERS, HEADER_SEARCH_LIMIT


@dataclass(frozen=True)
class HeaderInfo:
    name: str
    description: str
    category: str


CATALOGUE: list[HeaderInfo] = [HeaderInfo(*entry) for entry in COMMON_HEADERS]


def headers_by_category() -> dict[str, list[HeaderInfo]]:
    grouped: dict[str, list[HeaderInfo]] = {}
    for header in CATALOGUE:
        grouped.setdefault(header.category, []).append(header)
    return grouped


def search_headers(query: str, limit: int = HEADER_SEARCH_LIMIT) -> list[HeaderInfo]:
    """Return headers whose name or description contains query (case-insensitive).

    A blank query returns nothing.
    """
    q = query.strip().lower()
    if not q:
        return []
    matches = [h for h in CATALOGUE if q in h.name.lower() or q in h.description.lower()]
    return matches[:limit]
