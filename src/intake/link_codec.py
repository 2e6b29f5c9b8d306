"""Join and split attachment link lists stored in a single sheet cell."""

from __future__ import annotations

from typing import Any, Iterable

LINK_DELIMITER = " | "


def join_links(links: Iterable[str] | None) -> str:
    if not links:
        return ""
    return LINK_DELIMITER.join(str(link) for link in links)


def split_links(value: Any) -> list[str]:
    """Return the ordered links held in *value*.

    Blank cells give an empty list and empty entries are dropped, so a
    cell written by :func:`join_links` always reads back as the same list.
    """
    if value is None:
        return []
    text = value if isinstance(value, str) else str(value)
    if not text:
        return []
    return [part for part in text.split(LINK_DELIMITER) if part]
