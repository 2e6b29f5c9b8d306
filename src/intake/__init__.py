"""Intake kernel utilities."""

from .fields import CATEGORIES, DEFAULT_HEADERS, LINK_HEADERS, SCALAR_HEADERS, FieldPatch, cell_text
from .link_codec import LINK_DELIMITER, join_links, split_links

__all__ = [
    "CATEGORIES",
    "DEFAULT_HEADERS",
    "LINK_DELIMITER",
    "LINK_HEADERS",
    "SCALAR_HEADERS",
    "FieldPatch",
    "cell_text",
    "join_links",
    "split_links",
]
