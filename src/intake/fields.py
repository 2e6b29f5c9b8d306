"""Field catalog for intake records.

Logical field names are what clients send and what responses carry; header
names are the column titles found in row 1 of the sheet.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

HEADER_TIMESTAMP = "Timestamp"
HEADER_TOKEN = "Token"
HEADER_NAME = "Patient Name"
HEADER_AGE = "Age"
HEADER_GENDER = "Gender"
HEADER_NOTES = "Notes"
HEADER_PHOTO_LINKS = "Photo Links"
HEADER_VIDEO_LINKS = "Video Links"
HEADER_DOCUMENT_LINKS = "Document Links"

SCALAR_HEADERS: Mapping[str, str] = MappingProxyType(
    {
        "name": HEADER_NAME,
        "age": HEADER_AGE,
        "gender": HEADER_GENDER,
        "notes": HEADER_NOTES,
    }
)

CATEGORIES = ("photos", "videos", "documents")

LINK_HEADERS: Mapping[str, str] = MappingProxyType(
    {
        "photos": HEADER_PHOTO_LINKS,
        "videos": HEADER_VIDEO_LINKS,
        "documents": HEADER_DOCUMENT_LINKS,
    }
)

DEFAULT_HEADERS = (
    HEADER_TIMESTAMP,
    HEADER_TOKEN,
    HEADER_NAME,
    HEADER_AGE,
    HEADER_GENDER,
    HEADER_NOTES,
    HEADER_PHOTO_LINKS,
    HEADER_VIDEO_LINKS,
    HEADER_DOCUMENT_LINKS,
)


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


@dataclass(frozen=True)
class FieldPatch:
    """Scalar fields supplied with an update request.

    Only fields present in the request are held; an empty string is a real
    value and overwrites the stored one.
    """

    provided: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_params(cls, params: Mapping[str, Any] | None) -> "FieldPatch":
        params = params or {}
        provided = {name: cell_text(params[name]) for name in SCALAR_HEADERS if name in params and params[name] is not None}
        return cls(MappingProxyType(provided))

    def has(self, name: str) -> bool:
        return name in self.provided

    def resolve(self, name: str, existing: Any) -> str:
        if self.has(name):
            return self.provided[name]
        return cell_text(existing)
