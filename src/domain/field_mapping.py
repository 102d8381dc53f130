"""
Field mapping domain model.
"""

from __future__ import annotations

import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.core.constants import FieldType

_UNSAFE_KEY_CHARS = re.compile(r"[^a-zA-Z0-9_]")


def sanitize_binding_key(raw: Any) -> str:
    """
    Turn a free-form field name into a binding-safe identifier.

    Every character outside ``[A-Za-z0-9_]`` becomes ``_``; a leading digit
    gets a ``field_`` prefix; an empty name becomes ``field``.
    """
    cleaned = _UNSAFE_KEY_CHARS.sub("_", "" if raw is None else str(raw))
    if not cleaned:
        return "field"
    if cleaned[0].isdigit():
        return f"field_{cleaned}"
    return cleaned


class FieldMapping(BaseModel):
    """A user-facing report field mapped to a simulated CDS view field."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    display_name: str = Field(..., alias="displayName", description="Human label")
    cds_field: str = Field(..., alias="cdsField", description="Technical field name")
    cds_view: str = Field(..., alias="cdsView", description="Logical source view")
    type: FieldType = Field(default=FieldType.STRING)
    enum_values: Optional[list[str]] = Field(default=None, alias="enumValues")

    @property
    def binding_key(self) -> str:
        """Sanitized key used for row values and view bindings."""
        return sanitize_binding_key(self.cds_field or self.display_name)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class PreviewColumnMeta(BaseModel):
    """Column metadata consumed by the renderer and the mock OData service."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    key: str
    label: str
    type: FieldType = Field(default=FieldType.STRING)
    enum_values: Optional[list[str]] = Field(default=None, alias="enumValues")

    @classmethod
    def from_field(cls, field: FieldMapping) -> "PreviewColumnMeta":
        return cls(
            key=field.binding_key,
            label=field.display_name,
            type=field.type,
            enum_values=field.enum_values,
        )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
