"""
Preview domain models.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.domain.controller import PreviewControllerConfig


class PreviewContent(BaseModel):
    """What a preview renders: markup, controller config and model data."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    view_xml: str = Field(..., alias="viewXml")
    controller: PreviewControllerConfig = Field(default_factory=PreviewControllerConfig)
    model_data: dict[str, Any] = Field(default_factory=dict, alias="modelData")

    @property
    def items(self) -> list[Any]:
        items = self.model_data.get("items")
        return items if isinstance(items, list) else []


class PreviewPayload(PreviewContent):
    """Preview content stamped with its creation time (token body)."""

    created_at: str = Field(..., alias="createdAt", description="ISO-8601 creation time")

    def to_document(self) -> dict[str, Any]:
        """Wire representation embedded in tokens and preview documents."""
        return {
            "name": self.name,
            "viewXml": self.view_xml,
            "controller": self.controller.to_dict(),
            "modelData": self.model_data,
            "createdAt": self.created_at,
        }


class PreviewEntry(PreviewPayload):
    """Store-resident preview, addressable by ID."""

    id: str = Field(..., description="Opaque unique preview identifier")
