"""
Declarative preview controller configuration.

The controller replaces free-form controller scripts: it can only describe
initial filter values and a default sort. Untrusted input is normalized
rather than rejected, so a malformed config never fails a preview.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.core.constants import CONTROLLER_CONFIG_VERSION, MAX_INITIAL_FILTERS, SortDirection

_WHITESPACE = re.compile(r"\s+")


class PreviewControllerFilter(BaseModel):
    """Initial value for one filter field."""

    field: str
    value: str


class PreviewControllerSort(BaseModel):
    """Default sort applied when the preview opens."""

    model_config = ConfigDict(use_enum_values=True)

    field: str
    direction: SortDirection = SortDirection.ASC


class PreviewControllerConfig(BaseModel):
    """Versioned declarative controller config."""

    model_config = ConfigDict(populate_by_name=True)

    version: Literal[1] = CONTROLLER_CONFIG_VERSION
    initial_filters: Optional[list[PreviewControllerFilter]] = Field(
        default=None, alias="initialFilters"
    )
    default_sort: Optional[PreviewControllerSort] = Field(default=None, alias="defaultSort")

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def _normalize_text(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return _WHITESPACE.sub(" ", value.strip())


def _is_version_one(value: Any) -> bool:
    # True == 1 in Python; a boolean is not a version tag.
    return isinstance(value, int) and not isinstance(value, bool) and value == CONTROLLER_CONFIG_VERSION


def normalize_controller_config(value: Any) -> PreviewControllerConfig:
    """
    Normalize an untrusted controller config.

    Args:
        value: Anything decoded from a request or token

    Returns:
        A well-formed config; the default ``{version: 1}`` when the input is
        not a version-1 mapping. Malformed filters or sort are dropped.
    """
    if not isinstance(value, Mapping) or not _is_version_one(value.get("version")):
        return PreviewControllerConfig()

    filters: list[PreviewControllerFilter] = []
    raw_filters = value.get("initialFilters")
    if isinstance(raw_filters, list):
        for item in raw_filters:
            if not isinstance(item, Mapping):
                continue
            field = _normalize_text(item.get("field"))
            filter_value = _normalize_text(item.get("value"))
            if field and filter_value:
                filters.append(PreviewControllerFilter(field=field, value=filter_value))
        filters = filters[:MAX_INITIAL_FILTERS]

    sort: Optional[PreviewControllerSort] = None
    raw_sort = value.get("defaultSort")
    if isinstance(raw_sort, Mapping):
        field = _normalize_text(raw_sort.get("field"))
        if field:
            direction = SortDirection.DESC if raw_sort.get("direction") == "desc" else SortDirection.ASC
            sort = PreviewControllerSort(field=field, direction=direction)

    return PreviewControllerConfig(
        initial_filters=filters or None,
        default_sort=sort,
    )
