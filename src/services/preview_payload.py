"""
Preview payload builder.

Turns a preview creation request into renderable preview content: resolves
table and filter fields, maps mock rows onto sanitized binding keys (or
synthesizes placeholder rows), generates a default table view and attaches the
column metadata the rendering runtime needs.
"""

import re
import unicodedata
from collections.abc import Mapping
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional
from xml.sax.saxutils import escape

from pydantic import BaseModel, ConfigDict, Field

from src.core.constants import (
    DEFAULT_CDS_VIEW,
    DEFAULT_PREVIEW_NAME,
    PLACEHOLDER_ROW_COUNT,
    PREVIEW_COLUMNS_KEY,
    PREVIEW_FILTERS_KEY,
    FieldType,
)
from src.core.exceptions import InvalidRequestError, SecurityPolicyError
from src.core.logging import get_logger
from src.domain.controller import normalize_controller_config
from src.domain.field_mapping import FieldMapping, PreviewColumnMeta, sanitize_binding_key
from src.domain.preview import PreviewContent

logger = get_logger(__name__)

_FIELD_TYPES = {field_type.value for field_type in FieldType}
_ISO_DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")
_COMBINING_MARKS = re.compile("[\\u0300-\\u036f]")
_NON_ALPHANUMERIC = re.compile(r"[^a-zA-Z0-9]")
_XML_ATTR_ENTITIES = {'"': "&quot;", "'": "&apos;"}

DEFAULT_FALLBACK_FIELDS = [
    FieldMapping(display_name=f"Field {n}", cds_field=f"Field{n}", cds_view=DEFAULT_CDS_VIEW)
    for n in (1, 2, 3)
]


class CreatePreviewRequest(BaseModel):
    """Preview creation request. Field lists and rows are validated leniently."""

    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    fields: Optional[list[Any]] = None
    filter_fields: Optional[list[Any]] = Field(default=None, alias="filterFields")
    mock_data: Optional[list[Any]] = Field(default=None, alias="mockData")
    view_xml: Optional[str] = Field(default=None, alias="viewXml")
    controller: Any = None
    controller_js: Any = Field(default=None, alias="controllerJs")
    model_data: Optional[dict[str, Any]] = Field(default=None, alias="modelData")


def normalize_match_key(value: str) -> str:
    """Accent-, punctuation- and case-insensitive form of a column name."""
    decomposed = unicodedata.normalize("NFD", value)
    return _NON_ALPHANUMERIC.sub("", _COMBINING_MARKS.sub("", decomposed)).lower()


def infer_type_from_value(value: Any) -> FieldType:
    """Guess a field type from a sample value."""
    if isinstance(value, bool):
        return FieldType.BOOLEAN
    if isinstance(value, (int, float)):
        return FieldType.NUMBER
    if isinstance(value, str) and _ISO_DATE_PREFIX.match(value):
        return FieldType.DATE
    return FieldType.STRING


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)


def _field_from_input(raw: Any) -> Optional[FieldMapping]:
    if not isinstance(raw, Mapping):
        return None

    display_name = raw.get("displayName")
    if not isinstance(display_name, str) or not display_name.strip():
        return None
    display_name = display_name.strip()

    raw_type = raw.get("type")
    field_type = raw_type if isinstance(raw_type, str) and raw_type in _FIELD_TYPES else FieldType.STRING

    raw_enum = raw.get("enumValues")
    enum_values = [v for v in raw_enum if isinstance(v, str)] if isinstance(raw_enum, list) else None

    return FieldMapping(
        display_name=display_name,
        cds_field=_as_text(raw.get("cdsField")).strip() or sanitize_binding_key(display_name),
        cds_view=_as_text(raw.get("cdsView")).strip() or DEFAULT_CDS_VIEW,
        type=field_type,
        enum_values=enum_values,
    )


def resolve_fields(
    fields_input: Optional[list[Any]],
    mock_data: Optional[list[Any]],
) -> list[FieldMapping]:
    """
    Resolve the field set of a preview.

    Explicit fields win; otherwise one field is inferred per key of the first
    mock row; otherwise three placeholder fields are returned.
    """
    explicit = [
        field
        for field in (_field_from_input(raw) for raw in fields_input or [])
        if field is not None
    ]
    if explicit:
        return explicit

    first_row = next((row for row in mock_data or [] if isinstance(row, Mapping)), None)
    if first_row is not None:
        inferred = [
            FieldMapping(
                display_name=str(key),
                cds_field=sanitize_binding_key(key),
                cds_view=DEFAULT_CDS_VIEW,
                type=infer_type_from_value(sample),
            )
            for key, sample in first_row.items()
            if str(key).strip()
        ]
        if inferred:
            return inferred

    return [field.model_copy() for field in DEFAULT_FALLBACK_FIELDS]


def merge_unique_fields(*groups: list[FieldMapping]) -> list[FieldMapping]:
    """Union of field groups keyed by binding key; first occurrence wins."""
    merged: dict[str, FieldMapping] = {}
    for group in groups:
        for field in group:
            merged.setdefault(field.binding_key, field)
    return list(merged.values())


def fallback_value(field: FieldMapping, index: int, today: date) -> Any:
    """Deterministic placeholder value for row ``index``."""
    if field.type == FieldType.NUMBER:
        return (index + 1) * 10
    if field.type == FieldType.DATE:
        return (today - timedelta(days=index)).isoformat()
    if field.type == FieldType.BOOLEAN:
        return index % 2 == 0
    if field.type == FieldType.ENUM:
        if field.enum_values:
            return field.enum_values[index % len(field.enum_values)]
        return "N/A"
    return f"{field.display_name} {index + 1}"


def find_value_in_row(source_row: Mapping[str, Any], field: FieldMapping) -> Any:
    """
    Look a field up in a loosely keyed source row.

    Tries the display name, the technical name and the binding key verbatim,
    then a normalized comparison against every source key.
    """
    binding_key = field.binding_key
    for candidate in (field.display_name, field.cds_field, binding_key):
        value = source_row.get(candidate)
        if value is not None:
            return value

    targets = {
        normalize_match_key(field.display_name),
        normalize_match_key(field.cds_field),
        normalize_match_key(binding_key),
    }
    for source_key, value in source_row.items():
        if value is not None and normalize_match_key(str(source_key)) in targets:
            return value

    return None


def normalize_rows(
    fields: list[FieldMapping],
    mock_data: Optional[list[Any]],
    today: date,
) -> list[dict[str, Any]]:
    """Build model rows keyed by binding key."""
    if not mock_data:
        return [
            {field.binding_key: fallback_value(field, index, today) for field in fields}
            for index in range(PLACEHOLDER_ROW_COUNT)
        ]

    rows = []
    for row_index, source_row in enumerate(mock_data):
        if not isinstance(source_row, Mapping):
            source_row = {}
        row = {}
        for field in fields:
            value = find_value_in_row(source_row, field)
            row[field.binding_key] = value if value is not None else fallback_value(field, row_index, today)
        rows.append(row)
    return rows


def build_default_view_xml(fields: list[FieldMapping]) -> str:
    """Minimal sap.m table view bound to ``/items``, one column per field."""
    columns = "\n".join(
        f'            <Column><header><Label text="{escape(field.display_name, _XML_ATTR_ENTITIES)}" /></header></Column>'
        for field in fields
    )
    cells = "\n".join(
        f'                <Text text="{{{field.binding_key}}}" />'
        for field in fields
    )

    return f"""<mvc:View
  xmlns:mvc="sap.ui.core.mvc"
  xmlns="sap.m">
  <Page title="AI Report Preview">
    <content>
      <Table items="{{/items}}" width="auto" sticky="ColumnHeaders">
        <columns>
{columns}
        </columns>
        <items>
          <ColumnListItem>
            <cells>
{cells}
            </cells>
          </ColumnListItem>
        </items>
      </Table>
    </content>
  </Page>
</mvc:View>"""


def build_preview_columns(fields: list[FieldMapping]) -> list[dict[str, Any]]:
    return [PreviewColumnMeta.from_field(field).to_dict() for field in fields]


def build_preview_payload(
    request: CreatePreviewRequest,
    today: Optional[date] = None,
) -> PreviewContent:
    """
    Build preview content from a creation request.

    Args:
        request: Preview creation request
        today: Reference date for placeholder dates (defaults to UTC today)

    Returns:
        Renderable preview content

    Raises:
        InvalidRequestError: If neither view XML nor fields were supplied
        SecurityPolicyError: If a controller script was supplied
    """
    has_view_xml = bool(request.view_xml)
    has_fields = bool(request.fields)

    if not has_view_xml and not has_fields:
        raise InvalidRequestError("Provide either (viewXml) or a non-empty fields array")

    if isinstance(request.controller_js, str) and request.controller_js.strip():
        raise SecurityPolicyError(
            "controllerJs is disabled for security reasons. "
            "Use the declarative controller object instead.",
            field="controllerJs",
        )

    today = today or datetime.now(timezone.utc).date()

    fields = resolve_fields(request.fields, request.mock_data)
    filter_fields = resolve_fields(request.filter_fields, request.mock_data) if request.filter_fields else fields
    data_fields = merge_unique_fields(fields, filter_fields)

    if request.model_data is not None:
        model_data = dict(request.model_data)
    else:
        model_data = {"items": normalize_rows(data_fields, request.mock_data, today)}

    if has_view_xml:
        view_xml = request.view_xml or ""
    else:
        view_xml = build_default_view_xml(fields)
        model_data[PREVIEW_COLUMNS_KEY] = build_preview_columns(fields)
        model_data[PREVIEW_FILTERS_KEY] = build_preview_columns(filter_fields)

    name = (request.name or "").strip() or DEFAULT_PREVIEW_NAME

    logger.debug(
        "Preview payload built",
        fields=len(fields),
        filter_fields=len(filter_fields),
        rows=len(model_data["items"]) if isinstance(model_data.get("items"), list) else 0,
        custom_view=has_view_xml,
    )

    return PreviewContent(
        name=name,
        view_xml=view_xml,
        controller=normalize_controller_config(request.controller),
        model_data=model_data,
    )
