"""
Mock OData V2 service over in-memory preview rows.

Answers the read-only subset used by SmartFilterBar/SmartTable: service
document, ``$metadata``, ``$count`` and collection queries with ``$filter``,
``$orderby``, ``$skip``, ``$top`` and ``$select``.

The query grammar is loose. Clauses the parser does not
recognize are treated as always-true (unless strict filtering is enabled), and
malformed ordering or paging options degrade to no-ops.
"""

from __future__ import annotations

import math
import operator
import re
from collections.abc import Mapping
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Any, Callable, Optional, Union
from urllib.parse import quote
from xml.sax.saxutils import escape

from src.core.constants import (
    ODATA_DECIMAL_PRECISION,
    ODATA_DECIMAL_SCALE,
    ODATA_ENTITY_SET,
    ODATA_ENTITY_TYPE,
    ODATA_ENTITY_TYPE_FQN,
    ODATA_NAMESPACE,
    ODATA_ROW_ID,
    PREVIEW_COLUMNS_KEY,
    PREVIEW_FILTERS_KEY,
    FieldType,
)
from src.core.exceptions import ODataQueryError
from src.core.logging import get_logger
from src.domain.field_mapping import PreviewColumnMeta

logger = get_logger(__name__)

Row = dict[str, Any]

_IDENT = r"[A-Za-z_][A-Za-z0-9_]*"
_QUOTED = r"'((?:''|[^'])*)'"
_BOOL_SUFFIX = r"(?:\s+eq\s+(true|false))?"

_SUBSTRINGOF = re.compile(
    rf"^substringof\(\s*{_QUOTED}\s*,\s*({_IDENT})\s*\){_BOOL_SUFFIX}$", re.IGNORECASE
)
_FIELD_FIRST_FUNCTION = re.compile(
    rf"^(contains|startswith|endswith)\(\s*({_IDENT})\s*,\s*{_QUOTED}\s*\){_BOOL_SUFFIX}$",
    re.IGNORECASE,
)
_COMPARISON = re.compile(rf"^({_IDENT})\s+(eq|ne|gt|ge|lt|le)\s+(.+)$", re.IGNORECASE)
_CONJUNCTION = re.compile(r"\s+and\s+", re.IGNORECASE)

_STRING_LITERAL = re.compile(r"^'(.*)'$", re.DOTALL)
_TYPED_LITERAL = re.compile(
    r"^(?:datetime|datetimeoffset|guid|time|binary|X)'(.*)'$", re.IGNORECASE | re.DOTALL
)
_NUMBER = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")
_NUMBER_LITERAL = re.compile(r"^([+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)[mMdDfFlL]?$")
_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")
_ENTITY_KEY = re.compile(rf"^{ODATA_ENTITY_SET}\((?:'((?:''|[^'])*)'|(\d+))\)$")

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "eq": operator.eq,
    "ne": operator.ne,
    "gt": operator.gt,
    "ge": operator.ge,
    "lt": operator.lt,
    "le": operator.le,
}


# =============================================================================
# Filter AST
# =============================================================================


@dataclass(frozen=True)
class ComparisonClause:
    """``field <op> literal``."""

    field: str
    operator: str
    value: Any


@dataclass(frozen=True)
class StringFunctionClause:
    """``substringof``/``contains``/``startswith``/``endswith`` call."""

    function: str
    field: str
    needle: str
    negated: bool = False


@dataclass(frozen=True)
class UnrecognizedClause:
    """Clause outside the supported grammar."""

    text: str


FilterClause = Union[ComparisonClause, StringFunctionClause, UnrecognizedClause]


@dataclass(frozen=True)
class OrderSegment:
    field: str
    descending: bool = False


@dataclass
class ODataQuery:
    """System query options of one collection request."""

    filter: Optional[str] = None
    orderby: Optional[str] = None
    select: Optional[str] = None
    skip: int = 0
    top: Optional[int] = None

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "ODataQuery":
        """
        Read query options, tolerating garbage.

        ``$skip`` defaults to 0 and is clamped to non-negative; a missing,
        non-numeric or non-positive ``$top`` means no limit.
        """
        skip = _parse_int_prefix(params.get("$skip"))
        top = _parse_int_prefix(params.get("$top"))
        return cls(
            filter=params.get("$filter"),
            orderby=params.get("$orderby"),
            select=params.get("$select"),
            skip=max(0, skip or 0),
            top=top if top is not None and top > 0 else None,
        )


# =============================================================================
# Value helpers
# =============================================================================


def _parse_int_prefix(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    match = _INT_PREFIX.match(raw)
    return int(match.group(1)) if match else None


def _unescape(value: str) -> str:
    return value.replace("''", "'")


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str) and _NUMBER.match(value.strip()):
        number = float(value.strip())
    else:
        return None
    return None if math.isnan(number) else number


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def parse_literal(token: str) -> Any:
    """
    Parse the right-hand side of a comparison.

    Quoted and typed literals (``datetime'...'``) become strings, ``true`` /
    ``false`` booleans, ``null`` None, numeric text (with an optional OData
    type suffix) numbers; anything else is kept as raw text.
    """
    token = token.strip()

    match = _STRING_LITERAL.match(token) or _TYPED_LITERAL.match(token)
    if match:
        return _unescape(match.group(1))

    lowered = token.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if lowered == "null":
        return None

    number = _NUMBER_LITERAL.match(token)
    if number:
        text = number.group(1)
        return float(text) if any(c in text for c in ".eE") else int(text)

    return token


def _mask_quoted(text: str) -> str:
    """Replace quoted literal content with placeholders of the same length."""
    masked = []
    in_quote = False
    for char in text:
        if char == "'":
            in_quote = not in_quote
            masked.append(char)
        else:
            masked.append("_" if in_quote else char)
    return "".join(masked)


def _strip_wrapping_parens(text: str) -> str:
    text = text.strip()
    while text.startswith("(") and text.endswith(")"):
        masked = _mask_quoted(text)
        depth = 0
        for index, char in enumerate(masked):
            if char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
                if depth == 0 and index != len(masked) - 1:
                    return text
        if depth != 0:
            return text
        text = text[1:-1].strip()
    return text


def split_conjunction(expr: str) -> list[str]:
    """Split a filter on ``and`` outside quoted literals."""
    expr = _strip_wrapping_parens(expr)
    masked = _mask_quoted(expr)
    clauses = []
    start = 0
    for match in _CONJUNCTION.finditer(masked):
        clauses.append(expr[start:match.start()])
        start = match.end()
    clauses.append(expr[start:])
    return [_strip_wrapping_parens(clause) for clause in clauses if clause.strip()]


# =============================================================================
# Filter
# =============================================================================


def parse_clause(text: str) -> FilterClause:
    """Parse one conjunct into a clause node."""
    match = _SUBSTRINGOF.match(text)
    if match:
        needle, field_name, flag = match.groups()
        return StringFunctionClause(
            function="substringof",
            field=field_name,
            needle=_unescape(needle),
            negated=bool(flag) and flag.lower() == "false",
        )

    match = _FIELD_FIRST_FUNCTION.match(text)
    if match:
        function, field_name, needle, flag = match.groups()
        return StringFunctionClause(
            function=function.lower(),
            field=field_name,
            needle=_unescape(needle),
            negated=bool(flag) and flag.lower() == "false",
        )

    match = _COMPARISON.match(text)
    if match:
        field_name, op, raw_value = match.groups()
        return ComparisonClause(field=field_name, operator=op.lower(), value=parse_literal(raw_value))

    return UnrecognizedClause(text=text)


def parse_filter(expr: Optional[str]) -> list[FilterClause]:
    """Parse a ``$filter`` expression into conjunctive clauses."""
    if not expr or not expr.strip():
        return []
    return [parse_clause(clause) for clause in split_conjunction(expr)]


def _compare(left: Any, op: str, right: Any) -> bool:
    # Untouched filter inputs emit "eq ''"; treat empty/null as no filter.
    if op in ("eq", "ne") and (right is None or (isinstance(right, str) and right == "")):
        return True

    if not isinstance(left, bool) and not isinstance(right, bool):
        left_number = _to_number(left)
        right_number = _to_number(right)
        if left_number is not None and right_number is not None:
            return _OPERATORS[op](left_number, right_number)

    return _OPERATORS[op](_to_text(left).lower(), _to_text(right).lower())


def evaluate_clause(row: Mapping[str, Any], clause: FilterClause) -> bool:
    """Evaluate one clause against a row."""
    if isinstance(clause, StringFunctionClause):
        haystack = _to_text(row.get(clause.field)).lower()
        needle = clause.needle.lower()
        if clause.function == "startswith":
            matched = haystack.startswith(needle)
        elif clause.function == "endswith":
            matched = haystack.endswith(needle)
        else:
            matched = needle in haystack
        return not matched if clause.negated else matched

    if isinstance(clause, ComparisonClause):
        return _compare(row.get(clause.field), clause.operator, clause.value)

    return True


def apply_filter(rows: list[Row], expr: Optional[str], strict: bool = False) -> list[Row]:
    """
    Keep rows matching every clause of ``expr``.

    Raises:
        ODataQueryError: If ``strict`` and a clause is not recognized
    """
    clauses = parse_filter(expr)
    if not clauses:
        return rows

    unrecognized = [c for c in clauses if isinstance(c, UnrecognizedClause)]
    if unrecognized:
        if strict:
            raise ODataQueryError(
                f"Unsupported $filter clause: {unrecognized[0].text}",
                option="$filter",
            )
        logger.debug("Ignoring unsupported filter clauses", clauses=[c.text for c in unrecognized])

    return [row for row in rows if all(evaluate_clause(row, clause) for clause in clauses)]


# =============================================================================
# Order, paging, projection
# =============================================================================


def parse_order_by(expr: Optional[str]) -> list[OrderSegment]:
    if not expr or not expr.strip():
        return []

    segments = []
    for part in expr.split(","):
        tokens = part.split()
        if not tokens:
            continue
        descending = len(tokens) > 1 and tokens[1].lower() == "desc"
        segments.append(OrderSegment(field=tokens[0], descending=descending))
    return segments


def compare_values(left: Any, right: Any) -> int:
    """Three-way comparison used for ordering."""
    if left == right and isinstance(left, bool) == isinstance(right, bool):
        return 0

    if not isinstance(left, bool) and not isinstance(right, bool):
        left_number = _to_number(left)
        right_number = _to_number(right)
        if left_number is not None and right_number is not None:
            return (left_number > right_number) - (left_number < right_number)

    left_text = _to_text(left).lower()
    right_text = _to_text(right).lower()
    return (left_text > right_text) - (left_text < right_text)


def apply_order_by(rows: list[Row], expr: Optional[str]) -> list[Row]:
    """Stable multi-key sort; ties fall through to the next segment."""
    segments = parse_order_by(expr)
    if not segments:
        return rows

    def compare_rows(a: Row, b: Row) -> int:
        for segment in segments:
            diff = compare_values(a.get(segment.field), b.get(segment.field))
            if diff:
                return -diff if segment.descending else diff
        return 0

    return sorted(rows, key=cmp_to_key(compare_rows))


def apply_paging(rows: list[Row], skip: int = 0, top: Optional[int] = None) -> list[Row]:
    skip = max(0, skip)
    if top is None:
        return rows[skip:]
    return rows[skip:skip + top]


def apply_select(rows: list[Row], expr: Optional[str]) -> list[Row]:
    """
    Project rows onto the selected properties.

    Navigation prefixes are dropped (last ``/`` segment), the row id is always
    kept and unknown properties are silently omitted.
    """
    if not expr or not expr.strip():
        return rows

    selected: list[str] = []
    for raw in expr.split(","):
        name = raw.strip().split("/")[-1].strip()
        if name and name not in selected:
            selected.append(name)

    if not selected:
        return rows
    if ODATA_ROW_ID not in selected:
        selected.append(ODATA_ROW_ID)

    return [{name: row[name] for name in selected if name in row} for row in rows]


def entity_uri(service_root: str, row_id: Any) -> str:
    encoded = quote(_to_text(row_id), safe="-_.!~*'()")
    return f"{service_root}{ODATA_ENTITY_SET}('{encoded}')"


def attach_entity_metadata(rows: list[Row], service_root: str) -> list[Row]:
    """Wrap each row with the ``__metadata`` block OData V2 clients expect."""
    return [
        {
            "__metadata": {
                "uri": entity_uri(service_root, row.get(ODATA_ROW_ID, "")),
                "type": ODATA_ENTITY_TYPE_FQN,
            },
            **row,
        }
        for row in rows
    ]


# =============================================================================
# Model data normalization
# =============================================================================


def _columns_from_meta(candidate: Any) -> list[PreviewColumnMeta]:
    columns = []
    for item in candidate:
        if not isinstance(item, Mapping):
            continue
        key = item.get("key")
        key = key.strip() if isinstance(key, str) else ""
        if not key:
            continue
        label = item.get("label")
        label = label.strip() if isinstance(label, str) else key
        raw_type = item.get("type")
        column_type = (
            raw_type
            if raw_type in (FieldType.NUMBER.value, FieldType.DATE.value, FieldType.BOOLEAN.value)
            else FieldType.STRING
        )
        columns.append(PreviewColumnMeta(key=key, label=label or key, type=column_type))
    return columns


def normalize_columns(model_data: Mapping[str, Any]) -> list[PreviewColumnMeta]:
    """
    Columns exposed as entity properties.

    Declared table columns come first, then filter-only columns. Without
    declared columns, every key of the first row becomes a string column.
    """
    declared = model_data.get(PREVIEW_COLUMNS_KEY)
    if isinstance(declared, list) and declared:
        columns = _columns_from_meta(declared)
        filters = model_data.get(PREVIEW_FILTERS_KEY)
        if isinstance(filters, list):
            known = {column.key for column in columns}
            for column in _columns_from_meta(filters):
                if column.key not in known:
                    known.add(column.key)
                    columns.append(column)
        return columns

    items = model_data.get("items")
    first = next((item for item in items if isinstance(item, Mapping)), None) if isinstance(items, list) else None
    if first is None:
        return []
    return [PreviewColumnMeta(key=str(key), label=str(key)) for key in first.keys()]


def normalize_rows(model_data: Mapping[str, Any]) -> list[Row]:
    """Record rows with a 1-based string ``__row_id`` entity key."""
    items = model_data.get("items")
    if not isinstance(items, list):
        return []
    records = [item for item in items if isinstance(item, Mapping)]
    return [{ODATA_ROW_ID: str(index + 1), **row} for index, row in enumerate(records)]


def build_metadata_xml(columns: list[PreviewColumnMeta]) -> str:
    """EDMX V2 document for one entity type keyed by the row id."""
    properties = []
    for column in columns:
        name = escape(column.key, {'"': "&quot;"})
        label = escape(column.label or column.key, {'"': "&quot;"})
        if column.type == FieldType.NUMBER:
            properties.append(
                f'<Property Name="{name}" Type="Edm.Decimal" Nullable="true" '
                f'Precision="{ODATA_DECIMAL_PRECISION}" Scale="{ODATA_DECIMAL_SCALE}" sap:label="{label}" />'
            )
        else:
            properties.append(
                f'<Property Name="{name}" Type="Edm.String" Nullable="true" sap:label="{label}" />'
            )

    return f"""<?xml version="1.0" encoding="utf-8"?>
<edmx:Edmx Version="1.0" xmlns:edmx="http://schemas.microsoft.com/ado/2007/06/edmx">
  <edmx:DataServices m:DataServiceVersion="2.0" xmlns:m="http://schemas.microsoft.com/ado/2007/08/dataservices/metadata">
    <Schema Namespace="{ODATA_NAMESPACE}" xmlns="http://schemas.microsoft.com/ado/2008/09/edm" xmlns:sap="http://www.sap.com/Protocols/SAPData">
      <EntityType Name="{ODATA_ENTITY_TYPE}">
        <Key>
          <PropertyRef Name="{ODATA_ROW_ID}" />
        </Key>
        <Property Name="{ODATA_ROW_ID}" Type="Edm.String" Nullable="false" sap:label="Row ID" />
        {"".join(properties)}
      </EntityType>
      <EntityContainer Name="{ODATA_NAMESPACE}_Entities" m:IsDefaultEntityContainer="true">
        <EntitySet Name="{ODATA_ENTITY_SET}" EntityType="{ODATA_ENTITY_TYPE_FQN}" />
      </EntityContainer>
    </Schema>
  </edmx:DataServices>
</edmx:Edmx>"""


def parse_entity_key(segment: str) -> Optional[str]:
    """Key of a ``PreviewSet('<key>')`` segment, or None for other segments."""
    match = _ENTITY_KEY.match(segment)
    if not match:
        return None
    quoted, numeric = match.groups()
    return _unescape(quoted) if quoted is not None else numeric


def is_entity_set_segment(segment: str) -> bool:
    return segment.startswith(ODATA_ENTITY_SET)


# =============================================================================
# Service
# =============================================================================


class MockODataService:
    """
    Read-only OData V2 service for one preview.

    Args:
        model_data: Preview model data (``items`` plus optional column metadata)
        strict_filters: Reject unrecognized ``$filter`` clauses
    """

    def __init__(self, model_data: Mapping[str, Any], strict_filters: bool = False) -> None:
        self.columns = normalize_columns(model_data)
        self.rows = normalize_rows(model_data)
        self.strict_filters = strict_filters

    def service_document(self) -> dict[str, Any]:
        return {"d": {"EntitySets": [ODATA_ENTITY_SET]}}

    def metadata_document(self) -> str:
        return build_metadata_xml(self.columns)

    def _filtered(self, query: ODataQuery) -> list[Row]:
        return apply_filter(self.rows, query.filter, strict=self.strict_filters)

    def count(self, query: ODataQuery) -> int:
        """Number of rows matching ``$filter``."""
        return len(self._filtered(query))

    def query(self, query: ODataQuery, service_root: str) -> dict[str, Any]:
        """
        Run a collection query.

        Pipeline: filter, order, skip/top, select, row metadata. ``__count``
        is the filtered length before paging.
        """
        filtered = self._filtered(query)
        ordered = apply_order_by(filtered, query.orderby)
        paged = apply_paging(ordered, query.skip, query.top)
        selected = apply_select(paged, query.select)

        logger.debug(
            "OData collection query",
            total=len(self.rows),
            filtered=len(filtered),
            returned=len(selected),
        )

        return {
            "d": {
                "results": attach_entity_metadata(selected, service_root),
                "__count": str(len(filtered)),
            }
        }

    def entity(self, key: str, service_root: str, select: Optional[str] = None) -> Optional[dict[str, Any]]:
        """Read a single entity by row id."""
        for row in self.rows:
            if row.get(ODATA_ROW_ID) == key:
                projected = apply_select([row], select)
                return {"d": attach_entity_metadata(projected, service_root)[0]}
        return None
