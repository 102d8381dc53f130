"""
Unit tests for the mock OData query engine.
"""

from typing import Any

import pytest

from src.core.exceptions import ODataQueryError
from src.services.odata_engine import (
    ComparisonClause,
    MockODataService,
    ODataQuery,
    StringFunctionClause,
    UnrecognizedClause,
    apply_filter,
    apply_order_by,
    apply_paging,
    apply_select,
    normalize_columns,
    parse_entity_key,
    parse_filter,
    parse_literal,
    split_conjunction,
)

ROOT = "http://test/api/v1/preview/p1/odata/"


def _rows(key: str, values: list[Any]) -> list[dict[str, Any]]:
    return [{"__row_id": str(i + 1), key: value} for i, value in enumerate(values)]


class TestFilterParsing:
    """Tests for the $filter clause parser."""

    def test_split_respects_quoted_and(self) -> None:
        clauses = split_conjunction("Name eq 'Salt and Pepper' and Qty gt 2")
        assert clauses == ["Name eq 'Salt and Pepper'", "Qty gt 2"]

    def test_wrapping_parentheses_are_stripped(self) -> None:
        assert split_conjunction("(A eq 1 and B eq 2)") == ["A eq 1", "B eq 2"]
        assert split_conjunction("(A eq 1) and (B eq 2)") == ["A eq 1", "B eq 2"]

    def test_clause_variants(self) -> None:
        clauses = parse_filter(
            "substringof('o''k', Name) and startswith(Name,'A') eq false and Qty ge 5 and foo(bar)"
        )

        assert clauses == [
            StringFunctionClause(function="substringof", field="Name", needle="o'k"),
            StringFunctionClause(function="startswith", field="Name", needle="A", negated=True),
            ComparisonClause(field="Qty", operator="ge", value=5),
            UnrecognizedClause(text="foo(bar)"),
        ]

    @pytest.mark.parametrize(
        ("token", "expected"),
        [
            ("'It''s'", "It's"),
            ("datetime'2024-01-01T00:00:00'", "2024-01-01T00:00:00"),
            ("true", True),
            ("FALSE", False),
            ("null", None),
            ("42", 42),
            ("12.50m", 12.5),
            ("7L", 7),
            ("Open", "Open"),
        ],
    )
    def test_literals(self, token: str, expected: Any) -> None:
        value = parse_literal(token)
        assert value == expected
        assert type(value) is type(expected)


class TestFilterEvaluation:
    """Tests for $filter evaluation."""

    def test_substringof_is_case_insensitive(self) -> None:
        rows = _rows("ProductName", ["Laptop", "Mouse"])

        result = apply_filter(rows, "substringof('lap', ProductName)")

        assert [r["ProductName"] for r in result] == ["Laptop"]

    def test_empty_equality_matches_everything(self) -> None:
        rows = _rows("Status", ["Open", "Closed", None])

        assert apply_filter(rows, "Status eq ''") == rows
        assert apply_filter(rows, "Status ne null") == rows

    def test_numeric_comparison_coerces_strings(self) -> None:
        rows = _rows("Qty", [5, "12", 3, None])

        result = apply_filter(rows, "Qty gt 4")

        assert [r["Qty"] for r in result] == [5, "12"]

    def test_text_comparison_ignores_case(self) -> None:
        rows = _rows("Status", ["Open", "OPEN", "Closed"])

        assert len(apply_filter(rows, "Status eq 'open'")) == 2
        assert len(apply_filter(rows, "Status ne 'open'")) == 1

    def test_booleans_compare_as_text(self) -> None:
        rows = _rows("Flag", [True, False, 1])

        result = apply_filter(rows, "Flag eq true")

        assert [r["Flag"] for r in result] == [True]

    def test_contains_and_endswith(self) -> None:
        rows = _rows("Name", ["Alpha", "Beta", "Alphabet"])

        assert len(apply_filter(rows, "contains(Name,'pha')")) == 2
        assert [r["Name"] for r in apply_filter(rows, "endswith(Name,'bet')")] == ["Alphabet"]
        assert [r["Name"] for r in apply_filter(rows, "substringof('pha',Name) eq false")] == ["Beta"]

    def test_unrecognized_clause_fails_open(self) -> None:
        rows = _rows("Qty", [1, 2, 3])

        assert apply_filter(rows, "round(Qty) eq 1") == rows
        assert len(apply_filter(rows, "length(Name) gt 2 and Qty gt 1")) == 2

    def test_unrecognized_clause_strict(self) -> None:
        rows = _rows("Qty", [1, 2, 3])

        with pytest.raises(ODataQueryError) as exc_info:
            apply_filter(rows, "length(Name) gt 2", strict=True)
        assert exc_info.value.status_code == 400

    def test_filter_is_idempotent(self) -> None:
        rows = _rows("Qty", [5, 20, 1, 15])
        once = apply_filter(rows, "Qty ge 5")
        assert apply_filter(once, "Qty ge 5") == once


class TestOrderPagingSelect:
    """Tests for $orderby, $skip/$top and $select."""

    def test_order_desc_then_top(self) -> None:
        rows = _rows("Quantity", [5, 20, 1, 15])

        ordered = apply_order_by(rows, "Quantity desc")

        assert [r["Quantity"] for r in apply_paging(ordered, 0, 2)] == [20, 15]

    def test_order_is_stable_and_multi_key(self) -> None:
        rows = [
            {"__row_id": "1", "Status": "open", "Qty": 2},
            {"__row_id": "2", "Status": "Closed", "Qty": 9},
            {"__row_id": "3", "Status": "Open", "Qty": 1},
            {"__row_id": "4", "Status": "closed", "Qty": 9},
        ]

        ordered = apply_order_by(rows, "Status asc, Qty")

        assert [r["__row_id"] for r in ordered] == ["2", "4", "3", "1"]

    def test_numeric_strings_order_numerically(self) -> None:
        rows = _rows("Qty", ["10", "9", 100])
        assert [r["Qty"] for r in apply_order_by(rows, "Qty")] == ["9", "10", 100]

    @pytest.mark.parametrize(("skip", "top"), [(0, None), (2, 1), (3, 10), (10, 2)])
    def test_paging_length(self, skip: int, top: Any) -> None:
        rows = _rows("Qty", list(range(5)))
        expected = max(0, 5 - skip) if top is None else min(max(0, 5 - skip), top)
        assert len(apply_paging(rows, skip, top)) == expected

    def test_select_forces_row_id(self) -> None:
        rows = [{"__row_id": "1", "A": 1, "B": 2, "C": 3}]

        assert apply_select(rows, "Nav/A, C, A, Missing") == [{"A": 1, "C": 3, "__row_id": "1"}]
        assert apply_select(rows, " , ") == rows

    def test_query_options_tolerate_garbage(self) -> None:
        query = ODataQuery.from_params({"$skip": "-3", "$top": "abc", "token": "t"})

        assert query.skip == 0
        assert query.top is None
        assert ODataQuery.from_params({"$top": "5rows"}).top == 5
        assert ODataQuery.from_params({"$top": "0"}).top is None


class TestMockODataService:
    """Tests for the service facade."""

    def test_service_document(self, order_model_data) -> None:
        service = MockODataService(order_model_data)
        assert service.service_document() == {"d": {"EntitySets": ["PreviewSet"]}}

    def test_metadata_types(self, order_model_data) -> None:
        xml = MockODataService(order_model_data).metadata_document()

        assert '<PropertyRef Name="__row_id" />' in xml
        assert '<Property Name="Quantity" Type="Edm.Decimal" Nullable="true" Precision="16" Scale="3" sap:label="Quantity" />' in xml
        assert '<Property Name="Status" Type="Edm.String"' in xml
        assert '<EntitySet Name="PreviewSet" EntityType="PreviewService.PreviewType" />' in xml

    def test_columns_fall_back_to_first_row(self) -> None:
        columns = normalize_columns({"items": ["x", {"A": 1, "B": True}]})

        assert [(c.key, c.type) for c in columns] == [("A", "string"), ("B", "string")]

    def test_filter_columns_are_exposed(self) -> None:
        columns = normalize_columns(
            {
                "__previewColumns": [{"key": "A", "label": "A"}, {"label": "no key"}],
                "__previewFilters": [{"key": "A"}, {"key": "Plant", "label": " Plant ", "type": "boolean"}],
            }
        )

        assert [(c.key, c.label, c.type) for c in columns] == [("A", "A", "string"), ("Plant", "Plant", "boolean")]

    def test_query_pipeline(self, order_model_data) -> None:
        service = MockODataService(order_model_data)
        query = ODataQuery.from_params(
            {"$filter": "Status eq 'Open'", "$orderby": "Quantity desc", "$top": "1", "$select": "OrderID"}
        )

        body = service.query(query, ROOT)

        assert body["d"]["__count"] == "2"
        assert body["d"]["results"] == [
            {
                "__metadata": {"uri": f"{ROOT}PreviewSet('1')", "type": "PreviewService.PreviewType"},
                "OrderID": "A1",
                "__row_id": "1",
            }
        ]

    def test_count(self, order_model_data) -> None:
        service = MockODataService(order_model_data)
        assert service.count(ODataQuery.from_params({"$filter": "Quantity lt 10"})) == 2
        assert service.count(ODataQuery()) == 3

    def test_rows_get_sequential_ids(self) -> None:
        service = MockODataService({"items": [{"a": 1}, "skip", {"a": 2}]})
        assert [r["__row_id"] for r in service.rows] == ["1", "2"]

    def test_entity_lookup(self, order_model_data) -> None:
        service = MockODataService(order_model_data)

        entity = service.entity("2", ROOT)

        assert entity["d"]["OrderID"] == "A2"
        assert entity["d"]["__metadata"]["uri"] == f"{ROOT}PreviewSet('2')"
        assert service.entity("99", ROOT) is None

    def test_strict_service_rejects_unknown_clauses(self, order_model_data) -> None:
        service = MockODataService(order_model_data, strict_filters=True)
        with pytest.raises(ODataQueryError):
            service.count(ODataQuery(filter="round(Quantity) eq 1"))

    def test_entity_key_parsing(self) -> None:
        assert parse_entity_key("PreviewSet('a''b')") == "a'b"
        assert parse_entity_key("PreviewSet(7)") == "7"
        assert parse_entity_key("PreviewSet") is None
        assert parse_entity_key("Other('1')") is None
