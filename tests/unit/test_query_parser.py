"""Unit tests for the query option parser."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from resource_server.adapters.inbound.query_parser import QueryParseError, QueryParser, tokenize
from resource_server.domain.entities import Customer, Order
from resource_server.domain.value_objects import (
    AggregateFunc,
    AggregateItem,
    Aggregation,
    ComparisonExpr,
    ComparisonOp,
    LiteralExpr,
    LogicalExpr,
    LogicalOp,
    OrderByItem,
    PropertyExpr,
)
from resource_server.ports.inbound import QueryOptions


@pytest.mark.unit
class TestTokenizer:
    """Tests for tokenize."""

    def test_token_kinds(self) -> None:
        tokens = tokenize("Customer/City eq 'O''Brien' and Amount ge 10.5")

        assert [t.text for t in tokens][:-1] == [
            "Customer", "/", "City", "eq", "'O''Brien'", "and", "Amount", "ge", "10.5",
        ]
        assert tokens[-1].text == ""

    def test_unexpected_character(self) -> None:
        with pytest.raises(QueryParseError, match="position 7"):
            tokenize("Amount = 5")

    def test_unterminated_string(self) -> None:
        with pytest.raises(QueryParseError):
            tokenize("Name eq 'Sue")


@pytest.mark.unit
class TestFilterParsing:
    """Tests for $filter."""

    def test_simple_comparison(self, parser: QueryParser) -> None:
        expr = parser.parse_filter(Order.SCHEMA, "Amount gt 100")

        assert expr == ComparisonExpr(
            PropertyExpr(("Amount",)), ComparisonOp.GT, LiteralExpr(Decimal(100))
        )

    def test_literal_coerced_to_decimal(self, parser: QueryParser) -> None:
        expr = parser.parse_filter(Order.SCHEMA, "Amount eq 100")

        assert isinstance(expr.right.value, Decimal)

    def test_precedence(self, parser: QueryParser) -> None:
        expr = parser.parse_filter(Order.SCHEMA, "Id eq 1 or Id eq 2 and Amount gt 5")

        assert isinstance(expr, LogicalExpr)
        assert expr.op == LogicalOp.OR
        assert expr.operands[1].op == LogicalOp.AND

    def test_parentheses_override_precedence(self, parser: QueryParser) -> None:
        expr = parser.parse_filter(Order.SCHEMA, "(Id eq 1 or Id eq 2) and Amount gt 5")

        assert expr.op == LogicalOp.AND
        assert expr.operands[0].op == LogicalOp.OR

    def test_not(self, parser: QueryParser) -> None:
        expr = parser.parse_filter(Customer.SCHEMA, "not City eq 'NBI'")

        assert expr.op == LogicalOp.NOT
        assert str(expr) == "not (City eq 'NBI')"

    def test_round_trip_text(self, parser: QueryParser) -> None:
        expr = parser.parse_filter(Order.SCHEMA, "Amount gt 100 and Customer/City eq 'NBI'")

        assert str(expr) == "(Amount gt 100 and Customer/City eq 'NBI')"

    def test_escaped_quote(self, parser: QueryParser) -> None:
        expr = parser.parse_filter(Customer.SCHEMA, "Name eq 'O''Brien'")

        assert expr.right == LiteralExpr("O'Brien")

    def test_null_literal(self, parser: QueryParser) -> None:
        expr = parser.parse_filter(Order.SCHEMA, "CustomerId eq null")

        assert expr.right == LiteralExpr(None)

    def test_datetime_with_offset(self, parser: QueryParser) -> None:
        expr = parser.parse_filter(Order.SCHEMA, "OrderDate lt 2024-04-07T03:00:00+03:00")

        assert expr.right.value == datetime(2024, 4, 7, tzinfo=timezone.utc)

    def test_date_means_midnight_utc(self, parser: QueryParser) -> None:
        expr = parser.parse_filter(Order.SCHEMA, "OrderDate ge 2024-04-07")

        assert expr.right.value == datetime(2024, 4, 7, tzinfo=timezone.utc)

    def test_zulu_suffix(self, parser: QueryParser) -> None:
        expr = parser.parse_filter(Order.SCHEMA, "OrderDate ge 2024-04-07T00:00:00Z")

        assert expr.right.value == datetime(2024, 4, 7, tzinfo=timezone.utc)

    def test_navigation_path(self, parser: QueryParser) -> None:
        expr = parser.parse_filter(Order.SCHEMA, "Customer/Name eq 'Joe'")

        assert expr.left == PropertyExpr(("Customer", "Name"))

    def test_property_to_property(self, parser: QueryParser) -> None:
        expr = parser.parse_filter(Order.SCHEMA, "Id lt Amount")

        assert expr == ComparisonExpr(
            PropertyExpr(("Id",)), ComparisonOp.LT, PropertyExpr(("Amount",))
        )

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "Amount",
            "Amount gt",
            "Amount gt 'abc'",
            "Id eq 1.5",
            "Name eq 5",
            "OrderDate ge 2024-04-07T00:00:00",
            "OrderDate ge 2024-13-45",
            "Unknown eq 1",
            "Customer eq 1",
            "Customer/Unknown eq 1",
            "(Amount gt 1",
            "Amount gt 1)",
            "Amount gt 1 and",
            "Name eq City eq 'x'",
            "Amount gt 1 Id eq 2",
            "Name eq OrderDate",
            "1 lt 'a'",
            "'a' eq 2024-04-07",
            "true eq 1",
            "1.5 gt 2024-04-07T00:00:00Z",
        ],
    )
    def test_invalid_filters(self, parser: QueryParser, text: str) -> None:
        with pytest.raises(QueryParseError):
            parser.parse_filter(Order.SCHEMA, text)

    @pytest.mark.parametrize("text", ["1 lt 2.5", "'a' lt 'b'", "null eq 1", "true ne false"])
    def test_literal_comparisons_of_same_kind(self, parser: QueryParser, text: str) -> None:
        expr = parser.parse_filter(Order.SCHEMA, text)

        assert isinstance(expr, ComparisonExpr)

    def test_chains_are_flat(self, parser: QueryParser) -> None:
        expr = parser.parse_filter(Order.SCHEMA, " and ".join(["Id gt 0"] * 450))

        assert expr.op == LogicalOp.AND
        assert len(expr.operands) == 450
        assert all(isinstance(o, ComparisonExpr) for o in expr.operands)

    def test_term_limit(self) -> None:
        parser = QueryParser(max_terms=6)

        parser.parse_filter(Order.SCHEMA, "Id eq 1 or Id eq 2 or Id eq 3")
        with pytest.raises(QueryParseError, match="terms"):
            parser.parse_filter(Order.SCHEMA, "Id eq 1 or Id eq 2 or Id eq 3 or Id eq 4")

    def test_collection_navigation_rejected(self, parser: QueryParser) -> None:
        with pytest.raises(QueryParseError, match="Collection navigation"):
            parser.parse_filter(Customer.SCHEMA, "Orders/Amount gt 1")

    def test_depth_limit(self) -> None:
        parser = QueryParser(max_depth=2)

        parser.parse_filter(Order.SCHEMA, "not not Id eq 1")
        parser.parse_filter(Order.SCHEMA, "((Id eq 1))")
        with pytest.raises(QueryParseError, match="nesting"):
            parser.parse_filter(Order.SCHEMA, "not not not Id eq 1")
        with pytest.raises(QueryParseError, match="nesting"):
            parser.parse_filter(Order.SCHEMA, "(((Id eq 1)))")


@pytest.mark.unit
class TestOptionParsing:
    """Tests for the remaining system query options."""

    def test_empty_options(self, parser: QueryParser) -> None:
        spec = parser.parse(Order.SCHEMA, QueryOptions())

        assert spec.filter is None
        assert spec.orderby == ()
        assert spec.skip is None and spec.top is None
        assert spec.expand == frozenset()
        assert spec.select is None
        assert not spec.count
        assert not spec.is_aggregate

    def test_orderby(self, parser: QueryParser) -> None:
        spec = parser.parse(Order.SCHEMA, QueryOptions(orderby="Customer/City, Amount desc, Id asc"))

        assert spec.orderby == (
            OrderByItem(("Customer", "City")),
            OrderByItem(("Amount",), ascending=False),
            OrderByItem(("Id",)),
        )

    @pytest.mark.parametrize("text", ["", "Amount sideways", "Amount,", "Nope"])
    def test_invalid_orderby(self, parser: QueryParser, text: str) -> None:
        with pytest.raises(QueryParseError):
            parser.parse(Order.SCHEMA, QueryOptions(orderby=text))

    def test_skip_and_top(self, parser: QueryParser) -> None:
        spec = parser.parse(Order.SCHEMA, QueryOptions(skip="2", top="3"))

        assert (spec.skip, spec.top) == (2, 3)

    @pytest.mark.parametrize("option", ["skip", "top"])
    @pytest.mark.parametrize("value", ["-1", "abc", "1.5", "", "²", "٣", "9" * 5000])
    def test_invalid_paging(self, parser: QueryParser, option: str, value: str) -> None:
        with pytest.raises(QueryParseError):
            parser.parse(Order.SCHEMA, QueryOptions(**{option: value}))

    def test_top_limit(self) -> None:
        parser = QueryParser(max_top=5)

        assert parser.parse(Order.SCHEMA, QueryOptions(top="5")).top == 5
        with pytest.raises(QueryParseError, match="exceed"):
            parser.parse(Order.SCHEMA, QueryOptions(top="6"))

    def test_expand(self, parser: QueryParser) -> None:
        spec = parser.parse(Customer.SCHEMA, QueryOptions(expand="Orders"))

        assert spec.expand == frozenset({"Orders"})

    @pytest.mark.parametrize("text", ["Customer", "Name", "Orders($select=Id)", "*"])
    def test_invalid_expand(self, parser: QueryParser, text: str) -> None:
        with pytest.raises(QueryParseError):
            parser.parse(Customer.SCHEMA, QueryOptions(expand=text))

    def test_select(self, parser: QueryParser) -> None:
        assert parser.parse(Customer.SCHEMA, QueryOptions(select="Name,City,Name")).select == (
            "Name",
            "City",
        )
        assert parser.parse(Customer.SCHEMA, QueryOptions(select="*")).select is None

    def test_select_navigation_rejected(self, parser: QueryParser) -> None:
        with pytest.raises(QueryParseError, match="expand"):
            parser.parse(Customer.SCHEMA, QueryOptions(select="Orders"))

    def test_count(self, parser: QueryParser) -> None:
        assert parser.parse(Order.SCHEMA, QueryOptions(count="true")).count
        assert parser.parse(Order.SCHEMA, QueryOptions(count="TRUE")).count
        assert not parser.parse(Order.SCHEMA, QueryOptions(count="false")).count
        with pytest.raises(QueryParseError):
            parser.parse(Order.SCHEMA, QueryOptions(count="yes"))


@pytest.mark.unit
class TestApplyParsing:
    """Tests for $apply."""

    def test_aggregate(self, parser: QueryParser) -> None:
        spec = parser.parse(
            Order.SCHEMA, QueryOptions(apply="aggregate(Amount with average as AverageAmount)")
        )

        assert spec.apply == Aggregation(
            aggregates=(AggregateItem(("Amount",), AggregateFunc.AVERAGE, "AverageAmount"),)
        )

    def test_count_alias(self, parser: QueryParser) -> None:
        spec = parser.parse(Order.SCHEMA, QueryOptions(apply="aggregate($count as Total)"))

        assert spec.apply.aggregates == (AggregateItem(None, AggregateFunc.COUNT, "Total"),)

    def test_groupby(self, parser: QueryParser) -> None:
        spec = parser.parse(
            Order.SCHEMA,
            QueryOptions(
                apply="groupby((CustomerId, Customer/City), aggregate(Amount with sum as Total))",
                orderby="Total desc",
            ),
        )

        assert spec.apply.group_by == (("CustomerId",), ("Customer", "City"))
        assert spec.apply.output_names == ["CustomerId", "Customer/City", "Total"]
        assert spec.orderby == (OrderByItem(("Total",), ascending=False),)

    def test_groupby_without_aggregate(self, parser: QueryParser) -> None:
        spec = parser.parse(Order.SCHEMA, QueryOptions(apply="groupby((CustomerId))"))

        assert spec.apply == Aggregation(aggregates=(), group_by=(("CustomerId",),))

    @pytest.mark.parametrize(
        "text",
        [
            "aggregate(Amount with median as X)",
            "aggregate(OrderDate with sum as X)",
            "aggregate(Amount with sum)",
            "aggregate(Amount with sum as X, Amount with max as X)",
            "aggregate(Amount with sum as $x)",
            "groupby(CustomerId)",
            "filter(Amount gt 1)",
            "aggregate(Amount with sum as X) extra",
        ],
    )
    def test_invalid_apply(self, parser: QueryParser, text: str) -> None:
        with pytest.raises(QueryParseError):
            parser.parse(Order.SCHEMA, QueryOptions(apply=text))

    def test_orderby_must_name_output(self, parser: QueryParser) -> None:
        with pytest.raises(QueryParseError, match="not an output"):
            parser.parse(
                Order.SCHEMA,
                QueryOptions(apply="aggregate(Amount with sum as Total)", orderby="Amount"),
            )

    @pytest.mark.parametrize(
        "options",
        [
            {"expand": "Customer"},
            {"select": "Amount"},
            {"count": "true"},
        ],
    )
    def test_apply_exclusive_options(self, parser: QueryParser, options: dict) -> None:
        with pytest.raises(QueryParseError, match="cannot be combined"):
            parser.parse(
                Order.SCHEMA,
                QueryOptions(apply="aggregate($count as N)", **options),
            )
