"""Query option parser.

Converts OData-style system query options into a schema-checked
``QuerySpec`` that the query engine can evaluate.

Supported options:
    - $filter   boolean expression: or < and < not < comparison
    - $orderby  comma-separated ``path [asc|desc]``
    - $skip     non-negative integer
    - $top      non-negative integer, bounded by ``max_top``
    - $expand   comma-separated navigation properties
    - $select   comma-separated scalar properties, or ``*``
    - $count    ``true`` or ``false``
    - $apply    ``aggregate(...)`` or ``groupby((...), aggregate(...))``

Filter literals:
    - integers (``100``) and decimals (``99.95``)
    - single-quoted strings, with ``''`` as an escaped quote
    - ``true``, ``false``, ``null``
    - unquoted ISO-8601 timestamps with ``Z`` or an offset
      (``2024-04-07T00:00:00Z``); a bare date means midnight UTC

Literals compared with a property are coerced to that property's type at
parse time, so type errors are reported before evaluation starts.

Example:
    >>> parser = QueryParser()
    >>> expr = parser.parse_filter(Order.SCHEMA, "Amount gt 100 and Customer/City eq 'NBI'")
    >>> print(expr)
    (Amount gt 100 and Customer/City eq 'NBI')
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum

from resource_server.domain.entities import SCHEMAS, EntitySchema, FieldDef, FieldType
from resource_server.domain.value_objects import (
    AggregateFunc,
    AggregateItem,
    Aggregation,
    ComparisonExpr,
    ComparisonOp,
    Expression,
    LiteralExpr,
    LogicalExpr,
    LogicalOp,
    OrderByItem,
    PropertyExpr,
    QuerySpec,
)
from resource_server.ports.inbound import QueryOptions


class QueryParseError(Exception):
    """Malformed or unsupported query option."""

    pass


class TokenKind(Enum):
    """Lexical token kinds."""

    LPAREN = "LPAREN"
    RPAREN = "RPAREN"
    COMMA = "COMMA"
    SLASH = "SLASH"
    STRING = "STRING"
    DATETIME = "DATETIME"
    NUMBER = "NUMBER"
    IDENT = "IDENT"
    END = "END"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    position: int


_TOKEN_RE = re.compile(
    r"(?P<WS>\s+)"
    r"|(?P<LPAREN>\()"
    r"|(?P<RPAREN>\))"
    r"|(?P<COMMA>,)"
    r"|(?P<SLASH>/)"
    r"|(?P<STRING>'(?:[^']|'')*')"
    r"|(?P<DATETIME>\d{4}-\d{2}-\d{2}(?:T\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:\d{2})?)?)"
    r"|(?P<NUMBER>-?\d+(?:\.\d+)?)"
    r"|(?P<IDENT>\$?[A-Za-z_][A-Za-z0-9_]*)"
)

_COMPARISON_OPS = {op.value: op for op in ComparisonOp}
_KEYWORDS = {"and", "or", "not", *_COMPARISON_OPS}
_NUMERIC_TYPES = {FieldType.INTEGER, FieldType.DECIMAL}
_PAGING_RE = re.compile(r"[0-9]{1,18}")


def tokenize(text: str) -> list[Token]:
    """Split option text into tokens, ending with an END token."""
    tokens: list[Token] = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise QueryParseError(f"Unexpected character {text[pos]!r} at position {pos}")
        kind = match.lastgroup
        if kind != "WS":
            tokens.append(Token(TokenKind(kind), match.group(), pos))
        pos = match.end()
    tokens.append(Token(TokenKind.END, "", len(text)))
    return tokens


class _TokenStream:
    """Cursor over a token list."""

    def __init__(self, tokens: list[Token]) -> None:
        self._tokens = tokens
        self._index = 0

    def peek(self) -> Token:
        return self._tokens[self._index]

    def next(self) -> Token:
        token = self._tokens[self._index]
        if token.kind is not TokenKind.END:
            self._index += 1
        return token

    def at_end(self) -> bool:
        return self.peek().kind is TokenKind.END

    def accept(self, kind: TokenKind) -> bool:
        if self.peek().kind is kind:
            self.next()
            return True
        return False

    def accept_keyword(self, word: str) -> bool:
        token = self.peek()
        if token.kind is TokenKind.IDENT and token.text == word:
            self.next()
            return True
        return False

    def expect(self, kind: TokenKind) -> Token:
        token = self.next()
        if token.kind is not kind:
            raise QueryParseError(_describe_unexpected(token, kind.value.lower()))
        return token

    def expect_keyword(self, word: str) -> None:
        if not self.accept_keyword(word):
            raise QueryParseError(_describe_unexpected(self.peek(), f"'{word}'"))


def _describe_unexpected(token: Token, expected: str) -> str:
    if token.kind is TokenKind.END:
        return f"Expected {expected} but reached end of input"
    return f"Expected {expected} at position {token.position}, found {token.text!r}"


def _parse_datetime(text: str) -> datetime:
    try:
        if "T" not in text:
            return datetime.combine(date.fromisoformat(text), time(), tzinfo=timezone.utc)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)
    except ValueError as e:
        raise QueryParseError(f"Invalid timestamp {text!r}: {e}") from e
    if value.tzinfo is None:
        raise QueryParseError(f"Timestamp {text!r} must include 'Z' or a UTC offset")
    return value


def _is_boolean(expr: Expression) -> bool:
    if isinstance(expr, (ComparisonExpr, LogicalExpr)):
        return True
    return isinstance(expr, LiteralExpr) and isinstance(expr.value, bool)


def bind_path(schema: EntitySchema, path: tuple[str, ...]) -> FieldDef:
    """Resolve a property path to the scalar field it denotes.

    Raises:
        QueryParseError: If the path does not name a scalar field.
    """
    head = path[0]
    if len(path) == 1:
        field_def = schema.field(head)
        if field_def is not None:
            return field_def
        if schema.navigation(head) is not None:
            raise QueryParseError(
                f"Navigation property '{head}' cannot be used as a value; use $expand"
            )
        raise QueryParseError(f"Unknown property '{head}' on {schema.entity_set}")

    if len(path) > 2:
        raise QueryParseError(f"Property path '{'/'.join(path)}' is too deep")
    nav = schema.navigation(head)
    if nav is None:
        raise QueryParseError(f"Unknown navigation property '{head}' on {schema.entity_set}")
    if nav.collection:
        raise QueryParseError(f"Collection navigation '{head}' cannot be used in a path")
    target = SCHEMAS[nav.target]
    field_def = target.field(path[1])
    if field_def is None:
        raise QueryParseError(f"Unknown property '{path[1]}' on {target.entity_set}")
    return field_def


def _coerce_literal(value: object, field_def: FieldDef) -> object:
    """Convert a literal to the type of the property it is compared with."""
    if value is None:
        return None
    ft = field_def.field_type
    if isinstance(value, bool):
        pass
    elif ft is FieldType.INTEGER and isinstance(value, int):
        return value
    elif ft is FieldType.DECIMAL and isinstance(value, (int, Decimal)):
        return Decimal(value)
    elif ft is FieldType.STRING and isinstance(value, str):
        return value
    elif ft is FieldType.DATETIME and isinstance(value, datetime):
        return value
    raise QueryParseError(
        f"Cannot compare {field_def.wire_name} ({ft.value}) with {LiteralExpr(value)}"
    )


def _literal_kind(value: object) -> str:
    # bool before int: True is an int to Python but not to $filter
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, Decimal)):
        return "number"
    if isinstance(value, datetime):
        return "datetime"
    return "string"


class _FilterParser:
    """Recursive-descent parser for one $filter expression."""

    def __init__(
        self, stream: _TokenStream, schema: EntitySchema, max_depth: int, max_terms: int
    ) -> None:
        self._stream = stream
        self._schema = schema
        self._max_depth = max_depth
        self._max_terms = max_terms
        self._terms = 0

    def parse(self) -> Expression:
        expr = self._parse_or(0)
        if not self._stream.at_end():
            raise QueryParseError(_describe_unexpected(self._stream.peek(), "end of filter"))
        return self._boolean(expr)

    def _parse_or(self, depth: int) -> Expression:
        operands = [self._parse_and(depth)]
        while self._stream.accept_keyword("or"):
            operands.append(self._parse_and(depth))
        if len(operands) == 1:
            return operands[0]
        return LogicalExpr(LogicalOp.OR, tuple(self._boolean(o) for o in operands))

    def _parse_and(self, depth: int) -> Expression:
        operands = [self._parse_not(depth)]
        while self._stream.accept_keyword("and"):
            operands.append(self._parse_not(depth))
        if len(operands) == 1:
            return operands[0]
        return LogicalExpr(LogicalOp.AND, tuple(self._boolean(o) for o in operands))

    def _parse_not(self, depth: int) -> Expression:
        if self._stream.accept_keyword("not"):
            self._check_depth(depth + 1)
            operand = self._parse_not(depth + 1)
            return LogicalExpr(LogicalOp.NOT, (self._boolean(operand),))
        return self._parse_comparison(depth)

    def _parse_comparison(self, depth: int) -> Expression:
        left = self._parse_operand(depth)
        token = self._stream.peek()
        if token.kind is TokenKind.IDENT and token.text in _COMPARISON_OPS:
            self._stream.next()
            right = self._parse_operand(depth)
            return self._bind_comparison(left, _COMPARISON_OPS[token.text], right)
        return left

    def _parse_operand(self, depth: int) -> Expression:
        self._terms += 1
        if self._terms > self._max_terms:
            raise QueryParseError(f"$filter has more than {self._max_terms} terms")
        token = self._stream.next()
        if token.kind is TokenKind.LPAREN:
            self._check_depth(depth + 1)
            expr = self._parse_or(depth + 1)
            self._stream.expect(TokenKind.RPAREN)
            return expr
        if token.kind is TokenKind.STRING:
            return LiteralExpr(token.text[1:-1].replace("''", "'"))
        if token.kind is TokenKind.NUMBER:
            if "." in token.text:
                return LiteralExpr(Decimal(token.text))
            return LiteralExpr(int(token.text))
        if token.kind is TokenKind.DATETIME:
            return LiteralExpr(_parse_datetime(token.text))
        if token.kind is TokenKind.IDENT:
            if token.text == "true":
                return LiteralExpr(True)
            if token.text == "false":
                return LiteralExpr(False)
            if token.text == "null":
                return LiteralExpr(None)
            if token.text in _KEYWORDS:
                raise QueryParseError(
                    f"Unexpected operator '{token.text}' at position {token.position}"
                )
            path = [token.text]
            while self._stream.accept(TokenKind.SLASH):
                path.append(self._stream.expect(TokenKind.IDENT).text)
            bind_path(self._schema, tuple(path))
            return PropertyExpr(tuple(path))
        raise QueryParseError(_describe_unexpected(token, "an operand"))

    def _bind_comparison(self, left: Expression, op: ComparisonOp, right: Expression) -> Expression:
        for side in (left, right):
            if isinstance(side, (ComparisonExpr, LogicalExpr)):
                raise QueryParseError(f"Cannot apply '{op.value}' to a boolean expression ({side})")

        if isinstance(left, PropertyExpr) and isinstance(right, PropertyExpr):
            left_type = bind_path(self._schema, left.path).field_type
            right_type = bind_path(self._schema, right.path).field_type
            if left_type != right_type and not {left_type, right_type} <= _NUMERIC_TYPES:
                raise QueryParseError(f"Cannot compare {left} ({left_type.value}) with {right} ({right_type.value})")
        elif isinstance(left, PropertyExpr):
            right = LiteralExpr(_coerce_literal(right.value, bind_path(self._schema, left.path)))
        elif isinstance(right, PropertyExpr):
            left = LiteralExpr(_coerce_literal(left.value, bind_path(self._schema, right.path)))
        elif left.value is not None and right.value is not None:
            if _literal_kind(left.value) != _literal_kind(right.value):
                raise QueryParseError(f"Cannot compare {left} with {right}")
        return ComparisonExpr(left, op, right)

    def _boolean(self, expr: Expression) -> Expression:
        if not _is_boolean(expr):
            raise QueryParseError(f"Expected a boolean expression, found '{expr}'")
        return expr

    def _check_depth(self, depth: int) -> None:
        if depth > self._max_depth:
            raise QueryParseError(f"$filter nesting exceeds {self._max_depth} levels")


def _parse_path(stream: _TokenStream) -> tuple[str, ...]:
    path = [stream.expect(TokenKind.IDENT).text]
    while stream.accept(TokenKind.SLASH):
        path.append(stream.expect(TokenKind.IDENT).text)
    return tuple(path)


def _parse_identifier_list(text: str, option: str) -> list[str]:
    stream = _TokenStream(tokenize(text))
    if stream.at_end():
        raise QueryParseError(f"{option} must not be empty")
    names = [stream.expect(TokenKind.IDENT).text]
    while stream.accept(TokenKind.COMMA):
        names.append(stream.expect(TokenKind.IDENT).text)
    if not stream.at_end():
        raise QueryParseError(f"Unsupported {option} syntax near {stream.peek().text!r}")
    return names


class QueryParser:
    """Parser for system query options.

    Example:
        >>> parser = QueryParser(max_top=100)
        >>> spec = parser.parse(Order.SCHEMA, QueryOptions(filter="Amount gt 100", top="2"))
        >>> spec.top
        2
    """

    def __init__(self, max_top: int = 10000, max_depth: int = 32, max_terms: int = 1000) -> None:
        """Initialize the parser.

        Args:
            max_top: Largest accepted $top.
            max_depth: Deepest accepted parenthesis/not nesting in $filter.
            max_terms: Most operands accepted in one $filter.
        """
        self._max_top = max_top
        self._max_depth = max_depth
        self._max_terms = max_terms

    def parse(self, schema: EntitySchema, options: QueryOptions) -> QuerySpec:
        """Parse all supplied query options for one entity set.

        Raises:
            QueryParseError: If any option is malformed or the options
                cannot be combined.
        """
        apply = self.parse_apply(schema, options.apply) if options.apply is not None else None
        expand = self.parse_expand(schema, options.expand) if options.expand is not None else frozenset()
        select = self.parse_select(schema, options.select) if options.select is not None else None
        count = self._parse_bool("$count", options.count)

        if apply is not None and (expand or select is not None or count):
            raise QueryParseError("$apply cannot be combined with $expand, $select or $count")

        top = self._parse_non_negative("$top", options.top)
        if top is not None and top > self._max_top:
            raise QueryParseError(f"$top must not exceed {self._max_top}")

        return QuerySpec(
            filter=self.parse_filter(schema, options.filter) if options.filter is not None else None,
            orderby=self.parse_orderby(schema, options.orderby, apply) if options.orderby is not None else (),
            skip=self._parse_non_negative("$skip", options.skip),
            top=top,
            expand=expand,
            select=select,
            count=count,
            apply=apply,
        )

    def parse_filter(self, schema: EntitySchema, text: str) -> Expression:
        """Parse a $filter expression."""
        stream = _TokenStream(tokenize(text))
        if stream.at_end():
            raise QueryParseError("$filter must not be empty")
        return _FilterParser(stream, schema, self._max_depth, self._max_terms).parse()

    def parse_orderby(
        self,
        schema: EntitySchema,
        text: str,
        apply: Aggregation | None = None,
    ) -> tuple[OrderByItem, ...]:
        """Parse $orderby. With $apply, keys must name aggregate output columns."""
        stream = _TokenStream(tokenize(text))
        if stream.at_end():
            raise QueryParseError("$orderby must not be empty")

        items = []
        while True:
            path = _parse_path(stream)
            ascending = True
            if stream.accept_keyword("desc"):
                ascending = False
            else:
                stream.accept_keyword("asc")

            if apply is not None:
                if "/".join(path) not in apply.output_names:
                    raise QueryParseError(
                        f"'{'/'.join(path)}' is not an output of $apply "
                        f"(available: {', '.join(apply.output_names)})"
                    )
            else:
                bind_path(schema, path)
            items.append(OrderByItem(path=path, ascending=ascending))

            if stream.at_end():
                return tuple(items)
            stream.expect(TokenKind.COMMA)

    def parse_expand(self, schema: EntitySchema, text: str) -> frozenset[str]:
        names = _parse_identifier_list(text, "$expand")
        for name in names:
            if schema.navigation(name) is None:
                raise QueryParseError(f"Unknown navigation property '{name}' on {schema.entity_set}")
        return frozenset(names)

    def parse_select(self, schema: EntitySchema, text: str) -> tuple[str, ...] | None:
        if text.strip() == "*":
            return None
        names = _parse_identifier_list(text, "$select")
        for name in names:
            bind_path(schema, (name,))
        return tuple(dict.fromkeys(names))

    def parse_apply(self, schema: EntitySchema, text: str) -> Aggregation:
        """Parse an $apply transformation."""
        stream = _TokenStream(tokenize(text))
        group_by: tuple[tuple[str, ...], ...] = ()
        aggregates: tuple[AggregateItem, ...] = ()

        if stream.accept_keyword("aggregate"):
            aggregates = self._parse_aggregate_args(stream, schema)
        elif stream.accept_keyword("groupby"):
            stream.expect(TokenKind.LPAREN)
            stream.expect(TokenKind.LPAREN)
            paths = [_parse_path(stream)]
            while stream.accept(TokenKind.COMMA):
                paths.append(_parse_path(stream))
            stream.expect(TokenKind.RPAREN)
            for path in paths:
                bind_path(schema, path)
            group_by = tuple(dict.fromkeys(paths))
            if stream.accept(TokenKind.COMMA):
                stream.expect_keyword("aggregate")
                aggregates = self._parse_aggregate_args(stream, schema)
            stream.expect(TokenKind.RPAREN)
        else:
            raise QueryParseError("$apply must be aggregate(...) or groupby(...)")

        if not stream.at_end():
            raise QueryParseError(_describe_unexpected(stream.peek(), "end of $apply"))

        aggregation = Aggregation(aggregates=aggregates, group_by=group_by)
        names = aggregation.output_names
        if len(names) != len(set(names)):
            raise QueryParseError("$apply output names must be unique")
        return aggregation

    def _parse_aggregate_args(
        self, stream: _TokenStream, schema: EntitySchema
    ) -> tuple[AggregateItem, ...]:
        stream.expect(TokenKind.LPAREN)
        items = []
        while True:
            if stream.accept_keyword("$count"):
                stream.expect_keyword("as")
                items.append(AggregateItem(None, AggregateFunc.COUNT, self._alias(stream)))
            else:
                path = _parse_path(stream)
                stream.expect_keyword("with")
                func_token = stream.expect(TokenKind.IDENT)
                try:
                    func = AggregateFunc(func_token.text)
                except ValueError:
                    raise QueryParseError(f"Unsupported aggregation '{func_token.text}'") from None
                stream.expect_keyword("as")
                field_def = bind_path(schema, path)
                if func in (AggregateFunc.SUM, AggregateFunc.AVERAGE) and field_def.field_type not in _NUMERIC_TYPES:
                    raise QueryParseError(f"Cannot {func.value} non-numeric property '{'/'.join(path)}'")
                items.append(AggregateItem(path, func, self._alias(stream)))

            if not stream.accept(TokenKind.COMMA):
                break
        stream.expect(TokenKind.RPAREN)
        return tuple(items)

    def _alias(self, stream: _TokenStream) -> str:
        token = stream.expect(TokenKind.IDENT)
        if token.text.startswith("$") or token.text in _KEYWORDS:
            raise QueryParseError(f"Invalid alias '{token.text}'")
        return token.text

    def _parse_non_negative(self, option: str, text: str | None) -> int | None:
        if text is None:
            return None
        value = text.strip()
        if _PAGING_RE.fullmatch(value) is None:
            raise QueryParseError(f"{option} must be a non-negative integer, got {text!r}")
        return int(value)

    def _parse_bool(self, option: str, text: str | None) -> bool:
        if text is None:
            return False
        value = text.strip().lower()
        if value not in ("true", "false"):
            raise QueryParseError(f"{option} must be true or false, got {text!r}")
        return value == "true"
