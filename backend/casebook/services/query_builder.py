"""
Query builder: compiles a declarative QueryDefinition into parameter-bound SQL.

SAFETY MODEL:
- Table and column names come only from the DataSourceRegistry allow-list.
  A name in the request is used to LOOK UP an identifier, never copied into SQL.
- Every filter value is bound as a `$n` placeholder with a parallel params list.
- Aliases must be plain identifiers; LIMIT must be a positive integer.

Compilation is pure: no I/O, no clock, no shared mutable state. The same
definition always yields the same SQL text and parameters, so one builder
instance is shared by every request.

Only conjunctive filters are supported (all predicates joined with AND).
"""
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from casebook.core.exceptions import InvalidFilterError, InvalidQueryError, UnknownFieldError
from casebook.schemas.report import (
    Aggregate,
    FilterOperator,
    OrderClause,
    QueryDefinition,
    ReportFilter,
    SelectedField,
    SortDirection,
    TimeBucket,
)
from casebook.services.data_sources import (
    DataSourceDescriptor,
    DataSourceRegistry,
    FieldType,
)

logger = logging.getLogger(__name__)

ALIAS = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_COMPARISONS = {
    FilterOperator.EQUALS: "=",
    FilterOperator.NOT_EQUALS: "!=",
    FilterOperator.GREATER_THAN: ">",
    FilterOperator.LESS_THAN: "<",
    FilterOperator.GREATER_THAN_OR_EQUAL: ">=",
    FilterOperator.LESS_THAN_OR_EQUAL: "<=",
}

_PATTERNS = {
    FilterOperator.CONTAINS: "%{}%",
    FilterOperator.STARTS_WITH: "{}%",
    FilterOperator.ENDS_WITH: "%{}",
}

_NO_VALUE = {FilterOperator.IS_NULL, FilterOperator.IS_NOT_NULL}

# Bucket expressions per dialect. `{}` is the (already validated) column.
_BUCKETS = {
    "postgresql": {
        TimeBucket.DAY: "CAST(DATE_TRUNC('day', {}) AS DATE)",
        TimeBucket.MONTH: "CAST(DATE_TRUNC('month', {}) AS DATE)",
        TimeBucket.YEAR: "CAST(DATE_TRUNC('year', {}) AS DATE)",
    },
    "sqlite": {
        TimeBucket.DAY: "date({})",
        TimeBucket.MONTH: "date({}, 'start of month')",
        TimeBucket.YEAR: "date({}, 'start of year')",
    },
}

_LIKE = {"postgresql": "ILIKE", "sqlite": "LIKE"}


def escape_like(value: str) -> str:
    """Make `%` and `_` match literally inside a LIKE pattern (escape char `\\`)."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def column_label(name: str) -> str:
    """`avg_invoice_value` -> `Avg Invoice Value`."""
    return re.sub(r"\b\w", lambda m: m.group().upper(), name.replace("_", " "))


@dataclass(frozen=True)
class OutputColumn:
    name: str
    type: FieldType
    label: str
    aggregated: bool = False
    # Rendered column for plain selections (no alias, aggregate or bucket)
    source: Optional[str] = None


@dataclass(frozen=True)
class CompiledQuery:
    sql: str
    params: Tuple[Any, ...]
    columns: Tuple[OutputColumn, ...]
    data_source: str


@dataclass(frozen=True)
class _ColumnRef:
    table: str
    name: str
    type: FieldType


class _Compilation:
    """Per-call state: the parameter list and the tables the query touches."""

    def __init__(self, descriptor: DataSourceDescriptor):
        self.descriptor = descriptor
        self.params: List[Any] = []
        self.tables: set = set()

    def bind(self, value: Any) -> str:
        self.params.append(value)
        return f"${len(self.params)}"


class QueryBuilder:
    """Compiles QueryDefinitions against a fixed registry and SQL dialect."""

    def __init__(self, registry: DataSourceRegistry, dialect: str = "postgresql"):
        if dialect not in _LIKE:
            raise ValueError(f"Unsupported SQL dialect for report builder: {dialect}")
        self.registry = registry
        self.dialect = dialect

    def build_query(
        self,
        definition: Union[QueryDefinition, Mapping[str, Any]],
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> CompiledQuery:
        definition = coerce_definition(definition)
        descriptor = self.registry.resolve(definition.data_source)
        state = _Compilation(descriptor)
        parameters = parameters or {}

        select_items, columns = self._select(state, definition.fields)
        aliases = {c.name: c for c in columns}
        where = [self._predicate(state, f, parameters) for f in definition.filters]
        group_by = [self._group_item(state, item, aliases) for item in definition.group_by]
        order_by = [self._order_item(state, clause, aliases) for clause in definition.order_by]
        limit = self._limit(definition.limit)

        joins = self._required_joins(descriptor, state.tables)
        if joins:
            # Base columns are qualified once another table enters the FROM clause
            select_items = [item.format(base=f"{descriptor.table}.") for item in select_items]
            where = [item.format(base=f"{descriptor.table}.") for item in where]
            group_by = [item.format(base=f"{descriptor.table}.") for item in group_by]
            order_by = [item.format(base=f"{descriptor.table}.") for item in order_by]
        else:
            select_items = [item.format(base="") for item in select_items]
            where = [item.format(base="") for item in where]
            group_by = [item.format(base="") for item in group_by]
            order_by = [item.format(base="") for item in order_by]

        if not select_items:
            # Joined tables share column names (id, status, ...) with the base table
            select_items = [f"{descriptor.table}.*" if joins else "*"]

        parts = [f"SELECT {', '.join(select_items)}", f"FROM {descriptor.table}"]
        for join in joins:
            parts.append(f"{join.type.value} JOIN {join.table} ON {join.on}")
        if where:
            parts.append("WHERE " + " AND ".join(where))
        if group_by:
            parts.append("GROUP BY " + ", ".join(group_by))
        if order_by:
            parts.append("ORDER BY " + ", ".join(order_by))
        if limit is not None:
            parts.append(f"LIMIT {limit}")

        sql = " ".join(parts)
        logger.debug(f"[REPORTS] Built query for {definition.data_source}: {sql}")
        return CompiledQuery(
            sql=sql,
            params=tuple(state.params),
            columns=tuple(columns),
            data_source=definition.data_source,
        )

    # ------------------------------------------------------------------
    # Identifiers
    # ------------------------------------------------------------------

    def _resolve_column(self, state: _Compilation, name: str, table: Optional[str] = None) -> _ColumnRef:
        descriptor = state.descriptor
        if table is None and "." in name:
            table, name = name.split(".", 1)
        table = table or descriptor.table
        column = descriptor.column(table, name)
        if column is None:
            raise UnknownFieldError(f"Unknown field '{table}.{name}' for data source '{descriptor.table}'")
        state.tables.add(table)
        return _ColumnRef(table=table, name=column.name, type=column.type)

    @staticmethod
    def _render(ref: _ColumnRef, base_table: str) -> str:
        # `{base}` is filled in once we know whether any join is emitted
        if ref.table == base_table:
            return "{base}" + ref.name
        return f"{ref.table}.{ref.name}"

    # ------------------------------------------------------------------
    # SELECT
    # ------------------------------------------------------------------

    def _select(self, state: _Compilation, fields: Sequence[SelectedField]) -> Tuple[List[str], List[OutputColumn]]:
        items: List[str] = []
        columns: List[OutputColumn] = []
        seen = set()
        for selected in fields:
            item, column = self._select_item(state, selected)
            if column.name in seen:
                raise InvalidQueryError(f"Duplicate output column '{column.name}'; use an alias")
            seen.add(column.name)
            items.append(item)
            columns.append(column)
        return items, columns

    def _select_item(self, state: _Compilation, selected: SelectedField) -> Tuple[str, OutputColumn]:
        if selected.alias is not None and not ALIAS.match(selected.alias):
            raise InvalidQueryError(f"Invalid alias '{selected.alias}'")

        if selected.name == "*":
            if selected.aggregate != Aggregate.COUNT or selected.bucket is not None:
                raise InvalidQueryError("'*' can only be selected as COUNT(*)")
            name = selected.alias or "count"
            return f"COUNT(*) AS {name}", OutputColumn(name, FieldType.INTEGER, column_label(name), True)

        ref = self._resolve_column(state, selected.name, selected.table)
        expression = self._render(ref, state.descriptor.table)
        field_type = ref.type

        if selected.bucket is not None:
            if ref.type not in (FieldType.DATE, FieldType.TIMESTAMP):
                raise InvalidQueryError(f"Field '{ref.name}' is not a date and cannot be bucketed")
            expression = _BUCKETS[self.dialect][selected.bucket].format(expression)
            field_type = FieldType.DATE

        aggregated = selected.aggregate is not None
        if aggregated:
            expression = f"{selected.aggregate.value.upper()}({expression})"
            field_type = _aggregate_type(selected.aggregate, field_type)

        default_name = ref.name
        if aggregated:
            default_name = f"{selected.aggregate.value}_{ref.name}"
        elif selected.bucket is not None:
            default_name = f"{ref.name}_{selected.bucket.value}"
        name = selected.alias or default_name

        plain = selected.alias is None and not aggregated and selected.bucket is None
        source = expression if plain else None

        qualified = ref.table != state.descriptor.table
        if name != ref.name or aggregated or selected.bucket is not None or qualified:
            expression = f"{expression} AS {name}"
        return expression, OutputColumn(name, field_type, column_label(name), aggregated, source)

    # ------------------------------------------------------------------
    # WHERE
    # ------------------------------------------------------------------

    def _predicate(self, state: _Compilation, report_filter: ReportFilter, parameters: Mapping[str, Any]) -> str:
        try:
            operator = FilterOperator(report_filter.operator)
        except ValueError:
            raise InvalidFilterError(f"Unsupported filter operator '{report_filter.operator}'") from None

        ref = self._resolve_column(state, report_filter.field, report_filter.table)
        column = self._render(ref, state.descriptor.table)

        if operator in _NO_VALUE:
            return f"{column} IS NULL" if operator == FilterOperator.IS_NULL else f"{column} IS NOT NULL"

        value = report_filter.value
        if report_filter.parameter is not None:
            value = parameters.get(report_filter.parameter, value)
        if value is None:
            raise InvalidFilterError(f"Filter on '{ref.name}' with operator '{operator.value}' requires a value")

        if operator in _COMPARISONS:
            _require_scalar(ref.name, operator, value)
            return f"{column} {_COMPARISONS[operator]} {state.bind(value)}"

        if operator in _PATTERNS:
            _require_scalar(ref.name, operator, value)
            pattern = _PATTERNS[operator].format(escape_like(str(value)))
            return f"{column} {_LIKE[self.dialect]} {state.bind(pattern)} ESCAPE '\\'"

        if operator == FilterOperator.BETWEEN:
            if not isinstance(value, (list, tuple)) or len(value) != 2:
                raise InvalidFilterError(f"'between' on '{ref.name}' needs exactly two values")
            low, high = value
            _require_scalar(ref.name, operator, low)
            _require_scalar(ref.name, operator, high)
            return f"{column} BETWEEN {state.bind(low)} AND {state.bind(high)}"

        # FilterOperator.IN
        if not isinstance(value, (list, tuple)) or len(value) == 0:
            raise InvalidFilterError(f"'in' on '{ref.name}' needs a non-empty list of values")
        for item in value:
            _require_scalar(ref.name, operator, item)
        placeholders = ", ".join(state.bind(item) for item in value)
        return f"{column} IN ({placeholders})"

    # ------------------------------------------------------------------
    # GROUP BY / ORDER BY / LIMIT
    # ------------------------------------------------------------------

    def _group_item(self, state: _Compilation, item: str, aliases: Dict[str, OutputColumn]) -> str:
        output = aliases.get(item)
        if output is not None:
            if output.aggregated:
                raise InvalidQueryError(f"Cannot group by aggregate column '{item}'")
            # A bare column name is ambiguous in GROUP BY once a join is emitted
            return output.source or item
        return self._render(self._resolve_column(state, item), state.descriptor.table)

    def _order_item(self, state: _Compilation, clause: OrderClause, aliases: Dict[str, OutputColumn]) -> str:
        direction = (clause.direction or SortDirection.ASC.value).lower()
        if direction not in (SortDirection.ASC.value, SortDirection.DESC.value):
            raise InvalidQueryError(f"Invalid sort direction '{clause.direction}'")
        if clause.field in aliases:
            target = aliases[clause.field].source or clause.field
        else:
            target = self._render(self._resolve_column(state, clause.field), state.descriptor.table)
        return f"{target} {direction.upper()}"

    @staticmethod
    def _limit(limit: Optional[int]) -> Optional[int]:
        if limit is None:
            return None
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise InvalidQueryError("Limit must be a positive integer")
        return limit

    # ------------------------------------------------------------------
    # FROM / JOIN
    # ------------------------------------------------------------------

    @staticmethod
    def _required_joins(descriptor: DataSourceDescriptor, tables: set):
        """Joins for every referenced table plus the joins their ON clauses depend on,
        in descriptor order."""
        needed = {t for t in tables if t != descriptor.table}
        for join in reversed(descriptor.joins):
            if join.table in needed:
                needed.update(t for t in join.referenced_tables if t != descriptor.table)
        return [join for join in descriptor.joins if join.table in needed]


def _aggregate_type(aggregate: Aggregate, field_type: FieldType) -> FieldType:
    if aggregate == Aggregate.COUNT:
        return FieldType.INTEGER
    if aggregate in (Aggregate.SUM, Aggregate.AVG):
        if aggregate == Aggregate.SUM and field_type == FieldType.INTEGER:
            return FieldType.INTEGER
        return FieldType.DECIMAL
    return field_type


def _require_scalar(field_name: str, operator: FilterOperator, value: Any) -> None:
    if isinstance(value, (list, tuple, dict, set)):
        raise InvalidFilterError(f"Filter on '{field_name}' with operator '{operator.value}' needs a single value")


def coerce_definition(definition: Union[QueryDefinition, Mapping[str, Any]]) -> QueryDefinition:
    """Accept either a parsed QueryDefinition or its JSON (camelCase) form."""
    if isinstance(definition, QueryDefinition):
        return definition
    try:
        return QueryDefinition.model_validate(definition)
    except ValidationError as exc:
        raise InvalidQueryError("Malformed report query definition", cause=exc) from exc
