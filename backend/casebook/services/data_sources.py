"""
Data source registry for the custom report builder.

Each data source is a base table plus the joins and columns a report may
reference. The registry is the identifier allow-list: the query builder only
ever writes table/column names that appear here, never names taken verbatim
from a request.

The registry is built once at startup and never mutated. Construction fails
fast if a descriptor breaks an invariant (duplicate field names, identifiers
that are not plain SQL names, join conditions referencing tables that are not
joined yet).
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import Dict, Iterator, Mapping, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel, ConfigDict, create_model

from casebook.core.exceptions import UnknownDataSourceError

logger = logging.getLogger(__name__)

IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")
_JOIN_CONDITION = re.compile(r"^(\w+)\.(\w+)\s*=\s*(\w+)\.(\w+)$")


class FieldType(str, Enum):
    UUID = "uuid"
    TEXT = "text"
    ENUM = "enum"
    DECIMAL = "decimal"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    DATE = "date"
    TIMESTAMP = "timestamp"


class JoinType(str, Enum):
    LEFT = "LEFT"
    INNER = "INNER"
    RIGHT = "RIGHT"


PYTHON_TYPES = {
    FieldType.UUID: UUID,
    FieldType.TEXT: str,
    FieldType.ENUM: str,
    FieldType.DECIMAL: Decimal,
    FieldType.INTEGER: int,
    FieldType.BOOLEAN: bool,
    FieldType.DATE: date,
    FieldType.TIMESTAMP: datetime,
}


@dataclass(frozen=True)
class FieldDescriptor:
    name: str
    type: FieldType
    label: str

    def to_dict(self) -> dict:
        return {"name": self.name, "type": self.type.value, "label": self.label}


@dataclass(frozen=True)
class JoinDescriptor:
    table: str
    on: str  # "<table>.<column> = <table>.<column>"
    type: JoinType = JoinType.LEFT
    fields: Tuple[FieldDescriptor, ...] = ()

    @property
    def referenced_tables(self) -> Tuple[str, str]:
        match = _JOIN_CONDITION.match(self.on)
        if not match:
            raise ValueError(f"Join condition must look like 'a.x = b.y': {self.on!r}")
        return match.group(1), match.group(3)

    def to_dict(self) -> dict:
        return {
            "table": self.table,
            "on": self.on,
            "type": self.type.value,
            "fields": [f.to_dict() for f in self.fields],
        }


@dataclass(frozen=True)
class DataSourceDescriptor:
    table: str
    fields: Tuple[FieldDescriptor, ...]
    joins: Tuple[JoinDescriptor, ...] = ()
    _field_index: Dict[str, FieldDescriptor] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        _check_identifier(self.table)
        object.__setattr__(self, "_field_index", _index_fields(self.table, self.fields))
        known_tables = {self.table}
        for join in self.joins:
            _check_identifier(join.table)
            if join.table in known_tables:
                raise ValueError(f"{self.table}: table {join.table!r} joined twice")
            _index_fields(join.table, join.fields)
            for table in join.referenced_tables:
                if table not in known_tables and table != join.table:
                    raise ValueError(
                        f"{self.table}: join on {join.table!r} references {table!r} before it is joined"
                    )
            known_tables.add(join.table)

    def get_field(self, name: str) -> Optional[FieldDescriptor]:
        return self._field_index.get(name)

    def join_for(self, table: str) -> Optional[JoinDescriptor]:
        for join in self.joins:
            if join.table == table:
                return join
        return None

    def column(self, table: str, name: str) -> Optional[FieldDescriptor]:
        """Look up an allow-listed column on the base table or one of its joins."""
        if table == self.table:
            return self.get_field(name)
        join = self.join_for(table)
        if join is None:
            return None
        return next((f for f in join.fields if f.name == name), None)

    def record_model(self) -> type[BaseModel]:
        """Pydantic record type derived from the base table's fields."""
        return record_model(self.table, tuple((f.name, f.type) for f in self.fields))

    def to_dict(self) -> dict:
        return {
            "table": self.table,
            "fields": [f.to_dict() for f in self.fields],
            "joins": [j.to_dict() for j in self.joins],
        }


def _check_identifier(name: str) -> None:
    if not IDENTIFIER.match(name):
        raise ValueError(f"Invalid SQL identifier in data source registry: {name!r}")


def _index_fields(table: str, fields: Tuple[FieldDescriptor, ...]) -> Dict[str, FieldDescriptor]:
    index: Dict[str, FieldDescriptor] = {}
    for f in fields:
        _check_identifier(f.name)
        if f.name in index:
            raise ValueError(f"{table}: duplicate field {f.name!r}")
        index[f.name] = f
    return index


@lru_cache(maxsize=256)
def record_model(name: str, columns: Tuple[Tuple[str, FieldType], ...]) -> type[BaseModel]:
    """Build (and cache) a row model with one optional typed attribute per column.

    Columns the model does not know about (e.g. driver-specific extras) are kept as-is.
    """
    definitions = {
        column: (Optional[PYTHON_TYPES[field_type]], None)
        for column, field_type in columns
    }
    model_name = "".join(part.capitalize() for part in re.split(r"[^0-9a-zA-Z]+", name) if part) or "Report"
    return create_model(
        f"{model_name}Record",
        __config__=ConfigDict(extra="allow", protected_namespaces=()),
        **definitions,
    )


class DataSourceRegistry(Mapping[str, DataSourceDescriptor]):
    """Read-only mapping of data source key -> descriptor."""

    def __init__(self, sources: Mapping[str, DataSourceDescriptor]):
        for key in sources:
            _check_identifier(key)
        self._sources = dict(sources)

    def __getitem__(self, key: str) -> DataSourceDescriptor:
        return self._sources[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._sources)

    def __len__(self) -> int:
        return len(self._sources)

    def resolve(self, key: str) -> DataSourceDescriptor:
        descriptor = self._sources.get(key)
        if descriptor is None:
            logger.info(f"[REPORTS] Unknown data source requested: {key!r}")
            raise UnknownDataSourceError(f"Unknown data source: {key}")
        return descriptor

    def to_dict(self) -> dict:
        return {key: descriptor.to_dict() for key, descriptor in self._sources.items()}


def _f(name: str, type_: FieldType, label: str) -> FieldDescriptor:
    return FieldDescriptor(name=name, type=type_, label=label)


CLIENT_FIELDS = (
    _f("id", FieldType.UUID, "Client ID"),
    _f("name", FieldType.TEXT, "Client Name"),
    _f("email", FieldType.TEXT, "Email"),
    _f("phone", FieldType.TEXT, "Phone"),
    _f("status", FieldType.ENUM, "Status"),
    _f("client_type", FieldType.ENUM, "Client Type"),
    _f("created_at", FieldType.TIMESTAMP, "Created Date"),
)

CASE_FIELDS = (
    _f("id", FieldType.UUID, "Case ID"),
    _f("case_number", FieldType.TEXT, "Case Number"),
    _f("title", FieldType.TEXT, "Case Title"),
    _f("case_type", FieldType.ENUM, "Case Type"),
    _f("status", FieldType.ENUM, "Status"),
    _f("priority", FieldType.ENUM, "Priority"),
    _f("created_at", FieldType.TIMESTAMP, "Created Date"),
    _f("updated_at", FieldType.TIMESTAMP, "Updated Date"),
)

USER_FIELDS = (
    _f("id", FieldType.UUID, "User ID"),
    _f("first_name", FieldType.TEXT, "First Name"),
    _f("last_name", FieldType.TEXT, "Last Name"),
    _f("email", FieldType.TEXT, "Email"),
)


def default_registry() -> DataSourceRegistry:
    """The practice data sources exposed to the report builder."""
    return DataSourceRegistry({
        "cases": DataSourceDescriptor(
            table="cases",
            fields=CASE_FIELDS,
            joins=(
                JoinDescriptor("clients", "cases.client_id = clients.id", JoinType.LEFT, CLIENT_FIELDS),
                JoinDescriptor("users", "cases.assigned_to = users.id", JoinType.LEFT, USER_FIELDS),
            ),
        ),
        "clients": DataSourceDescriptor(table="clients", fields=CLIENT_FIELDS),
        "invoices": DataSourceDescriptor(
            table="invoices",
            fields=(
                _f("id", FieldType.UUID, "Invoice ID"),
                _f("invoice_number", FieldType.TEXT, "Invoice Number"),
                _f("subtotal", FieldType.DECIMAL, "Subtotal"),
                _f("tax_amount", FieldType.DECIMAL, "Tax Amount"),
                _f("tds_amount", FieldType.DECIMAL, "TDS Amount"),
                _f("amount", FieldType.DECIMAL, "Amount"),
                _f("status", FieldType.ENUM, "Status"),
                _f("due_date", FieldType.DATE, "Due Date"),
                _f("created_at", FieldType.TIMESTAMP, "Created Date"),
            ),
            joins=(
                JoinDescriptor("clients", "invoices.client_id = clients.id", JoinType.LEFT, CLIENT_FIELDS),
                JoinDescriptor("cases", "invoices.case_id = cases.id", JoinType.LEFT, CASE_FIELDS),
            ),
        ),
        "tasks": DataSourceDescriptor(
            table="tasks",
            fields=(
                _f("id", FieldType.UUID, "Task ID"),
                _f("title", FieldType.TEXT, "Task Title"),
                _f("task_type", FieldType.ENUM, "Task Type"),
                _f("status", FieldType.ENUM, "Status"),
                _f("priority", FieldType.ENUM, "Priority"),
                _f("estimated_hours", FieldType.DECIMAL, "Estimated Hours"),
                _f("actual_hours", FieldType.DECIMAL, "Actual Hours"),
                _f("due_date", FieldType.DATE, "Due Date"),
                _f("created_at", FieldType.TIMESTAMP, "Created Date"),
            ),
            joins=(
                JoinDescriptor("cases", "tasks.case_id = cases.id", JoinType.LEFT, CASE_FIELDS),
                JoinDescriptor("users", "tasks.assigned_to = users.id", JoinType.LEFT, USER_FIELDS),
            ),
        ),
        "time_entries": DataSourceDescriptor(
            table="time_entries",
            fields=(
                _f("id", FieldType.UUID, "Time Entry ID"),
                _f("start_time", FieldType.TIMESTAMP, "Start Time"),
                _f("end_time", FieldType.TIMESTAMP, "End Time"),
                _f("duration_minutes", FieldType.INTEGER, "Duration (Minutes)"),
                _f("description", FieldType.TEXT, "Description"),
                _f("is_billable", FieldType.BOOLEAN, "Billable"),
                _f("created_at", FieldType.TIMESTAMP, "Created Date"),
            ),
            joins=(
                JoinDescriptor("cases", "time_entries.case_id = cases.id", JoinType.LEFT, CASE_FIELDS),
                JoinDescriptor("users", "time_entries.user_id = users.id", JoinType.LEFT, USER_FIELDS),
            ),
        ),
    })
