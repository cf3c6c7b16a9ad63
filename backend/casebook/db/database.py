"""
Raw query execution for the report builder.

The report builder emits `$1, $2, ...` placeholders with a parallel parameter
list. Database translates them to SQLAlchemy bind parameters, runs the
statement on its own connection and reports column metadata next to the rows.

Timeouts are enforced inside the database so the statement is actually
aborted, not just abandoned:
- SQLite: a progress handler on the DBAPI connection interrupts the statement
  once the deadline passes.
- PostgreSQL: SET LOCAL statement_timeout for the enclosing transaction.
"""
import logging
import math
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError

from casebook.core.exceptions import QueryTimeoutError

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\$(\d+)")

# SQLite checks the progress handler every N virtual machine instructions
_SQLITE_PROGRESS_STEPS = 1000
_PG_QUERY_CANCELED = "57014"


@dataclass(frozen=True)
class ResultField:
    name: str
    type_hint: Optional[str] = None


@dataclass
class QueryResult:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    fields: List[ResultField] = field(default_factory=list)


def to_bind_params(sql: str, params: Sequence[Any]) -> tuple[str, Dict[str, Any]]:
    """Rewrite `$n` placeholders as `:p<n>` and key the values accordingly."""
    bound = {f"p{index}": value for index, value in enumerate(params, start=1)}

    def _replace(match: re.Match) -> str:
        key = f"p{match.group(1)}"
        if key not in bound:
            raise ValueError(f"Placeholder ${match.group(1)} has no parameter")
        return f":{key}"

    return _PLACEHOLDER.sub(_replace, sql), bound


def statement_timeout_ms(timeout: float) -> int:
    """Seconds -> PostgreSQL statement_timeout milliseconds. Never 0, which disables the limit."""
    return max(1, math.ceil(timeout * 1000))


class Database:
    """Storage collaborator used by ReportBuilderService."""

    def __init__(self, engine: Engine):
        self.engine = engine

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    def query(self, sql: str, params: Sequence[Any] = (), timeout: Optional[float] = None) -> QueryResult:
        """Execute a read query. Raises QueryTimeoutError when `timeout` (seconds) expires;
        other driver errors propagate as SQLAlchemy exceptions."""
        statement, bound = to_bind_params(sql, params)
        deadline = time.monotonic() + timeout if timeout else None

        with self.engine.connect() as conn:
            try:
                if deadline is not None:
                    self._arm_timeout(conn, timeout, deadline)
                result = conn.execute(text(statement), bound)
                keys = list(result.keys())
                description = result.cursor.description if result.cursor is not None else None
                rows = [dict(zip(keys, row)) for row in result.fetchall()]
            except DBAPIError as exc:
                if self._is_timeout(exc, deadline):
                    logger.warning(f"[DB] Query aborted after {timeout}s timeout")
                    raise QueryTimeoutError(
                        f"Report query exceeded {timeout:g}s timeout", cause=exc
                    ) from exc
                raise
            finally:
                if deadline is not None:
                    self._disarm_timeout(conn)

        fields = [
            ResultField(name=key, type_hint=self._type_hint(description, index))
            for index, key in enumerate(keys)
        ]
        return QueryResult(rows=rows, fields=fields)

    def _arm_timeout(self, conn: Connection, timeout: float, deadline: float) -> None:
        if self.dialect == "sqlite":
            raw = conn.connection.dbapi_connection
            raw.set_progress_handler(lambda: int(time.monotonic() >= deadline), _SQLITE_PROGRESS_STEPS)
        elif self.dialect == "postgresql":
            conn.execute(text(f"SET LOCAL statement_timeout = {statement_timeout_ms(timeout)}"))
        else:
            logger.debug(f"[DB] No statement timeout support for dialect {self.dialect}")

    def _disarm_timeout(self, conn: Connection) -> None:
        if self.dialect == "sqlite":
            conn.connection.dbapi_connection.set_progress_handler(None, 0)

    @staticmethod
    def _is_timeout(exc: DBAPIError, deadline: Optional[float]) -> bool:
        if deadline is None:
            return False
        if getattr(exc.orig, "pgcode", None) == _PG_QUERY_CANCELED:
            return True
        return time.monotonic() >= deadline

    @staticmethod
    def _type_hint(description, index: int) -> Optional[str]:
        if not description or index >= len(description):
            return None
        type_code = description[index][1]
        return None if type_code is None else str(type_code)
