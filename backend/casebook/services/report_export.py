"""Render executed reports as downloadable files (CSV or JSON)."""
import csv
import io
import json
import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from casebook.core.exceptions import UnsupportedFormatError
from casebook.schemas.report import ReportResult

logger = logging.getLogger(__name__)

MEDIA_TYPES = {
    "csv": "text/csv",
    "json": "application/json",
}


@dataclass(frozen=True)
class ExportedReport:
    content: str
    media_type: str
    filename: str


def normalize_format(export_format: Optional[str]) -> str:
    """Lower-cased format name; raises UnsupportedFormatError before any query runs."""
    fmt = (export_format or "").strip().lower()
    if fmt not in MEDIA_TYPES:
        raise UnsupportedFormatError(f"Unsupported export format: {export_format}")
    return fmt


def export_report(result: ReportResult, export_format: str, today: Optional[date] = None) -> ExportedReport:
    fmt = normalize_format(export_format)
    stamp = (today or date.today()).isoformat()

    if fmt == "csv":
        content = _to_csv(result)
    else:
        payload = {
            "columns": [column.model_dump() for column in result.columns],
            "rows": result.rows,
        }
        content = json.dumps(payload, indent=2, default=str)

    logger.info(f"[REPORTS] Exported {result.total_rows} rows as {fmt}")
    return ExportedReport(content=content, media_type=MEDIA_TYPES[fmt], filename=f"report_{stamp}.{fmt}")


def _to_csv(result: ReportResult) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow([column.label for column in result.columns])
    for row in result.rows:
        writer.writerow(["" if row.get(column.name) is None else row.get(column.name) for column in result.columns])
    return buffer.getvalue()
