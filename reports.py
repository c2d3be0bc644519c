"""CSV and JSON export of report rows."""

import csv
import io
import json
from datetime import date, datetime, timezone
from typing import List, Optional, Sequence

from schemas import ExportFormat, ReportRow

CSV_HEADER = ["Brand", "Total Mentions", "Positive", "Negative", "Neutral", "Avg Sentiment", "Period"]

MEDIA_TYPES = {
    ExportFormat.csv: "text/csv",
    ExportFormat.json: "application/json",
}


class EmptyReportError(ValueError):
    """Raised when there is nothing to export."""


def to_csv(rows: Sequence[ReportRow]) -> str:
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for r in rows:
        writer.writerow([
            r.brand,
            r.total_mentions,
            r.positive_mentions,
            r.negative_mentions,
            r.neutral_mentions,
            f"{r.avg_sentiment:.2f}",
            r.period,
        ])
    return output.getvalue()


def to_json(rows: Sequence[ReportRow]) -> str:
    return json.dumps([r.model_dump() for r in rows], indent=2, ensure_ascii=False)


def from_json(content: str) -> List[ReportRow]:
    return [ReportRow(**item) for item in json.loads(content)]


def export_filename(days: int, fmt: ExportFormat, today: Optional[date] = None) -> str:
    today = today or datetime.now(timezone.utc).date()
    return f"sentiment-report-{days}days-{today.isoformat()}.{fmt.value}"


def export_report(rows: Sequence[ReportRow], fmt: ExportFormat, days: int, today: Optional[date] = None):
    """Return (content, filename, media_type) for a download."""
    if not rows:
        raise EmptyReportError("No data to export")
    content = to_csv(rows) if fmt == ExportFormat.csv else to_json(rows)
    return content, export_filename(days, fmt, today), MEDIA_TYPES[fmt]
