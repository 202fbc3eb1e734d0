"""CSV rendering for access reports."""

from __future__ import annotations

import csv
import json
from datetime import date, datetime
from io import StringIO
from typing import Any, Iterable


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return value


def rows_to_csv(rows: Iterable[dict[str, Any]]) -> str:
    """Render flat dict rows as CSV.

    Headers come from the first row; every value is quoted. An empty input
    renders as an empty string.
    """
    rows = list(rows)
    if not rows:
        return ""

    headers = list(rows[0].keys())
    output = StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    # Header row stays unquoted
    output.write(",".join(headers) + "\n")
    for row in rows:
        writer.writerow([_cell(row.get(header)) for header in headers])
    return output.getvalue()
