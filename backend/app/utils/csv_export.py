"""CSV download helpers.

Exports are UTF-8 with a leading byte-order mark so spreadsheet tools pick
the right encoding; every field is quoted.
"""

import csv
import io
from collections.abc import Iterable, Sequence
from typing import Any

from fastapi.responses import StreamingResponse

BOM = "\ufeff"


def build_csv(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow(["" if value is None else value for value in row])
    return BOM + buffer.getvalue()


def csv_response(csv_text: str, filename: str) -> StreamingResponse:
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
