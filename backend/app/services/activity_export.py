import csv
import io
from collections.abc import Iterable, Iterator
from datetime import datetime, timezone

from fastapi.responses import Response
from openpyxl import Workbook

from app.db.models.activity_log import ActivityLog

EXPORT_HEADER = ["id", "created_at", "module", "action", "description", "user_name"]
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _export_filename(extension: str) -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"activity-logs-{stamp}.{extension}"


def _attachment_headers(filename: str) -> dict[str, str]:
    return {"Content-Disposition": f"attachment; filename={filename}"}


def activity_rows(entries: Iterable[ActivityLog]) -> Iterator[list]:
    for entry in entries:
        yield [
            entry.id,
            entry.created_at.isoformat(sep=" ", timespec="seconds") if entry.created_at else "",
            entry.module,
            entry.action,
            entry.description,
            entry.user_name or "",
        ]


def activity_csv_response(entries: Iterable[ActivityLog]) -> Response:
    out = io.StringIO()
    writer = csv.writer(out)
    writer.writerow(EXPORT_HEADER)
    writer.writerows(activity_rows(entries))
    return Response(
        content=out.getvalue(),
        media_type="text/csv; charset=utf-8",
        headers=_attachment_headers(_export_filename("csv")),
    )


def activity_xlsx_response(entries: Iterable[ActivityLog]) -> Response:
    wb = Workbook()
    ws = wb.active
    ws.title = "Activity"
    ws.append(EXPORT_HEADER)
    for row in activity_rows(entries):
        ws.append(row)
    ws.freeze_panes = "A2"

    out = io.BytesIO()
    wb.save(out)
    return Response(
        content=out.getvalue(),
        media_type=XLSX_MEDIA_TYPE,
        headers=_attachment_headers(_export_filename("xlsx")),
    )
