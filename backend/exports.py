import csv
import io
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from fastapi import HTTPException, status
from fastapi.responses import StreamingResponse
from jinja2 import Environment, FileSystemLoader, select_autoescape
from openpyxl import Workbook
from openpyxl.styles import Font
from sqlalchemy.orm import Session

from models import Group, Participant, ParticipantSubEvent, SubEvent
from time_utils import format_local, now_tz

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

_environment = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(enabled_extensions=("html", "xml")),
)
_environment.filters["local_time"] = format_local

ATTENDANCE_HEADERS = [
    "Chest Number", "Name", "Email", "Mobile", "College", "Branch", "Year",
    "Sub-Events", "Status", "Marked At", "Marked By",
]
PARTICIPANT_HEADERS = [
    "Chest No.", "Full Name", "Email", "Mobile", "PRN", "College", "Branch", "Year",
    "Sub-Events", "Reg. Status", "Paid Amount", "Transaction ID", "Registration Date",
]
NOMINATED_HEADERS = ["Chest No.", "Full Name", "Contact Info", "Status"]

MEDIA_TYPES = {
    "csv": "text/csv",
    "html": "text/html",
    "pdf": "application/pdf",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def fest_name() -> str:
    return os.environ.get("FEST_NAME", "VerbaFest 2026")


def export_to_csv(headers: List[str], rows: List[List[object]]) -> bytes:
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return output.getvalue().encode("utf-8")


def export_to_xlsx(headers: List[str], rows: List[List[object]], sheet_title: str = "Export") -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title[:31]
    ws.append(headers)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in rows:
        ws.append(row)
    out = io.BytesIO()
    wb.save(out)
    out.seek(0)
    return out.read()


def render_template(template_name: str, **context) -> str:
    template = _environment.get_template(template_name)
    return template.render(fest_name=fest_name(), generated_at=now_tz(), **context)


def render_html_to_pdf(html_content: str) -> bytes:
    from xhtml2pdf import pisa

    output = io.BytesIO()
    result = pisa.CreatePDF(src=html_content, dest=output, encoding="utf-8")
    if getattr(result, "err", 0):
        logger.error("PDF rendering failed with %s errors", result.err)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to render PDF")
    output.seek(0)
    return output.read()


def file_response(content: bytes, file_format: str, basename: str) -> StreamingResponse:
    stamp = now_tz().strftime("%Y%m%d-%H%M%S")
    filename = f"{basename}-{stamp}.{file_format}"
    headers = {"Content-Disposition": f"attachment; filename={filename}"}
    if file_format == "html":
        headers = {}
    return StreamingResponse(io.BytesIO(content), media_type=MEDIA_TYPES[file_format], headers=headers)


def sub_event_name_map(db: Session) -> Dict[int, str]:
    return {sub_event_id: name for sub_event_id, name in db.query(SubEvent.id, SubEvent.name).all()}


def _sub_event_names(participant: Participant, names: Dict[int, str]) -> str:
    return "; ".join(names.get(sub_event_id, "Unknown") for sub_event_id in participant.registered_sub_event_ids)


def _attendance_state(participant: Participant, sub_event_id: Optional[int], markers: Dict[int, str]) -> dict:
    source = participant
    if sub_event_id is not None:
        entry: Optional[ParticipantSubEvent] = participant.status_per_sub_event.get(sub_event_id)
        source = entry
    if source is None:
        return {"is_present": False, "marked_at": None, "marked_by": ""}
    return {
        "is_present": bool(source.is_present),
        "marked_at": source.marked_at,
        "marked_by": markers.get(source.marked_by_id, "") if source.marked_by_id else "",
    }


def attendance_rows(
    participants: Sequence[Participant],
    names: Dict[int, str],
    markers: Dict[int, str],
    sub_event_id: Optional[int] = None,
) -> List[dict]:
    rows = []
    for participant in participants:
        state = _attendance_state(participant, sub_event_id, markers)
        rows.append({
            "participant": participant,
            "sub_events": _sub_event_names(participant, names),
            **state,
        })
    return rows


def attendance_csv(rows: List[dict]) -> bytes:
    table = [
        [
            row["participant"].chest_number or "-",
            row["participant"].full_name,
            row["participant"].email,
            row["participant"].mobile,
            row["participant"].college,
            row["participant"].branch,
            row["participant"].year,
            row["sub_events"],
            "Present" if row["is_present"] else "Absent",
            format_local(row["marked_at"]),
            row["marked_by"],
        ]
        for row in rows
    ]
    return export_to_csv(ATTENDANCE_HEADERS, table)


def attendance_html(rows: List[dict], title: str, sub_event: Optional[SubEvent] = None) -> str:
    present = sum(1 for row in rows if row["is_present"])
    return render_template(
        "attendance_report.html",
        title=title,
        sub_event=sub_event,
        rows=rows,
        stats={"total": len(rows), "present": present, "absent": len(rows) - present},
    )


def participant_table(participants: Sequence[Participant], names: Dict[int, str], export_type: str = "full"):
    if export_type == "nominated":
        rows = [
            [p.chest_number or "", p.full_name, f"{p.email} / {p.mobile}", "Nominated"]
            for p in participants
        ]
        return NOMINATED_HEADERS, rows
    rows = [
        [
            p.chest_number or "",
            p.full_name,
            p.email,
            p.mobile,
            p.prn,
            p.college,
            p.branch,
            p.year,
            _sub_event_names(p, names),
            p.registration_status.value,
            p.paid_amount,
            p.transaction_id or "",
            format_local(p.created_at, "%d %b %Y") or "N/A",
        ]
        for p in participants
    ]
    return PARTICIPANT_HEADERS, rows


def participant_html(participants: Sequence[Participant], names: Dict[int, str], title: str, export_type: str = "full") -> str:
    approved = sum(1 for p in participants if p.registration_status.value == "approved")
    pending = sum(1 for p in participants if p.registration_status.value == "pending")
    return render_template(
        "participant_list.html",
        title=title,
        export_type=export_type,
        participants=participants,
        names={p.id: _sub_event_names(p, names) for p in participants},
        stats={"total": len(participants), "approved": approved, "pending": pending},
    )


def groups_html(groups: Sequence[Group], title: str = "Group Allocation") -> str:
    return render_template("group_sheet.html", title=title, groups=groups)
