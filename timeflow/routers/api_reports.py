"""Dashboard, report and attendance data plus their CSV exports."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..core.config import settings
from ..crud.time_entries import entry_is_billable, entry_project_names
from ..db.session import get_db
from ..deps.auth import current_profile
from ..deps.filters import report_filters
from ..models.profile import Profile
from ..services.attendance import (
    AttendanceRecord,
    attendance_filename,
    export_attendance_csv,
    load_attendance,
    search_records,
    status_label,
)
from ..services.dashboard import dashboard_summary
from ..services.reporting import (
    ReportFilters,
    calculate_report_metrics,
    export_report_csv,
    load_report_entries,
    report_filename,
    summarize,
)
from ..services.timecalc import local_today, parse_day


router = APIRouter(prefix="/api/v1", tags=["reports"])


def _csv(content: str, filename: str) -> Response:
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return Response(content=content, media_type="text/csv; charset=utf-8", headers=headers)


@router.get("/dashboard")
def api_dashboard(
    page: int = Query(1, ge=1),
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    summary = dashboard_summary(db, profile, settings.TZ, page=page)
    entries = [
        {
            "id": row["entry"].id,
            "start_time": row["entry"].start_time,
            "end_time": row["entry"].end_time,
            "duration": row["entry"].duration or 0,
            "description": row["entry"].description,
            "projects": row["projects"],
            "billable": row["billable"],
        }
        for row in summary["entries"]
    ]
    return {**summary, "entries": entries}


@router.get("/reports")
def api_reports(
    filters: ReportFilters = Depends(report_filters),
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    entries = load_report_entries(db, profile, filters, settings.TZ)
    metrics = calculate_report_metrics(entries, filters.start_date, filters.end_date, settings.TZ)
    return {
        **metrics,
        **summarize(metrics),
        "start_date": filters.start_date,
        "end_date": filters.end_date,
        "entries": [
            {
                "id": entry.id,
                "user_id": entry.user_id,
                "user_name": entry.profile.full_name if entry.profile else None,
                "start_time": entry.start_time,
                "duration": entry.duration or 0,
                "description": entry.description,
                "projects": entry_project_names(entry),
                "billable": entry_is_billable(entry),
            }
            for entry in entries
        ],
    }


@router.get("/reports/export")
def api_reports_export(
    filters: ReportFilters = Depends(report_filters),
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    entries = load_report_entries(db, profile, filters, settings.TZ)
    return _csv(export_report_csv(entries, settings.TZ), report_filename(filters.start_date, filters.end_date))


def _attendance(
    db: Session,
    profile: Profile,
    start: str | None,
    end: str | None,
    users: list[str],
    search: str | None,
) -> tuple[list[AttendanceRecord], object, object]:
    today = local_today(settings.ATTENDANCE_TZ)
    start_date = parse_day(start, today)
    end_date = parse_day(end, today)
    try:
        records = load_attendance(
            db,
            profile,
            start_date,
            end_date,
            tz=settings.ATTENDANCE_TZ,
            reset_hour=settings.ATTENDANCE_RESET_HOUR,
            selected_user_ids=users,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return search_records(records, search), start_date, end_date


@router.get("/attendance")
def api_attendance(
    start: str | None = None,
    end: str | None = None,
    users: list[str] = Query([]),
    search: str | None = None,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    records, start_date, end_date = _attendance(db, profile, start, end, users, search)
    return {
        "start_date": start_date,
        "end_date": end_date,
        "records": [
            {
                "id": record.id,
                "user_id": record.user_id,
                "user_name": record.profile.full_name if record.profile else None,
                "team": record.profile.team if record.profile else None,
                "date": record.date,
                "status": record.status,
                "status_label": status_label(record.status),
                "duration": record.duration,
                "hours": round(record.hours, 2),
                "clock_in": record.clock_in,
                "clock_out": record.clock_out,
                "entries": record.entries,
            }
            for record in records
        ],
    }


@router.get("/attendance/export")
def api_attendance_export(
    start: str | None = None,
    end: str | None = None,
    users: list[str] = Query([]),
    search: str | None = None,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    records, start_date, end_date = _attendance(db, profile, start, end, users, search)
    return _csv(export_attendance_csv(records, settings.ATTENDANCE_TZ), attendance_filename(start_date, end_date))
