# attendance history aggregator — plan progress and a month calendar per patient

import calendar
import logging
from datetime import date
from typing import Optional

from clinicdesk.models.attendance import AttendanceStatus
from clinicdesk.models.history import (
    AttendanceHistory,
    CalendarCell,
    HistoryEntry,
    HistoryStats,
    HistoryView,
)
from clinicdesk.services.api_client import ClinicApi

logger = logging.getLogger(__name__)

UNBOUNDED_LABEL = "—"

# when a day has several rows (a rejected request followed by a new one) the strongest wins
_PRECEDENCE = {
    AttendanceStatus.PRESENT: 3,
    AttendanceStatus.PENDING: 2,
    AttendanceStatus.REJECTED: 1,
    AttendanceStatus.NONE: 0,
}


def summarize(history: AttendanceHistory) -> HistoryStats:
    """total / attended / remaining sessions for the current plan"""
    total = history.stats.total_days
    start: Optional[date] = None
    if history.patient is not None:
        total = total if total is not None else history.patient.treatment_days
        start = history.patient.start_date

    present = sum(
        1 for entry in history.history
        if entry.status is AttendanceStatus.PRESENT
        and (start is None or entry.attendance_date >= start)
    )
    remaining = max(0, total - present) if total is not None else None
    return HistoryStats(total_days=total, present_count=present, remaining=remaining)


def status_map(history: AttendanceHistory) -> dict[date, HistoryEntry]:
    by_day: dict[date, HistoryEntry] = {}
    for entry in history.history:
        current = by_day.get(entry.attendance_date)
        if current is None or _PRECEDENCE[entry.status] > _PRECEDENCE[current.status]:
            by_day[entry.attendance_date] = entry
    return by_day


def status_on(history: AttendanceHistory, day: date) -> AttendanceStatus:
    entry = status_map(history).get(day)
    return entry.status if entry else AttendanceStatus.NONE


def month_calendar(history: AttendanceHistory, year: int, month: int) -> list[list[CalendarCell]]:
    """sunday-first weeks covering the month; days without a record are none"""
    by_day = status_map(history)
    weeks = []
    for week in calendar.Calendar(firstweekday=6).monthdatescalendar(year, month):
        row = []
        for day in week:
            entry = by_day.get(day)
            row.append(CalendarCell(
                day=day,
                status=entry.status if entry else AttendanceStatus.NONE,
                remarks=entry.remarks if entry else None,
                in_month=day.month == month,
            ))
        weeks.append(row)
    return weeks


def remaining_label(stats: HistoryStats) -> str:
    return UNBOUNDED_LABEL if stats.remaining is None else str(stats.remaining)


async def load_history(api: ClinicApi, patient_id: int, year: Optional[int] = None, month: Optional[int] = None) -> HistoryView:
    today = date.today()
    year = year or today.year
    month = month or today.month
    if not 1 <= month <= 12:
        raise ValueError(f"month must be 1-12, got {month}")

    history = await api.fetch_history(patient_id)
    stats = summarize(history)
    return HistoryView(
        patient_id=patient_id,
        year=year,
        month=month,
        stats=stats,
        remaining_label=remaining_label(stats),
        weeks=month_calendar(history, year, month),
        history=history.history,
    )
