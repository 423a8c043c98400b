# history models — per-patient attendance history and calendar cells
# mirrors attendance_history.php

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from clinicdesk.models.attendance import AttendanceStatus
from clinicdesk.models.fields import OptionalCount, OptionalText


class HistoryEntry(BaseModel):
    attendance_date: date = Field(..., alias="date")
    status: AttendanceStatus = AttendanceStatus.PRESENT
    remarks: OptionalText = None

    model_config = {"populate_by_name": True}

    @field_validator("status", mode="before")
    @classmethod
    def _legacy_rows_are_present(cls, value):
        # rows written before the approval workflow carry no status
        return value or AttendanceStatus.PRESENT


class HistoryPatient(BaseModel):
    id: int
    name: str = ""
    treatment_type: str = Field("", alias="treatmentType")
    treatment_days: OptionalCount = Field(None, alias="treatmentDays")
    start_date: Optional[date] = Field(None, alias="startDate")

    model_config = {"populate_by_name": True}

    @field_validator("start_date", mode="before")
    @classmethod
    def _blank_date(cls, value):
        return value or None


class HistoryStats(BaseModel):
    """plan progress; remaining is none when the plan has no fixed length"""
    total_days: OptionalCount = Field(None, alias="totalDays")
    present_count: int = Field(0, alias="presentCount")
    remaining: Optional[int] = None

    model_config = {"populate_by_name": True}

    @field_validator("remaining", mode="before")
    @classmethod
    def _dash_is_unbounded(cls, value):
        return None if value in (None, "", "-") else value


class AttendanceHistory(BaseModel):
    patient: Optional[HistoryPatient] = None
    stats: HistoryStats = Field(default_factory=HistoryStats)
    history: list[HistoryEntry] = Field(default_factory=list)


class CalendarCell(BaseModel):
    day: date = Field(..., alias="date")
    status: AttendanceStatus
    remarks: Optional[str] = None
    in_month: bool = Field(True, alias="inMonth")

    model_config = {"populate_by_name": True}


class HistoryView(BaseModel):
    """history modal payload: stats plus one month of calendar weeks"""
    patient_id: int = Field(..., alias="patientId")
    year: int
    month: int
    stats: HistoryStats
    remaining_label: str = Field(..., alias="remainingLabel")
    weeks: list[list[CalendarCell]] = Field(default_factory=list)
    history: list[HistoryEntry] = Field(default_factory=list)

    model_config = {"populate_by_name": True}
