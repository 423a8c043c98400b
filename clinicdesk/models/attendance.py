# attendance models — daily roster rows, stats and mark-attendance payloads
# mirrors the attendance.php / mark_attendance.php contract

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional

from pydantic import BaseModel, Field, PlainSerializer, field_validator

from clinicdesk.models.fields import Money, OptionalCount, OptionalText


class AttendanceStatus(str, Enum):
    NONE = "none"
    PRESENT = "present"
    PENDING = "pending"
    REJECTED = "rejected"


class PaymentMode(str, Enum):
    CASH = "cash"
    UPI = "upi"
    CARD = "card"
    OTHER = "other"


# a rejected request frees the day again, the backend only blocks non-rejected duplicates
_MARKABLE = {
    AttendanceStatus.NONE: True,
    AttendanceStatus.PRESENT: False,
    AttendanceStatus.PENDING: False,
    AttendanceStatus.REJECTED: True,
}


def is_markable(status: AttendanceStatus) -> bool:
    return _MARKABLE[status]


AttendanceFilter = Literal["all", "present", "pending"]


class AttendanceRecord(BaseModel):
    """one patient row on the daily attendance roster"""
    patient_id: int = Field(..., alias="patientId")
    patient_name: str = Field("", alias="patientName")
    patient_uid: OptionalText = Field(None, alias="patientUid")
    phone_number: OptionalText = Field(None, alias="phoneNumber")
    treatment_type: str = Field("", alias="treatmentType")
    treatment_days: OptionalCount = Field(None, alias="treatmentDays")
    session_count: int = Field(0, alias="sessionCount", ge=0)
    attendance_status: AttendanceStatus = Field(AttendanceStatus.NONE, alias="attendanceStatus")
    attended_date: Optional[date] = Field(None, alias="attendedDate")
    cost_per_day: Money = Field(Decimal("0"), alias="costPerDay")
    effective_balance: Money = Field(Decimal("0"), alias="effectiveBalance")
    due_amount: Optional[Money] = Field(None, alias="dueAmount")

    model_config = {"populate_by_name": True}

    @field_validator("attendance_status", mode="before")
    @classmethod
    def _null_status_is_none(cls, value):
        return value or AttendanceStatus.NONE

    @field_validator("attended_date", mode="before")
    @classmethod
    def _blank_date(cls, value):
        return value or None

    @property
    def progress_percent(self) -> Optional[int]:
        """share of the plan attended, capped at 100; none for unbounded plans"""
        if self.treatment_days is None:
            return None
        return min(100, (self.session_count * 100) // self.treatment_days)


class AttendanceStats(BaseModel):
    total_active: int = Field(0, alias="totalActive")
    present: int = 0
    pending: int = 0
    absent: int = 0

    model_config = {"populate_by_name": True}


class AttendanceListResponse(BaseModel):
    """envelope payload of GET attendance.php"""
    data: list[AttendanceRecord] = Field(default_factory=list)
    stats: Optional[AttendanceStats] = None


class MarkAttendanceRequest(BaseModel):
    """body of POST mark_attendance.php"""
    patient_id: int
    employee_id: int
    # money goes over the wire as a json number
    payment_amount: Annotated[Decimal, PlainSerializer(float, when_used="json")] = Decimal("0")
    mode: str = ""
    remarks: str = ""
    mark_as_pending: bool = False


class MarkAttendanceResult(BaseModel):
    message: str = ""
    attendance_id: Optional[int] = None
    new_balance: Optional[Money] = None


class PaymentForm(BaseModel):
    """collect-payment sub-form posted by the ui"""
    amount: Optional[Decimal] = None
    mode: Optional[PaymentMode] = None
    remarks: str = ""


class RemarksBody(BaseModel):
    remarks: str = ""


class MarkingView(BaseModel):
    """current state of one patient row's marking flow"""
    patient_id: int = Field(..., alias="patientId")
    state: str
    effective_balance: Optional[Decimal] = Field(None, alias="effectiveBalance")
    cost_per_day: Optional[Decimal] = Field(None, alias="costPerDay")
    shortfall: Optional[Decimal] = None
    payment_form_open: bool = Field(False, alias="paymentFormOpen")
    payment: PaymentForm = Field(default_factory=PaymentForm)
    error: Optional[str] = None
    can_mark: bool = Field(True, alias="canMark")

    model_config = {"populate_by_name": True}


class AttendanceBoardView(BaseModel):
    """roster snapshot for one branch and date"""
    day: date = Field(..., alias="date")
    filter: AttendanceFilter = "all"
    search: str = ""
    records: list[AttendanceRecord] = Field(default_factory=list)
    stats: Optional[AttendanceStats] = None
    markings: list[MarkingView] = Field(default_factory=list)
    error: Optional[str] = None

    model_config = {"populate_by_name": True}
