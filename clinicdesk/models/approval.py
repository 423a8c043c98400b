# approval models — branch-admin queue of pending attendance requests
# mirrors admin/attendance.php fetch_attendance / update_status

from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from clinicdesk.models.attendance import AttendanceStatus
from clinicdesk.models.fields import OptionalText

# "approved" is what the admin picks, "present" is what gets stored
ApprovalFilter = Literal["pending", "approved", "rejected", ""]
Decision = Literal["approved", "rejected"]


class PendingAttendance(BaseModel):
    attendance_id: int = Field(..., alias="attendanceId")
    attendance_date: date = Field(..., alias="attendanceDate")
    status: AttendanceStatus = AttendanceStatus.PENDING
    remarks: OptionalText = None
    approval_request_at: Optional[datetime] = Field(None, alias="approvalRequestAt")
    patient_id: int = Field(..., alias="patientId")
    patient_name: str = Field("", alias="patientName")
    patient_uid: OptionalText = Field(None, alias="patientUid")
    branch_name: OptionalText = Field(None, alias="branchName")

    model_config = {"populate_by_name": True}

    @field_validator("approval_request_at", mode="before")
    @classmethod
    def _blank_timestamp(cls, value):
        return value or None

    def matches(self, needle: str) -> bool:
        """case-insensitive substring match on name, uid and remarks"""
        low = needle.lower()
        return any(
            low in (field or "").lower()
            for field in (self.patient_name, self.patient_uid, self.remarks)
        )


class BranchOption(BaseModel):
    branch_id: int = Field(..., alias="branchId")
    branch_name: str = Field("", alias="branchName")

    model_config = {"populate_by_name": True}


class ApprovalStats(BaseModel):
    pending: int = 0


class ApprovalListResponse(BaseModel):
    """envelope payload of GET admin/attendance.php?action=fetch_attendance"""
    data: list[PendingAttendance] = Field(default_factory=list)
    branches: list[BranchOption] = Field(default_factory=list)
    stats: ApprovalStats = Field(default_factory=ApprovalStats)


class Settlement(BaseModel):
    """outcome of resolving a pending request

    an approval carries the deferred session debit, dated on the day the patient
    attended rather than the day the admin clicked approve. a rejection carries none.
    """
    attendance_id: int = Field(..., alias="attendanceId")
    patient_id: int = Field(..., alias="patientId")
    attendance_date: date = Field(..., alias="attendanceDate")
    status: AttendanceStatus
    debit_date: Optional[date] = Field(None, alias="debitDate")
    debit_amount: Optional[Decimal] = Field(None, alias="debitAmount")

    model_config = {"populate_by_name": True}


class ApprovalQueueView(BaseModel):
    records: list[PendingAttendance] = Field(default_factory=list)
    branches: list[BranchOption] = Field(default_factory=list)
    stats: ApprovalStats = Field(default_factory=ApprovalStats)
    submitting: Optional[int] = None
    error: Optional[str] = None
