# approval queue — branch admins resolve pending attendance requests
# approve/reject are optimistic: the row leaves the list at once and comes back if the call fails
#
# the approval list carries no price, so the session cost is read from the branch roster
# for the attendance day before the decision goes out. an approval is debited cost_per_day
# dated on that original day; a rejection is never debited.

import logging
from decimal import Decimal
from typing import Optional

from clinicdesk.models.approval import (
    ApprovalFilter,
    ApprovalQueueView,
    ApprovalStats,
    BranchOption,
    Decision,
    PendingAttendance,
    Settlement,
)
from clinicdesk.models.attendance import AttendanceStatus
from clinicdesk.models.session import Session
from clinicdesk.services.api_client import ClinicApi, ClinicApiError

logger = logging.getLogger(__name__)


class DecisionInFlight(Exception):
    """another approve/reject is still waiting for the server"""


def settlement_for(record: PendingAttendance, decision: Decision, cost_per_day: Optional[Decimal]) -> Settlement:
    """what resolving a pending request means for the patient's account"""
    if decision == "approved":
        return Settlement(
            attendance_id=record.attendance_id,
            patient_id=record.patient_id,
            attendance_date=record.attendance_date,
            status=AttendanceStatus.PRESENT,
            debit_date=record.attendance_date,
            debit_amount=cost_per_day,
        )
    return Settlement(
        attendance_id=record.attendance_id,
        patient_id=record.patient_id,
        attendance_date=record.attendance_date,
        status=AttendanceStatus.REJECTED,
    )


class ApprovalQueue:
    """pending requests for the admin's branches; one decision in flight at a time"""

    def __init__(self, session: Session, api: ClinicApi):
        self.session = session
        self.api = api
        self.status: ApprovalFilter = "pending"
        self.branch_id: Optional[int] = None
        self.records: list[PendingAttendance] = []
        self.branches: list[BranchOption] = []
        self.stats = ApprovalStats()
        self.submitting: Optional[int] = None
        self.error: Optional[str] = None
        self.costs: dict[int, Decimal] = {}

    async def refresh(self, status: Optional[ApprovalFilter] = None, branch_id: Optional[int] = None) -> bool:
        """reload from the server; requests resolved elsewhere simply disappear"""
        if status is not None:
            self.status = status
        if branch_id is not None:
            self.branch_id = branch_id or None

        try:
            resp = await self.api.fetch_approvals(self.session, status=self.status, branch_id=self.branch_id)
        except ClinicApiError as e:
            self.error = str(e)
            logger.error(f"Approval queue refresh failed: {e}")
            return False

        self.records = resp.data
        self.branches = resp.branches
        self.stats = resp.stats
        self.error = None
        return True

    def visible(self, search: str = "") -> list[PendingAttendance]:
        needle = search.strip()
        if not needle:
            return list(self.records)
        return [r for r in self.records if r.matches(needle)]

    def _branch_of(self, record: PendingAttendance) -> int:
        for branch in self.branches:
            if branch.branch_name == record.branch_name:
                return branch.branch_id
        return self.branch_id or self.session.branch_id

    async def cost_per_day(self, record: PendingAttendance) -> Optional[Decimal]:
        """session price of the patient, read from the roster of the attendance day"""
        if record.patient_id in self.costs:
            return self.costs[record.patient_id]

        roster_session = self.session.model_copy(update={"branch_id": self._branch_of(record)})
        resp = await self.api.fetch_attendance(roster_session, record.attendance_date, search=record.patient_name)
        for row in resp.data:
            if row.patient_id == record.patient_id:
                self.costs[record.patient_id] = row.cost_per_day
                return row.cost_per_day

        logger.warning(f"Patient {record.patient_id} is not on the roster, approval carries no debit amount")
        return None

    def _index_of(self, attendance_id: int) -> Optional[int]:
        return next((i for i, r in enumerate(self.records) if r.attendance_id == attendance_id), None)

    async def approve(self, attendance_id: int) -> Optional[Settlement]:
        return await self._resolve(attendance_id, "approved")

    async def reject(self, attendance_id: int, remarks: str = "") -> Optional[Settlement]:
        return await self._resolve(attendance_id, "rejected", remarks)

    async def _resolve(self, attendance_id: int, decision: Decision, remarks: str = "") -> Optional[Settlement]:
        """None when the request is no longer pending here; raises DecisionInFlight when busy"""
        if self.submitting is not None:
            raise DecisionInFlight(f"attendance {self.submitting} is still being resolved")

        index = self._index_of(attendance_id)
        if index is None:
            logger.info(f"Attendance {attendance_id} is no longer listed, treating it as resolved")
            return None

        record = self.records[index]
        if record.status is not AttendanceStatus.PENDING:
            logger.info(f"Attendance {attendance_id} is already {record.status.value}")
            return None

        self.submitting = attendance_id
        self.error = None
        try:
            cost = await self.cost_per_day(record) if decision == "approved" else None
        except ClinicApiError as e:
            self.submitting = None
            self.error = str(e)
            logger.warning(f"Could not price attendance {attendance_id}: {e}")
            raise

        # a refresh may have landed during the lookup
        index = self._index_of(attendance_id)
        if index is None:
            self.submitting = None
            return None

        # optimistic update
        if self.status == "pending":
            self.records.pop(index)
        else:
            resolved = AttendanceStatus.PRESENT if decision == "approved" else AttendanceStatus.REJECTED
            self.records[index] = record.model_copy(update={"status": resolved})
        self.stats = ApprovalStats(pending=max(0, self.stats.pending - 1))

        try:
            await self.api.update_approval(self.session, attendance_id, decision, remarks)
        except ClinicApiError as e:
            # put the row back where it was
            if self.status == "pending":
                self.records.insert(index, record)
            else:
                self.records[index] = record
            self.stats = ApprovalStats(pending=self.stats.pending + 1)
            self.error = str(e)
            logger.warning(f"Could not mark attendance {attendance_id} {decision}: {e}")
            raise
        finally:
            self.submitting = None

        logger.info(f"Attendance {attendance_id} {decision} by employee {self.session.employee_id}")
        settlement = settlement_for(record, decision, cost)
        await self.refresh()
        return settlement

    def view(self, search: str = "") -> ApprovalQueueView:
        return ApprovalQueueView(
            records=self.visible(search),
            branches=self.branches,
            stats=self.stats,
            submitting=self.submitting,
            error=self.error,
        )
