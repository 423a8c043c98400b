# attendance board — the reception roster for one branch and day
# owns the per-patient marking state machines and the background refresh

import logging
from datetime import date
from typing import Optional

from clinicdesk.config import settings
from clinicdesk.models.attendance import (
    AttendanceBoardView,
    AttendanceFilter,
    AttendanceRecord,
    AttendanceStats,
    AttendanceStatus,
    MarkingView,
    is_markable,
)
from clinicdesk.models.session import Session
from clinicdesk.services.api_client import ClinicApi, ClinicApiError
from clinicdesk.services.marking import AttendanceMarking
from clinicdesk.services.poller import PeriodicTask

logger = logging.getLogger(__name__)


class AttendanceBoard:
    """roster + stats + marking flows, re-fetched after every mutation"""

    def __init__(
        self,
        session: Session,
        api: ClinicApi,
        day: Optional[date] = None,
        poll_seconds: Optional[float] = None,
    ):
        self.session = session
        self.api = api
        self.day = day or date.today()
        self.search = ""
        self.filter: AttendanceFilter = "all"
        self.poll_seconds = settings.ATTENDANCE_POLL_SECONDS if poll_seconds is None else poll_seconds

        self.records: list[AttendanceRecord] = []
        self.stats: Optional[AttendanceStats] = None
        self.error: Optional[str] = None
        self.loading = False

        self._markings: dict[int, AttendanceMarking] = {}
        self._generation = 0
        self._closed = False
        self._poller: Optional[PeriodicTask] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    async def refresh(self) -> bool:
        """re-fetch the roster; late or superseded responses are dropped"""
        if self._closed:
            return False

        self._generation += 1
        generation = self._generation
        self.loading = True
        # the backend does not filter on pending, so ask for everything and filter here
        status = "all" if self.filter == "pending" else self.filter

        try:
            resp = await self.api.fetch_attendance(self.session, self.day, search=self.search, status=status)
        except ClinicApiError as e:
            if self._is_current(generation):
                self.loading = False
                self.error = str(e)
            logger.error(f"Attendance refresh failed for branch {self.session.branch_id}: {e}")
            return False

        if not self._is_current(generation):
            logger.info("Discarding stale attendance response")
            return False

        records = resp.data
        if self.filter == "pending":
            records = [r for r in records if r.attendance_status is AttendanceStatus.PENDING]

        self.records = records
        if resp.stats is not None:
            self.stats = resp.stats
        self.error = None
        self.loading = False
        return True

    def set_query(
        self,
        day: Optional[date] = None,
        search: Optional[str] = None,
        filter: Optional[AttendanceFilter] = None,
    ):
        if day is not None and day != self.day:
            self.day = day
            # flows opened for another day no longer apply
            self._markings = {pid: m for pid, m in self._markings.items() if m.submitting}
        if search is not None:
            self.search = search.strip()
        if filter is not None:
            self.filter = filter

    def record(self, patient_id: int) -> AttendanceRecord:
        for record in self.records:
            if record.patient_id == patient_id:
                return record
        raise LookupError(f"patient {patient_id} is not on the roster for {self.day.isoformat()}")

    def marking(self, patient_id: int) -> AttendanceMarking:
        if patient_id not in self._markings:
            self._markings[patient_id] = AttendanceMarking(
                self.session, self.api, patient_id, on_success=self.refresh,
            )
        return self._markings[patient_id]

    def begin_marking(self, patient_id: int) -> MarkingView:
        return self.marking(patient_id).begin(self.record(patient_id))

    def can_mark(self, patient_id: int) -> bool:
        """whether the row shows an enabled Mark Present control"""
        record = self.record(patient_id)
        flow = self._markings.get(patient_id)
        return is_markable(record.attendance_status) and (flow is None or not flow.submitting)

    def start_polling(self):
        if self._closed or self.poll_seconds <= 0:
            return
        if self._poller is None:
            self._poller = PeriodicTask(
                self.poll_seconds, self.refresh, name=f"attendance-poll-{self.session.branch_id}",
            )
        self._poller.start()

    async def close(self):
        """tear down: stop polling and ignore anything still in flight"""
        self._closed = True
        if self._poller is not None:
            await self._poller.stop()
            self._poller = None

    def view(self) -> AttendanceBoardView:
        markings = []
        for record in self.records:
            flow = self._markings.get(record.patient_id)
            view = flow.view() if flow else MarkingView(patient_id=record.patient_id, state="idle")
            view.can_mark = self.can_mark(record.patient_id)
            markings.append(view)

        return AttendanceBoardView(
            day=self.day,
            filter=self.filter,
            search=self.search,
            records=self.records,
            stats=self.stats,
            markings=markings,
            error=self.error,
        )
