# async http client for the remote clinic api
# wraps httpx, decodes money as Decimal and unwraps the {status, message} envelope

import json
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Optional, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from clinicdesk.config import settings
from clinicdesk.models.approval import ApprovalListResponse, Decision
from clinicdesk.models.attendance import (
    AttendanceListResponse,
    MarkAttendanceRequest,
    MarkAttendanceResult,
)
from clinicdesk.models.history import AttendanceHistory
from clinicdesk.models.ledger import LedgerResponse
from clinicdesk.models.session import Session

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# endpoint paths, relative to CLINIC_API_BASE_URL
ATTENDANCE_PATH = "attendance.php"
MARK_ATTENDANCE_PATH = "mark_attendance.php"
HISTORY_PATH = "attendance_history.php"
LEDGER_PATH = "admin/ledger.php"
APPROVALS_PATH = "admin/attendance.php"


class ClinicApiError(Exception):
    """base class for every failure talking to the clinic api"""


class TransportError(ClinicApiError):
    """the request never produced a usable response"""


class BackendError(ClinicApiError):
    """the backend answered with status != success"""


class ClinicApi:
    """async clinic api connection manager"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.CLINIC_API_BASE_URL).rstrip("/") + "/"
        self.timeout = timeout if timeout is not None else settings.CLINIC_API_TIMEOUT_SECONDS
        self.transport = transport
        self.client: Optional[httpx.AsyncClient] = None

    async def connect(self):
        """open the shared http client"""
        if self.client is not None:
            return

        logger.info(f"Connecting to clinic API at {self.base_url}")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def close(self):
        """close the shared http client"""
        if self.client:
            await self.client.aclose()
            self.client = None
            logger.info("Clinic API client closed")

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        body: Optional[str] = None,
    ) -> dict:
        if self.client is None:
            await self.connect()

        headers = {"Content-Type": "application/json"} if body is not None else None
        try:
            resp = await self.client.request(method, path, params=params, content=body, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise TransportError(f"Could not reach the clinic server: {e}") from e

        try:
            # money must never pass through float
            payload = json.loads(resp.text, parse_float=Decimal)
        except ValueError as e:
            logger.error(f"{method} {path} returned a non-json body (HTTP {resp.status_code})")
            raise TransportError(f"Unexpected response from the clinic server (HTTP {resp.status_code})") from e

        if not isinstance(payload, dict) or payload.get("status") != "success":
            message = payload.get("message") if isinstance(payload, dict) else None
            logger.warning(f"{method} {path} rejected: {message}")
            raise BackendError(message or "Request failed")

        return payload

    @staticmethod
    def _parse(model: type[ModelT], payload: Any, path: str) -> ModelT:
        """a success envelope whose rows do not fit the model is unusable, not a client error"""
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            logger.error(f"{path} returned a malformed payload: {e.error_count()} invalid field(s)")
            raise TransportError("Unexpected response from the clinic server") from e

    # attendance

    async def fetch_attendance(
        self,
        session: Session,
        day: date,
        search: str = "",
        status: str = "all",
        limit: Optional[int] = None,
    ) -> AttendanceListResponse:
        params = {
            "branch_id": session.branch_id,
            "date": day.isoformat(),
            "search": search,
            "status": status,
            "limit": limit or settings.ATTENDANCE_LIST_LIMIT,
        }
        payload = await self._request("GET", ATTENDANCE_PATH, params=params)
        return self._parse(AttendanceListResponse, payload, ATTENDANCE_PATH)

    async def mark_attendance(self, request: MarkAttendanceRequest) -> MarkAttendanceResult:
        payload = await self._request("POST", MARK_ATTENDANCE_PATH, body=request.model_dump_json())
        return self._parse(MarkAttendanceResult, payload, MARK_ATTENDANCE_PATH)

    async def fetch_history(self, patient_id: int) -> AttendanceHistory:
        payload = await self._request("GET", HISTORY_PATH, params={"patient_id": patient_id})
        return self._parse(AttendanceHistory, payload.get("data") or {}, HISTORY_PATH)

    # ledger

    async def fetch_ledger(self, branch_id: int, start_date: date, end_date: date) -> LedgerResponse:
        params = {
            "branch_id": branch_id,
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
        }
        payload = await self._request("GET", LEDGER_PATH, params=params)
        return self._parse(LedgerResponse, payload, LEDGER_PATH)

    # approvals

    async def fetch_approvals(
        self,
        session: Session,
        status: str = "pending",
        branch_id: Optional[int] = None,
    ) -> ApprovalListResponse:
        params: dict[str, Any] = {
            "action": "fetch_attendance",
            "user_id": session.employee_id,
            "status": status,
            "branch_id": branch_id or "",
        }
        payload = await self._request("GET", APPROVALS_PATH, params=params)
        return self._parse(ApprovalListResponse, payload, APPROVALS_PATH)

    async def update_approval(
        self,
        session: Session,
        attendance_id: int,
        decision: Decision,
        remarks: str = "",
    ) -> None:
        body = {
            "action": "update_status",
            "user_id": session.employee_id,
            "attendance_id": attendance_id,
            "status": decision,
        }
        if remarks:
            body["remarks"] = remarks
        await self._request("POST", APPROVALS_PATH, body=json.dumps(body))


# singleton instance
api = ClinicApi()


async def get_api() -> ClinicApi:
    """dependency injection for clinic api access"""
    return api
