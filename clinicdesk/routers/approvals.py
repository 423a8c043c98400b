# approvals router — branch admins approve or reject pending attendance

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from clinicdesk.dependencies import api_error, require_role
from clinicdesk.models.approval import ApprovalFilter, ApprovalQueueView, Settlement
from clinicdesk.models.attendance import RemarksBody
from clinicdesk.models.session import ADMIN_ROLES, Session
from clinicdesk.services.api_client import ClinicApiError
from clinicdesk.services.approvals import ApprovalQueue, DecisionInFlight
from clinicdesk.services.screens import ScreenRegistry, get_screens

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/approvals", tags=["approvals"])


async def _queue(
    session: Session = Depends(require_role(*ADMIN_ROLES)),
    registry: ScreenRegistry = Depends(get_screens),
) -> ApprovalQueue:
    return registry.queue(session)


def _busy(e: DecisionInFlight) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Another decision is in progress: {e}")


def _not_listed(attendance_id: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Attendance {attendance_id} is not pending (already resolved or not loaded)",
    )


@router.get("", response_model=ApprovalQueueView)
async def list_requests(
    request_status: ApprovalFilter = Query("pending", alias="status"),
    branch_id: Optional[int] = Query(None, ge=0),
    search: str = Query(""),
    queue: ApprovalQueue = Depends(_queue),
):
    """pending (or resolved) requests, searchable by name, uid or remarks"""
    ok = await queue.refresh(status=request_status, branch_id=branch_id)
    if not ok and not queue.records:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=queue.error)
    return queue.view(search)


@router.post("/{attendance_id}/approve", response_model=Settlement)
async def approve_request(attendance_id: int, queue: ApprovalQueue = Depends(_queue)):
    """approve; the session is debited on its original attendance date"""
    try:
        settlement = await queue.approve(attendance_id)
    except DecisionInFlight as e:
        raise _busy(e)
    except ClinicApiError as e:
        raise api_error(e)
    if settlement is None:
        raise _not_listed(attendance_id)
    return settlement


@router.post("/{attendance_id}/reject", response_model=Settlement)
async def reject_request(
    attendance_id: int,
    body: Optional[RemarksBody] = None,
    queue: ApprovalQueue = Depends(_queue),
):
    """reject; no debit, balance untouched"""
    try:
        settlement = await queue.reject(attendance_id, body.remarks if body else "")
    except DecisionInFlight as e:
        raise _busy(e)
    except ClinicApiError as e:
        raise api_error(e)
    if settlement is None:
        raise _not_listed(attendance_id)
    return settlement


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def close_queue(
    session: Session = Depends(require_role(*ADMIN_ROLES)),
    registry: ScreenRegistry = Depends(get_screens),
):
    """forget the admin's queue when the screen is left"""
    await registry.close_queue(session)
