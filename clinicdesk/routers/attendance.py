# attendance router — daily roster and the mark-present flow for reception
# every mutating call re-fetches the roster from the clinic api before answering

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from clinicdesk.dependencies import api_error, get_session
from clinicdesk.models.attendance import (
    AttendanceBoardView,
    AttendanceFilter,
    MarkingView,
    PaymentForm,
    RemarksBody,
)
from clinicdesk.models.history import HistoryView
from clinicdesk.models.session import Session
from clinicdesk.services.api_client import ClinicApi, ClinicApiError, get_api
from clinicdesk.services.board import AttendanceBoard
from clinicdesk.services.history import load_history
from clinicdesk.services.marking import InvalidTransition, PaymentValidationError
from clinicdesk.services.screens import ScreenRegistry, get_screens

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/attendance", tags=["attendance"])


async def _board(
    session: Session = Depends(get_session),
    registry: ScreenRegistry = Depends(get_screens),
) -> AttendanceBoard:
    return registry.board(session)


def _conflict(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


def _marking_view(board: AttendanceBoard, patient_id: int) -> MarkingView:
    view = board.marking(patient_id).view()
    try:
        view.can_mark = board.can_mark(patient_id)
    except LookupError:
        # the row left the roster after the refresh (e.g. pending filter)
        view.can_mark = False
    return view


@router.get("", response_model=AttendanceBoardView)
async def get_roster(
    day: Optional[date] = Query(None, alias="date"),
    search: Optional[str] = Query(None),
    roster_filter: Optional[AttendanceFilter] = Query(None, alias="filter"),
    board: AttendanceBoard = Depends(_board),
):
    """roster for a day; a failed fetch keeps the last rows and reports the error"""
    board.set_query(day=day, search=search, filter=roster_filter)
    await board.refresh()
    return board.view()


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def close_roster(
    session: Session = Depends(get_session),
    registry: ScreenRegistry = Depends(get_screens),
):
    """reception left the screen; stop polling and drop its marking flows"""
    await registry.close_board(session)


@router.post("/{patient_id}/mark", response_model=MarkingView)
async def begin_marking(patient_id: int, board: AttendanceBoard = Depends(_board)):
    """user tapped Mark Present"""
    try:
        board.record(patient_id)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    try:
        board.begin_marking(patient_id)
    except InvalidTransition as e:
        raise _conflict(e)
    return _marking_view(board, patient_id)


@router.delete("/{patient_id}/mark", response_model=MarkingView)
async def cancel_marking(patient_id: int, board: AttendanceBoard = Depends(_board)):
    """modal closed without submitting"""
    try:
        board.marking(patient_id).cancel()
    except InvalidTransition as e:
        raise _conflict(e)
    return _marking_view(board, patient_id)


@router.post("/{patient_id}/payment-form", response_model=MarkingView)
async def open_payment_form(patient_id: int, board: AttendanceBoard = Depends(_board)):
    """Collect Payment chosen on the low-balance modal"""
    try:
        board.marking(patient_id).open_payment_form()
    except InvalidTransition as e:
        raise _conflict(e)
    return _marking_view(board, patient_id)


@router.post("/{patient_id}/confirm", response_model=MarkingView)
async def confirm_marking(patient_id: int, board: AttendanceBoard = Depends(_board)):
    """balance is sufficient, mark present"""
    try:
        await board.marking(patient_id).confirm()
    except InvalidTransition as e:
        raise _conflict(e)
    except ClinicApiError as e:
        raise api_error(e)
    return _marking_view(board, patient_id)


@router.post("/{patient_id}/pay", response_model=MarkingView)
async def pay_and_mark(patient_id: int, body: PaymentForm, board: AttendanceBoard = Depends(_board)):
    """collect a payment and mark present"""
    try:
        await board.marking(patient_id).submit_payment(body.amount, body.mode, body.remarks)
    except PaymentValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except InvalidTransition as e:
        raise _conflict(e)
    except ClinicApiError as e:
        raise api_error(e)
    return _marking_view(board, patient_id)


@router.post("/{patient_id}/request-approval", response_model=MarkingView)
async def request_approval(
    patient_id: int,
    body: Optional[RemarksBody] = None,
    board: AttendanceBoard = Depends(_board),
):
    """mark as pending for a branch admin to approve"""
    remarks = body.remarks if body else ""
    try:
        await board.marking(patient_id).request_approval(remarks)
    except InvalidTransition as e:
        raise _conflict(e)
    except ClinicApiError as e:
        raise api_error(e)
    return _marking_view(board, patient_id)


@router.get("/{patient_id}/history", response_model=HistoryView)
async def get_history(
    patient_id: int,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    session: Session = Depends(get_session),
    api: ClinicApi = Depends(get_api),
):
    """plan progress and one month of the attendance calendar"""
    try:
        return await load_history(api, patient_id, year, month)
    except ClinicApiError as e:
        raise api_error(e)
