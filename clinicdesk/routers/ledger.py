# ledger router — branch cash/online day book
# admin roles only; a failed reload answers with the previous report marked stale

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from clinicdesk.dependencies import require_role
from clinicdesk.models.ledger import LedgerDayDetail, LedgerView
from clinicdesk.models.session import ADMIN_ROLES, Session
from clinicdesk.services.ledger import LedgerScreen
from clinicdesk.services.screens import ScreenRegistry, get_screens

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/ledger", tags=["ledger"])


async def _ledger(
    session: Session = Depends(require_role(*ADMIN_ROLES)),
    registry: ScreenRegistry = Depends(get_screens),
) -> LedgerScreen:
    return registry.ledger(session)


@router.get("", response_model=LedgerView)
async def get_ledger(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    screen: LedgerScreen = Depends(_ledger),
):
    """summary and one ledger day per date, defaulting to the current month"""
    try:
        await screen.load(start_date, end_date)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    if screen.report is None and screen.error:
        # nothing to fall back on
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=screen.error)
    return screen.view()


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def close_ledger(
    session: Session = Depends(require_role(*ADMIN_ROLES)),
    registry: ScreenRegistry = Depends(get_screens),
):
    """drop the cached report when the ledger screen is left"""
    await registry.close_ledger(session)


@router.get("/{day}", response_model=LedgerDayDetail)
async def get_ledger_day(day: date, screen: LedgerScreen = Depends(_ledger)):
    """expanded accordion for one day of the last loaded report"""
    try:
        detail = screen.detail(day)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    screen.expanded = day
    return detail
