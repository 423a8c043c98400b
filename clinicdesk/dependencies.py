# fastapi dependency injection
# provides get_session (employee/branch/role context) and role-based access control

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from pydantic import ValidationError

from clinicdesk.models.session import Session
from clinicdesk.services.api_client import ClinicApiError, TransportError

logger = logging.getLogger(__name__)


async def get_session(
    employee_id: Optional[str] = Header(None, alias="X-Employee-Id"),
    branch_id: Optional[str] = Header(None, alias="X-Branch-Id"),
    role: Optional[str] = Header("reception", alias="X-Role"),
) -> Session:
    """build the session context forwarded by the authenticated front-end"""
    if not employee_id or branch_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing session headers",
        )

    try:
        return Session(employee_id=employee_id, branch_id=branch_id, role=role)
    except ValidationError:
        logger.warning(f"Rejected session headers: employee={employee_id!r} branch={branch_id!r} role={role!r}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session headers",
        )


def require_role(*roles: str):
    """factory for role-based access control dependency"""

    async def role_checker(session: Session = Depends(get_session)) -> Session:
        if session.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {' or '.join(roles)}",
            )
        return session

    return role_checker


def api_error(e: ClinicApiError) -> HTTPException:
    """translate a clinic api failure into the response the ui shows verbatim"""
    if isinstance(e, TransportError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
