# session models — explicit employee/branch/role context
# built from request headers and passed to every core operation

from typing import Literal
from pydantic import BaseModel, Field

Role = Literal["reception", "admin", "superadmin", "developer"]

ADMIN_ROLES = ("admin", "superadmin")


class Session(BaseModel):
    """who is acting, for which branch"""
    employee_id: int = Field(..., alias="employeeId", gt=0)
    branch_id: int = Field(..., alias="branchId", ge=0)
    role: Role = "reception"

    model_config = {"populate_by_name": True, "frozen": True}
