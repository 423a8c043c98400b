# shared field types for backend payloads
# the php api sends decimals as json numbers or strings, and "-" for unbounded counts

from decimal import Decimal
from typing import Annotated, Any, Optional

from pydantic import BeforeValidator


def _to_money(value: Any) -> Any:
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, float):
        # floats only show up when a caller bypassed the decimal json parser
        return Decimal(repr(value))
    return value


def _to_optional_count(value: Any) -> Any:
    """'-', '', null and 0 all mean an unbounded plan"""
    if value in (None, "", "-"):
        return None
    if int(value) <= 0:
        return None
    return value


def _to_blank_none(value: Any) -> Any:
    if value == "":
        return None
    return value


Money = Annotated[Decimal, BeforeValidator(_to_money)]
OptionalCount = Annotated[Optional[int], BeforeValidator(_to_optional_count)]
OptionalText = Annotated[Optional[str], BeforeValidator(_to_blank_none)]
