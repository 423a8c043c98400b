# currency display helpers
# indian digit grouping (12,34,567.89), half-up rounding on Decimal only

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from clinicdesk.config import settings


def _group_indian(digits: str) -> str:
    """group an integer digit string as 1,23,45,678"""
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups) + "," + tail


def format_currency(amount: Decimal, places: int = 2, symbol: Optional[str] = None) -> str:
    """unit amounts use 2 places, headline cards use 0"""
    symbol = settings.CURRENCY_SYMBOL if symbol is None else symbol
    quantum = Decimal(1).scaleb(-places)
    value = Decimal(amount).quantize(quantum, rounding=ROUND_HALF_UP)

    sign = "-" if value < 0 else ""
    text = f"{abs(value):f}"
    whole, _, frac = text.partition(".")
    grouped = _group_indian(whole)
    return f"{sign}{symbol}{grouped}.{frac}" if frac else f"{sign}{symbol}{grouped}"


def format_signed(amount: Decimal, places: int = 2) -> str:
    """credits as +₹x, debits as -₹x"""
    if amount > 0:
        return "+" + format_currency(amount, places)
    return format_currency(amount, places)
