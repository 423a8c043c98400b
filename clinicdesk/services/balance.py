# balance evaluator — can this patient's credit cover today's session?
# pure functions, no i/o

from decimal import ROUND_CEILING, Decimal
from typing import Literal, Union

from pydantic import BaseModel

ZERO = Decimal("0")


class Sufficient(BaseModel):
    kind: Literal["sufficient"] = "sufficient"

    model_config = {"frozen": True}


class Insufficient(BaseModel):
    kind: Literal["insufficient"] = "insufficient"
    shortfall: Decimal

    model_config = {"frozen": True}


BalanceOutcome = Union[Sufficient, Insufficient]


def _require_amount(name: str, value) -> Decimal:
    # bool is an int subclass and never a valid amount
    if isinstance(value, bool) or not isinstance(value, (Decimal, int)):
        raise TypeError(f"{name} must be a Decimal, got {type(value).__name__}")
    value = Decimal(value)
    if not value.is_finite():
        raise ValueError(f"{name} must be finite")
    return value


def evaluate_balance(effective_balance: Decimal, cost_per_day: Decimal) -> BalanceOutcome:
    """classify a session-marking attempt against the patient's balance"""
    balance = _require_amount("effective_balance", effective_balance)
    cost = _require_amount("cost_per_day", cost_per_day)
    if cost < ZERO:
        raise ValueError("cost_per_day must not be negative")

    if balance >= cost:
        return Sufficient()
    return Insufficient(shortfall=max(ZERO, cost - balance))


def suggested_payment(shortfall: Decimal) -> Decimal:
    """round a shortfall up to the next whole currency unit"""
    return _require_amount("shortfall", shortfall).to_integral_value(rounding=ROUND_CEILING)
