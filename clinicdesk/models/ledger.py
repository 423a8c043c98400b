# ledger models — daily cash/online balance sheet for a branch
# mirrors admin/ledger.php, plus the derived report and accordion rows

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from clinicdesk.models.fields import Money, OptionalText

ZERO = Decimal("0")


class Instrument(str, Enum):
    CASH = "cash"
    ONLINE = "online"


def instrument_for_mode(mode: Optional[str]) -> Instrument:
    """cash stays cash, every other payment mode settles online"""
    if (mode or "").strip().lower() == "cash":
        return Instrument.CASH
    return Instrument.ONLINE


class BalanceTriple(BaseModel):
    total: Money = ZERO
    cash: Money = ZERO
    online: Money = ZERO

    model_config = {"frozen": True}

    @classmethod
    def of(cls, cash: Decimal = ZERO, online: Decimal = ZERO) -> "BalanceTriple":
        return cls(total=cash + online, cash=cash, online=online)

    def get(self, instrument: Instrument) -> Decimal:
        return self.cash if instrument is Instrument.CASH else self.online

    def __add__(self, other: "BalanceTriple") -> "BalanceTriple":
        return BalanceTriple.of(self.cash + other.cash, self.online + other.online)

    def __sub__(self, other: "BalanceTriple") -> "BalanceTriple":
        return BalanceTriple.of(self.cash - other.cash, self.online - other.online)


class LedgerTransaction(BaseModel):
    """one credit or debit line inside a ledger day"""
    description: str = ""
    branch_name: OptionalText = Field(None, alias="branchName")
    method: Instrument = Instrument.ONLINE
    credit: Money = ZERO
    debit: Money = ZERO
    time: OptionalText = None

    model_config = {"populate_by_name": True}

    @field_validator("method", mode="before")
    @classmethod
    def _normalise_method(cls, value):
        return instrument_for_mode(value)

    @property
    def signed_amount(self) -> Decimal:
        return self.credit - self.debit


class LedgerDay(BaseModel):
    day: date = Field(..., alias="date")
    opening_balance: BalanceTriple = Field(default_factory=BalanceTriple, alias="openingBalance")
    credits: BalanceTriple = Field(default_factory=BalanceTriple)
    debits: BalanceTriple = Field(default_factory=BalanceTriple)
    closing_balance: BalanceTriple = Field(default_factory=BalanceTriple, alias="closingBalance")
    transactions: list[LedgerTransaction] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class LedgerSummary(BaseModel):
    total_income: Money = Field(ZERO, alias="totalIncome")
    total_expenses: Money = Field(ZERO, alias="totalExpenses")
    net_profit_loss: Money = Field(ZERO, alias="netProfitLoss")
    opening_balance: Money = Field(ZERO, alias="openingBalance")
    current_balance: Money = Field(ZERO, alias="currentBalance")

    model_config = {"populate_by_name": True}


class LedgerResponse(BaseModel):
    """envelope payload of GET admin/ledger.php"""
    summary: LedgerSummary = Field(default_factory=LedgerSummary)
    ledger: list[LedgerDay] = Field(default_factory=list)


class Discrepancy(BaseModel):
    """a day whose server-side closing balance disagrees with the recomputed one"""
    day: date = Field(..., alias="date")
    reported: BalanceTriple
    computed: BalanceTriple

    model_config = {"populate_by_name": True}


class LedgerReport(BaseModel):
    branch_id: int = Field(..., alias="branchId")
    start_date: date = Field(..., alias="startDate")
    end_date: date = Field(..., alias="endDate")
    summary: LedgerSummary
    days: list[LedgerDay] = Field(default_factory=list)
    discrepancies: list[Discrepancy] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class BalanceRow(BaseModel):
    """one accordion row: an instrument across opening/credits/debits/closing"""
    label: str
    opening: str
    credits: str
    debits: str
    closing: str


class TransactionLine(BaseModel):
    description: str
    branch_name: Optional[str] = Field(None, alias="branchName")
    instrument: Instrument
    amount: Decimal
    display: str
    time: Optional[str] = None

    model_config = {"populate_by_name": True}


class LedgerDayDetail(BaseModel):
    day: date = Field(..., alias="date")
    rows: list[BalanceRow]
    transactions: list[TransactionLine]

    model_config = {"populate_by_name": True}


class LedgerView(BaseModel):
    """ledger screen payload: headline cards, days and the last error if any"""
    report: Optional[LedgerReport] = None
    cards: dict[str, str] = Field(default_factory=dict)
    error: Optional[str] = None
    stale: bool = False
