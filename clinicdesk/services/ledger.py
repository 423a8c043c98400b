# ledger aggregator — daily cash/online balance sheet for a branch
#
# every day in the requested range gets a row, ascending. amounts are summed as
# Decimal, per instrument:
#   closing = opening + credits - debits
#   opening(d + 1) = closing(d)
# the server's own day totals are recomputed from its transaction list and any
# disagreement is reported as a discrepancy rather than trusted.

import calendar
import logging
from collections import defaultdict
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from clinicdesk.models.ledger import (
    ZERO,
    BalanceRow,
    BalanceTriple,
    Discrepancy,
    Instrument,
    LedgerDay,
    LedgerDayDetail,
    LedgerReport,
    LedgerResponse,
    LedgerSummary,
    LedgerTransaction,
    LedgerView,
    TransactionLine,
)
from clinicdesk.services.api_client import ClinicApi, ClinicApiError
from clinicdesk.services.formatting import format_currency, format_signed

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def month_bounds(today: Optional[date] = None) -> tuple[date, date]:
    """first and last day of the month containing `today`"""
    today = today or date.today()
    last = calendar.monthrange(today.year, today.month)[1]
    return today.replace(day=1), today.replace(day=last)


def date_range(start: date, end: date) -> Iterable[date]:
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


def _cents(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def _triple_cents(triple: BalanceTriple) -> BalanceTriple:
    # the backend sums in floats, so its totals carry noise below a paisa
    return BalanceTriple(total=_cents(triple.total), cash=_cents(triple.cash), online=_cents(triple.online))


def _totals(transactions: list[LedgerTransaction], field: str) -> BalanceTriple:
    sums = {Instrument.CASH: ZERO, Instrument.ONLINE: ZERO}
    for txn in transactions:
        amount = getattr(txn, field)
        if amount > 0:
            sums[txn.method] += amount
    return BalanceTriple.of(cash=sums[Instrument.CASH], online=sums[Instrument.ONLINE])


def aggregate_ledger(
    opening: BalanceTriple,
    transactions: dict[date, list[LedgerTransaction]],
    start_date: date,
    end_date: date,
) -> tuple[LedgerSummary, list[LedgerDay]]:
    """roll transactions into one ledger day per calendar date"""
    if start_date > end_date:
        raise ValueError(f"start_date {start_date} is after end_date {end_date}")

    outside = [d for d in transactions if d < start_date or d > end_date]
    if outside:
        logger.warning(f"Ignoring transactions outside {start_date}..{end_date}: {sorted(outside)}")

    days = []
    running = BalanceTriple.of(opening.cash, opening.online)
    income = ZERO
    expenses = ZERO
    for day in date_range(start_date, end_date):
        txns = transactions.get(day, [])
        credits = _totals(txns, "credit")
        debits = _totals(txns, "debit")
        closing = running + credits - debits
        days.append(LedgerDay(
            day=day,
            opening_balance=running,
            credits=credits,
            debits=debits,
            closing_balance=closing,
            transactions=txns,
        ))
        income += credits.total
        expenses += debits.total
        running = closing

    net = income - expenses
    summary = LedgerSummary(
        total_income=income,
        total_expenses=expenses,
        net_profit_loss=net,
        opening_balance=opening.total,
        current_balance=opening.total + net,
    )
    return summary, days


def build_report(response: LedgerResponse, branch_id: int, start_date: date, end_date: date) -> LedgerReport:
    """re-derive the ledger from the server payload and flag days that disagree"""
    reported = sorted(response.ledger, key=lambda d: d.day)

    if reported:
        # no transactions precede the first listed day inside the range
        first = reported[0].opening_balance
        opening = BalanceTriple.of(_cents(first.cash), _cents(first.online))
    else:
        # an empty range only reports the total; treat it as cash on hand
        opening = BalanceTriple.of(cash=_cents(response.summary.opening_balance))

    by_day: dict[date, list[LedgerTransaction]] = defaultdict(list)
    for day in reported:
        by_day[day.day].extend(day.transactions)

    summary, days = aggregate_ledger(opening, dict(by_day), start_date, end_date)

    computed = {d.day: d for d in days}
    discrepancies = []
    for day in reported:
        mine = computed.get(day.day)
        if mine is not None and _triple_cents(mine.closing_balance) != _triple_cents(day.closing_balance):
            discrepancies.append(Discrepancy(day=day.day, reported=day.closing_balance, computed=mine.closing_balance))
    if discrepancies:
        logger.warning(
            f"Branch {branch_id}: server ledger disagrees on "
            f"{', '.join(d.day.isoformat() for d in discrepancies)}"
        )

    return LedgerReport(
        branch_id=branch_id,
        start_date=start_date,
        end_date=end_date,
        summary=summary,
        days=days,
        discrepancies=discrepancies,
    )


def day_detail(day: LedgerDay) -> LedgerDayDetail:
    """accordion content for an expanded day"""
    rows = []
    for label, pick in (
        ("Cash", lambda t: t.cash),
        ("Online", lambda t: t.online),
        ("Total", lambda t: t.total),
    ):
        rows.append(BalanceRow(
            label=label,
            opening=format_currency(pick(day.opening_balance)),
            credits=format_currency(pick(day.credits)),
            debits=format_currency(pick(day.debits)),
            closing=format_currency(pick(day.closing_balance)),
        ))

    lines = [
        TransactionLine(
            description=txn.description,
            branch_name=txn.branch_name,
            instrument=txn.method,
            amount=txn.signed_amount,
            display=format_signed(txn.signed_amount),
            time=txn.time,
        )
        for txn in day.transactions
    ]
    return LedgerDayDetail(day=day.day, rows=rows, transactions=lines)


class LedgerScreen:
    """ledger for the session's branch; a failed reload keeps the last good report"""

    def __init__(self, api: ClinicApi, branch_id: int):
        self.api = api
        self.branch_id = branch_id
        self.report: Optional[LedgerReport] = None
        self.error: Optional[str] = None
        self.expanded: Optional[date] = None

    async def load(self, start_date: Optional[date] = None, end_date: Optional[date] = None) -> bool:
        default_start, default_end = month_bounds()
        start_date = start_date or default_start
        end_date = end_date or default_end
        if start_date > end_date:
            raise ValueError(f"start_date {start_date} is after end_date {end_date}")

        try:
            response = await self.api.fetch_ledger(self.branch_id, start_date, end_date)
        except ClinicApiError as e:
            self.error = str(e)
            logger.error(f"Ledger fetch failed for branch {self.branch_id}: {e}")
            return False

        self.report = build_report(response, self.branch_id, start_date, end_date)
        self.error = None
        if self.expanded is not None and not self._find(self.expanded):
            self.expanded = None
        return True

    def _find(self, day: date) -> Optional[LedgerDay]:
        if self.report is None:
            return None
        for item in self.report.days:
            if item.day == day:
                return item
        return None

    def toggle(self, day: date) -> Optional[date]:
        """expand a day, or collapse it if it is already open"""
        self.expanded = None if self.expanded == day else day
        return self.expanded

    def detail(self, day: date) -> LedgerDayDetail:
        found = self._find(day)
        if found is None:
            raise LookupError(f"{day.isoformat()} is not in the loaded ledger")
        return day_detail(found)

    def cards(self) -> dict[str, str]:
        """headline kpis, whole currency units"""
        if self.report is None:
            return {}
        s = self.report.summary
        return {
            "totalIncome": format_currency(s.total_income, places=0),
            "totalExpenses": format_currency(s.total_expenses, places=0),
            "netProfitLoss": format_currency(s.net_profit_loss, places=0),
            "openingBalance": format_currency(s.opening_balance, places=0),
            "currentBalance": format_currency(s.current_balance, places=0),
        }

    def view(self) -> LedgerView:
        return LedgerView(
            report=self.report,
            cards=self.cards(),
            error=self.error,
            stale=self.error is not None and self.report is not None,
        )
