# shared fixtures for clinicdesk tests
# provides an in-memory fake of the clinic php api (served through httpx.MockTransport),
# sessions, a connected api client, an attendance board and an app test client

import asyncio
import json
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional
from urllib.parse import parse_qs

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from clinicdesk.main import app
from clinicdesk.models.attendance import AttendanceStatus, PaymentMode
from clinicdesk.models.ledger import instrument_for_mode
from clinicdesk.models.session import Session
from clinicdesk.services.api_client import ClinicApi, get_api
from clinicdesk.services.board import AttendanceBoard
from clinicdesk.services.screens import ScreenRegistry, get_screens
from tests.fake_accounts import AttendanceConflict, SessionAccount


TODAY = date(2024, 1, 10)
BASE_URL = "http://clinic.test/api"
BRANCH_ID = 1
BRANCH_NAME = "Main Branch"
EMPLOYEE_ID = 7
ADMIN_ID = 2

# seeded patients
FULL_BALANCE_ID = 101   # balance 500, cost 500
LOW_BALANCE_ID = 102    # balance 200, cost 500
PLAN_PATIENT_ID = 103   # balance 1000, cost 400, 10-day plan


def _json_default(value):
    # the php api sends decimals as plain json numbers
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    raise TypeError(f"not serializable: {value!r}")


def _ok(payload: dict) -> httpx.Response:
    return httpx.Response(200, content=json.dumps({"status": "success", **payload}, default=_json_default))


def _error(message: str, code: int = 400) -> httpx.Response:
    return httpx.Response(code, content=json.dumps({"status": "error", "message": message}))


class FakeClinicBackend:
    """in-memory stand-in for the clinic's php endpoints"""

    def __init__(self, today: date = TODAY):
        self.today = today
        self.patients: dict[int, dict] = {}
        self.accounts: dict[int, SessionAccount] = {}
        self.attendance: dict[int, tuple[int, date]] = {}
        self.requested_at: dict[int, datetime] = {}
        self.expenses: list[dict] = []
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[str, str] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.canned: dict[str, dict] = {}
        self._next_attendance_id = 1

    # seeding

    def add_patient(
        self,
        patient_id: int,
        name: str,
        cost_per_day: str,
        paid: str = "0",
        treatment_days: Optional[int] = None,
        mode: str = "cash",
        start_date: Optional[date] = None,
    ) -> SessionAccount:
        start = start_date or self.today - timedelta(days=30)
        self.patients[patient_id] = {
            "name": name,
            "uid": f"PS-{patient_id}",
            "treatment_type": "daily" if treatment_days is None else "package",
            "start_date": start,
        }
        account = SessionAccount(patient_id, Decimal(cost_per_day), treatment_days)
        if Decimal(paid) > 0:
            account.record_payment(Decimal(paid), PaymentMode(mode), on=datetime.combine(start, datetime.min.time()))
        self.accounts[patient_id] = account
        return account

    def add_expense(self, day: date, amount: str, method: str = "cash", description: str = "Supplies"):
        self.expenses.append({"date": day, "amount": Decimal(amount), "method": method, "description": description})

    def add_attendance(self, patient_id: int, day: date, pending: bool = False, remarks: str = "") -> int:
        self.accounts[patient_id].mark(day, pending=pending, remarks=remarks)
        attendance_id = self._next_attendance_id
        self._next_attendance_id += 1
        self.attendance[attendance_id] = (patient_id, day)
        if pending:
            self.requested_at[attendance_id] = datetime.combine(day, datetime.min.time()) + timedelta(hours=10)
        return attendance_id

    # failure injection

    def fail_next(self, path: str, message: str = "network"):
        """'network' raises a transport error, anything else becomes an error envelope"""
        self.failures[path] = message

    def respond_next(self, path: str, payload: dict):
        """answer the next request to `path` with this success payload, whatever it holds"""
        self.canned[path] = payload

    def hold(self, path: str) -> asyncio.Event:
        """block requests to `path` until the returned event is set"""
        gate = asyncio.Event()
        self.gates[path] = gate
        return gate

    def count(self, path: str) -> int:
        return sum(1 for _, p in self.calls if p == path)

    # transport

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.split("/api/", 1)[1]
        self.calls.append((request.method, path))

        gate = self.gates.get(path)
        if gate is not None:
            await gate.wait()

        failure = self.failures.pop(path, None)
        if failure == "network":
            raise httpx.ConnectError("connection refused", request=request)
        if failure is not None:
            return _error(failure)
        canned = self.canned.pop(path, None)
        if canned is not None:
            return _ok(canned)

        params = {k: v[0] for k, v in parse_qs(request.url.query.decode(), keep_blank_values=True).items()}
        if path == "attendance.php":
            return self._attendance(params)
        if path == "mark_attendance.php":
            return self._mark(json.loads(request.content))
        if path == "attendance_history.php":
            return self._history(params)
        if path == "admin/ledger.php":
            return self._ledger(params)
        if path == "admin/attendance.php":
            if request.method == "GET":
                return self._fetch_approvals(params)
            return self._update_approval(json.loads(request.content))
        return _error("Not found", 404)

    # endpoints

    def _attendance(self, params: dict) -> httpx.Response:
        day = date.fromisoformat(params.get("date", self.today.isoformat()))
        search = params.get("search", "").lower()
        wanted = params.get("status", "all")

        rows = []
        counts = {"present": 0, "pending": 0}
        for pid, info in self.patients.items():
            account = self.accounts[pid]
            status = account.status_on(day)
            if status.value in counts:
                counts[status.value] += 1
            if search and search not in info["name"].lower():
                continue
            if wanted == "present" and status is not AttendanceStatus.PRESENT:
                continue
            rows.append({
                "patient_id": pid,
                "patient_name": info["name"],
                "patient_uid": info["uid"],
                "patient_photo_path": None,
                "phone_number": "9800000000",
                "treatment_type": info["treatment_type"],
                "treatment_days": account.treatment_days or 0,
                "session_count": account.sessions_attended,
                "is_present": status is AttendanceStatus.PRESENT,
                "attendance_status": None if status is AttendanceStatus.NONE else status.value,
                "attended_date": day if status is not AttendanceStatus.NONE else None,
                "cost_per_day": account.cost_per_day,
                "effective_balance": account.effective_balance,
            })

        total = len(self.patients)
        stats = {
            "total_active": total,
            "present": counts["present"],
            "pending": counts["pending"],
            "absent": total - counts["present"] - counts["pending"],
        }
        return _ok({"data": rows, "stats": stats})

    def _mark(self, body: dict) -> httpx.Response:
        pid = int(body.get("patient_id") or 0)
        account = self.accounts.get(pid)
        if account is None:
            return _error("Patient not found")
        if account.status_on(self.today) in (AttendanceStatus.PRESENT, AttendanceStatus.PENDING):
            return _error("Attendance already marked/requested for today")

        amount = Decimal(str(body.get("payment_amount") or 0))
        pending = bool(body.get("mark_as_pending"))
        remarks = body.get("remarks") or ""
        if amount > 0:
            if not body.get("mode"):
                return _error("Payment mode is required.")
            account.record_payment(amount, PaymentMode(body["mode"]), remarks,
                                   on=datetime.combine(self.today, datetime.min.time()) + timedelta(hours=11),
                                   attendance_date=self.today)
        elif not pending and account.effective_balance < account.cost_per_day:
            needed = account.cost_per_day - account.effective_balance
            return _error(f"Insufficient balance. Need ₹{needed:.2f}. Request approval if needed.")

        try:
            attendance_id = self.add_attendance(pid, self.today, pending=pending, remarks=remarks)
        except AttendanceConflict as e:
            return _error(str(e))
        return _ok({
            "message": "Attendance marked",
            "attendance_id": attendance_id,
            "new_balance": account.effective_balance,
        })

    def _history(self, params: dict) -> httpx.Response:
        pid = int(params.get("patient_id", 0))
        account = self.accounts.get(pid)
        if account is None:
            return _error("Patient not found", 404)
        info = self.patients[pid]
        history = [
            {"attendance_date": m.attendance_date, "remarks": m.remarks, "status": m.status.value}
            for m in sorted(account.marks.values(), key=lambda m: m.attendance_date, reverse=True)
        ]
        # like the php endpoint, present_count counts every row since the plan start
        since_start = sum(1 for h in history if h["attendance_date"] >= info["start_date"])
        total = account.treatment_days or 0
        stats = {
            "total_days": total if total > 0 else "-",
            "present_count": since_start,
            "remaining": max(0, total - since_start) if total > 0 else "-",
        }
        patient = {
            "id": pid,
            "name": info["name"],
            "treatment_type": info["treatment_type"],
            "treatment_days": total,
            "start_date": info["start_date"],
        }
        return _ok({"data": {"patient": patient, "stats": stats, "history": history}})

    def _transactions(self) -> list[dict]:
        txns = []
        for pid, account in self.accounts.items():
            for payment in account.payments:
                txns.append({
                    "date": payment.timestamp,
                    "description": f"Treatment payment from {self.patients[pid]['name']}",
                    "method": instrument_for_mode(payment.mode.value).value,
                    "credit": payment.amount,
                    "debit": Decimal("0"),
                })
        for expense in self.expenses:
            txns.append({
                "date": datetime.combine(expense["date"], datetime.min.time()) + timedelta(hours=15),
                "description": expense["description"],
                "method": instrument_for_mode(expense["method"]).value,
                "credit": Decimal("0"),
                "debit": expense["amount"],
            })
        return sorted(txns, key=lambda t: (t["date"], -t["credit"]))

    def _ledger(self, params: dict) -> httpx.Response:
        start = date.fromisoformat(params["start_date"])
        end = date.fromisoformat(params["end_date"])
        txns = self._transactions()

        opening = {"cash": Decimal("0"), "online": Decimal("0")}
        grouped: dict[date, dict] = {}
        for txn in txns:
            day = txn["date"].date()
            if day < start:
                opening[txn["method"]] += txn["credit"] - txn["debit"]
                continue
            if day > end:
                continue
            bucket = grouped.setdefault(day, {
                "credits": {"total": Decimal("0"), "cash": Decimal("0"), "online": Decimal("0")},
                "debits": {"total": Decimal("0"), "cash": Decimal("0"), "online": Decimal("0")},
                "transactions": [],
            })
            bucket["transactions"].append({
                "description": txn["description"],
                "branch_name": BRANCH_NAME,
                "method": txn["method"],
                "credit": txn["credit"],
                "debit": txn["debit"],
                "time": txn["date"].strftime("%H:%M"),
            })
            for key, field in (("credits", "credit"), ("debits", "debit")):
                if txn[field] > 0:
                    bucket[key]["total"] += txn[field]
                    bucket[key][txn["method"]] += txn[field]

        cash, online = opening["cash"], opening["online"]
        days = []
        income = expenses = Decimal("0")
        for day in sorted(grouped):
            data = grouped[day]
            open_cash, open_online = cash, online
            cash += data["credits"]["cash"] - data["debits"]["cash"]
            online += data["credits"]["online"] - data["debits"]["online"]
            income += data["credits"]["total"]
            expenses += data["debits"]["total"]
            days.append({
                "date": day,
                "opening_balance": {"total": open_cash + open_online, "cash": open_cash, "online": open_online},
                "credits": data["credits"],
                "debits": data["debits"],
                "closing_balance": {"total": cash + online, "cash": cash, "online": online},
                "transactions": data["transactions"],
            })
        days.reverse()

        opening_total = opening["cash"] + opening["online"]
        summary = {
            "total_income": income,
            "total_expenses": expenses,
            "net_profit_loss": income - expenses,
            "opening_balance": opening_total,
            "current_balance": opening_total + income - expenses,
        }
        return _ok({"summary": summary, "ledger": days})

    def _approval_rows(self, wanted: str) -> list[dict]:
        db_status = "present" if wanted == "approved" else wanted
        rows = []
        for attendance_id, (pid, day) in self.attendance.items():
            account = self.accounts[pid]
            mark = account.marks[day]
            if db_status and mark.status.value != db_status:
                continue
            info = self.patients[pid]
            rows.append({
                "attendance_id": attendance_id,
                "attendance_date": day,
                "status": mark.status.value,
                "remarks": mark.remarks,
                "approval_request_at": self.requested_at.get(attendance_id),
                "patient_id": pid,
                "patient_name": info["name"],
                "branch_name": BRANCH_NAME,
                "patient_uid": info["uid"],
            })
        return rows

    def _fetch_approvals(self, params: dict) -> httpx.Response:
        rows = self._approval_rows(params.get("status", "pending"))
        pending = len(self._approval_rows("pending"))
        return _ok({
            "data": rows,
            "branches": [{"branch_id": BRANCH_ID, "branch_name": BRANCH_NAME}],
            "stats": {"pending": pending},
        })

    def _update_approval(self, body: dict) -> httpx.Response:
        found = self.attendance.get(int(body.get("attendance_id") or 0))
        if found is None:
            return _error("Record not found", 200)
        pid, day = found
        try:
            self.accounts[pid].resolve(day, body["status"])
        except AttendanceConflict as e:
            return _error(str(e), 500)
        return _ok({"message": "Attendance status updated"})


@pytest.fixture
def backend():
    """fake clinic api seeded with three patients on TODAY"""
    fake = FakeClinicBackend()
    fake.add_patient(FULL_BALANCE_ID, "Asha Verma", cost_per_day="500", paid="500")
    fake.add_patient(LOW_BALANCE_ID, "Ravi Kumar", cost_per_day="500", paid="200", mode="upi")
    fake.add_patient(PLAN_PATIENT_ID, "Meena Iyer", cost_per_day="400", paid="1000", treatment_days=10)
    return fake


@pytest.fixture
def session():
    return Session(employee_id=EMPLOYEE_ID, branch_id=BRANCH_ID, role="reception")


@pytest.fixture
def admin_session():
    return Session(employee_id=ADMIN_ID, branch_id=BRANCH_ID, role="admin")


@pytest_asyncio.fixture
async def clinic_api(backend):
    """api client wired to the fake backend"""
    client = ClinicApi(base_url=BASE_URL, transport=httpx.MockTransport(backend.handler))
    await client.connect()
    yield client
    await client.close()


@pytest_asyncio.fixture
async def board(session, clinic_api):
    """attendance board for TODAY, already loaded, no polling"""
    b = AttendanceBoard(session, clinic_api, day=TODAY, poll_seconds=0)
    await b.refresh()
    yield b
    await b.close()


@pytest_asyncio.fixture
async def registry(clinic_api):
    reg = ScreenRegistry(clinic_api, poll_seconds=0)
    yield reg
    await reg.close_all()


def session_headers(role: str = "reception", employee_id: int = EMPLOYEE_ID, branch_id: int = BRANCH_ID) -> dict:
    return {"X-Employee-Id": str(employee_id), "X-Branch-Id": str(branch_id), "X-Role": role}


@pytest_asyncio.fixture
async def client(clinic_api, registry):
    """httpx async test client with the fake backend behind the app"""

    async def override_get_api():
        return clinic_api

    async def override_get_screens():
        return registry

    app.dependency_overrides[get_api] = override_get_api
    app.dependency_overrides[get_screens] = override_get_screens

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
