# attendance action controller — one state machine per patient row
#
# idle -> evaluating -> confirm_pending          (balance covers the session)
#                    -> balance_action_pending   (collect payment | request approval)
# confirm_pending / balance_action_pending -> submitting -> idle on success
#                                                         -> back where it came from on failure
#
# exactly one mark_attendance call leaves per user confirmation; while submitting,
# every further submit is a no-op

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Awaitable, Callable, Optional, Union

from clinicdesk.models.attendance import (
    AttendanceRecord,
    MarkAttendanceRequest,
    MarkingView,
    PaymentForm,
    PaymentMode,
    is_markable,
)
from clinicdesk.models.session import Session
from clinicdesk.services.api_client import ClinicApi, ClinicApiError
from clinicdesk.services.balance import Insufficient, evaluate_balance, suggested_payment

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class MarkState(str, Enum):
    IDLE = "idle"
    EVALUATING = "evaluating"
    CONFIRM_PENDING = "confirm_pending"
    BALANCE_ACTION_PENDING = "balance_action_pending"
    SUBMITTING = "submitting"


class InvalidTransition(Exception):
    """the requested action is not allowed from the current state"""


class PaymentValidationError(ValueError):
    """the payment form is incomplete; nothing was sent"""


class AttendanceMarking:
    """marking flow for a single patient on the attendance board"""

    def __init__(
        self,
        session: Session,
        api: ClinicApi,
        patient_id: int,
        on_success: Optional[Callable[[], Awaitable[object]]] = None,
    ):
        self.session = session
        self.api = api
        self.patient_id = patient_id
        self.on_success = on_success
        self.state = MarkState.IDLE
        self.record: Optional[AttendanceRecord] = None
        self.shortfall: Optional[Decimal] = None
        self.payment_form_open = False
        self.payment = PaymentForm()
        self.error: Optional[str] = None

    @property
    def submitting(self) -> bool:
        return self.state is MarkState.SUBMITTING

    def _reset(self):
        self.state = MarkState.IDLE
        self.record = None
        self.shortfall = None
        self.payment_form_open = False
        self.payment = PaymentForm()

    def _require(self, *states: MarkState):
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise InvalidTransition(f"cannot do that while {self.state.value} (needs {allowed})")

    def begin(self, record: AttendanceRecord) -> MarkingView:
        """user tapped Mark Present: evaluate the balance and open the right modal"""
        self._require(MarkState.IDLE)
        if record.patient_id != self.patient_id:
            raise ValueError(f"record for patient {record.patient_id} given to marking of {self.patient_id}")
        if not is_markable(record.attendance_status):
            raise InvalidTransition(f"attendance already {record.attendance_status.value} for this day")

        self.state = MarkState.EVALUATING
        self.record = record
        self.error = None
        outcome = evaluate_balance(record.effective_balance, record.cost_per_day)

        if isinstance(outcome, Insufficient):
            self.shortfall = outcome.shortfall
            self.payment = PaymentForm(amount=suggested_payment(outcome.shortfall))
            self.state = MarkState.BALANCE_ACTION_PENDING
        else:
            self.state = MarkState.CONFIRM_PENDING

        logger.info(f"Patient {self.patient_id}: marking -> {self.state.value}")
        return self.view()

    def open_payment_form(self) -> MarkingView:
        """"Collect Payment" chosen on the low-balance modal"""
        self._require(MarkState.BALANCE_ACTION_PENDING)
        self.payment_form_open = True
        return self.view()

    def cancel(self) -> MarkingView:
        """modal closed before submitting: drop the local form, no side effects"""
        if self.submitting:
            raise InvalidTransition("a submission is already in flight")
        if self.state is not MarkState.IDLE:
            logger.info(f"Patient {self.patient_id}: marking cancelled")
        self._reset()
        self.error = None
        return self.view()

    async def confirm(self) -> bool:
        """balance is sufficient, mark present with no payment"""
        if self.submitting:
            return False
        self._require(MarkState.CONFIRM_PENDING)
        return await self._submit(self._request(), MarkState.CONFIRM_PENDING)

    async def submit_payment(
        self,
        amount: Union[Decimal, str, int, None] = None,
        mode: Union[PaymentMode, str, None] = None,
        remarks: Optional[str] = None,
    ) -> bool:
        """collect a payment and mark present in the same call"""
        if self.submitting:
            return False
        self._require(MarkState.BALANCE_ACTION_PENDING)
        if not self.payment_form_open:
            raise InvalidTransition("the payment form is not open")

        form = self._validated_form(
            self.payment.amount if amount is None else amount,
            self.payment.mode if mode is None else mode,
            self.payment.remarks if remarks is None else remarks,
        )
        self.payment = form
        request = self._request(payment_amount=form.amount, mode=form.mode.value, remarks=form.remarks)
        return await self._submit(request, MarkState.BALANCE_ACTION_PENDING)

    async def request_approval(self, remarks: str = "") -> bool:
        """mark as pending and leave the session for a branch admin to approve"""
        if self.submitting:
            return False
        self._require(MarkState.BALANCE_ACTION_PENDING)
        request = self._request(remarks=remarks, mark_as_pending=True)
        return await self._submit(request, MarkState.BALANCE_ACTION_PENDING)

    def _validated_form(self, amount, mode, remarks: str) -> PaymentForm:
        if amount is None or amount == "":
            raise PaymentValidationError("Payment amount is required")
        try:
            value = Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)
        except InvalidOperation as e:
            raise PaymentValidationError(f"Invalid payment amount: {amount}") from e
        if not value.is_finite() or value <= 0:
            raise PaymentValidationError("Payment amount must be greater than zero")

        if not mode:
            raise PaymentValidationError("Payment mode is required")
        try:
            payment_mode = PaymentMode(mode)
        except ValueError as e:
            raise PaymentValidationError(f"Unknown payment mode: {mode}") from e

        return PaymentForm(amount=value, mode=payment_mode, remarks=(remarks or "").strip())

    def _request(self, **overrides) -> MarkAttendanceRequest:
        return MarkAttendanceRequest(
            patient_id=self.patient_id,
            employee_id=self.session.employee_id,
            **overrides,
        )

    async def _submit(self, request: MarkAttendanceRequest, resume: MarkState) -> bool:
        self.state = MarkState.SUBMITTING
        self.error = None
        logger.info(
            f"Patient {self.patient_id}: submitting attendance "
            f"(payment={request.payment_amount}, pending={request.mark_as_pending})"
        )
        try:
            result = await self.api.mark_attendance(request)
        except ClinicApiError as e:
            self.state = resume
            self.error = str(e)
            logger.warning(f"Patient {self.patient_id}: attendance not marked: {e}")
            raise

        logger.info(f"Patient {self.patient_id}: {result.message or 'attendance marked'}")
        self._reset()
        if self.on_success is not None:
            # balances and stats come from the server, never from a local patch
            await self.on_success()
        return True

    def view(self) -> MarkingView:
        record = self.record
        return MarkingView(
            patient_id=self.patient_id,
            state=self.state.value,
            effective_balance=record.effective_balance if record else None,
            cost_per_day=record.cost_per_day if record else None,
            shortfall=self.shortfall,
            payment_form_open=self.payment_form_open,
            payment=self.payment,
            error=self.error,
            can_mark=self.state is MarkState.IDLE,
        )
