"""
Step 7 payment tracking.

Insurance pays in two parts. Each part (ACV, RCV) gets exactly one
record, created as "expected" and later marked "received". The summary
and closure checks below are pure functions over the payment list.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..client.api import ClaimApiClient
from ..utils.errors import ApiError, ClientValidationError
from .schema import Payment, PaymentStatus, PaymentType

logger = logging.getLogger(__name__)


# ============================================================================
# Summary and closure readiness
# ============================================================================


@dataclass
class PaymentSummary:
    total_acv_received: float = 0.0
    total_rcv_received: float = 0.0
    expected_acv: float = 0.0
    expected_rcv: float = 0.0
    acv_delta: float = 0.0
    rcv_delta: float = 0.0
    fully_reconciled: bool = True
    has_disputes: bool = False


@dataclass
class ClosureStatus:
    can_close: bool
    blocking_reason: str = ""
    acv_received: bool = False
    rcv_received: bool = False
    all_reconciled: bool = False
    outstanding_acv: float = 0.0
    outstanding_rcv: float = 0.0


def summarize_payments(payments: list[Payment]) -> PaymentSummary:
    """Totals received vs expected per payment type."""
    summary = PaymentSummary()

    for payment in payments:
        counted = payment.status in (PaymentStatus.RECEIVED, PaymentStatus.RECONCILED)
        expected = payment.expected_amount or 0.0

        if payment.payment_type == PaymentType.ACV:
            summary.expected_acv += expected
            if counted:
                summary.total_acv_received += payment.amount
        else:
            summary.expected_rcv += expected
            if counted:
                summary.total_rcv_received += payment.amount

        if payment.status != PaymentStatus.RECONCILED:
            summary.fully_reconciled = False
        if payment.status == PaymentStatus.DISPUTED:
            summary.has_disputes = True

    summary.acv_delta = summary.total_acv_received - summary.expected_acv
    summary.rcv_delta = summary.total_rcv_received - summary.expected_rcv
    return summary


def closure_status(payments: list[Payment]) -> ClosureStatus:
    """
    Whether the claim's payments allow it to be closed.

    ACV must be received in full. RCV may be waived by never recording an
    expected amount, but once expected it must be received too.
    """
    summary = summarize_payments(payments)
    status = ClosureStatus(can_close=False, all_reconciled=summary.fully_reconciled)

    if summary.expected_acv > 0 and summary.total_acv_received >= summary.expected_acv:
        status.acv_received = True
    else:
        status.outstanding_acv = summary.expected_acv - summary.total_acv_received

    if summary.expected_rcv > 0 and summary.total_rcv_received >= summary.expected_rcv:
        status.rcv_received = True
    else:
        status.outstanding_rcv = summary.expected_rcv - summary.total_rcv_received

    if not status.acv_received:
        status.blocking_reason = "ACV payment not received"
    elif summary.expected_rcv > 0 and not status.rcv_received:
        status.blocking_reason = "RCV payment pending"
    elif summary.has_disputes:
        status.blocking_reason = "Payment disputes must be resolved"
    elif not status.all_reconciled:
        status.blocking_reason = "All payments must be reconciled"
    else:
        status.can_close = True

    return status


# ============================================================================
# Tracker
# ============================================================================


class PaymentTracker:
    """Create-expected -> mark-received for the ACV and RCV records."""

    def __init__(self, client: ClaimApiClient, claim_id: str):
        self.client = client
        self.claim_id = claim_id
        self.payments: dict[PaymentType, Payment] = {}

    def get(self, payment_type: PaymentType) -> Optional[Payment]:
        return self.payments.get(PaymentType(payment_type))

    async def load(self) -> None:
        """Load existing payment records for the claim."""
        try:
            records = await self.client.list_payments(self.claim_id)
        except ApiError as e:
            logger.warning(f"Could not load payments for claim {self.claim_id}: {e.message}")
            return
        for record in records:
            payment = Payment.model_validate(record)
            self.payments[payment.payment_type] = payment

    async def record_expected(self, payment_type: PaymentType, expected_amount: float) -> Payment:
        """
        Create the expected record for one payment type.

        Raises:
            ClientValidationError: record already exists or amount is invalid
            ApiError: the create call failed
        """
        payment_type = PaymentType(payment_type)
        if payment_type in self.payments:
            raise ClientValidationError(
                "payment_type", f"{payment_type.value.upper()} payment already recorded"
            )
        if expected_amount is None or expected_amount <= 0:
            raise ClientValidationError("expected_amount", "Enter the expected payment amount")

        data = await self.client.create_expected_payment(
            self.claim_id, payment_type.value, expected_amount
        )
        payment_id = (data or {}).get("payment_id")
        if not payment_id:
            raise ApiError("Failed to create payment")

        payment = Payment(
            id=payment_id,
            payment_type=payment_type,
            expected_amount=expected_amount,
            status=PaymentStatus.EXPECTED,
        )
        self.payments[payment_type] = payment
        logger.info(f"Expected {payment_type.value} payment {payment_id} recorded for claim {self.claim_id}")
        return payment

    async def mark_received(
        self,
        payment_type: PaymentType,
        amount: float,
        received_date: str,
        check_number: Optional[str] = None,
    ) -> Payment:
        """
        Mark an expected payment as received.

        Raises:
            ClientValidationError: no expected record, already received, or bad input
            ApiError: the update call failed
        """
        payment_type = PaymentType(payment_type)
        payment = self.payments.get(payment_type)
        if payment is None:
            raise ClientValidationError(
                "payment_type", f"Record the expected {payment_type.value.upper()} payment first"
            )
        if payment.status != PaymentStatus.EXPECTED:
            raise ClientValidationError(
                "payment_type", f"{payment_type.value.upper()} payment already received"
            )
        if amount is None or amount <= 0:
            raise ClientValidationError("amount", "Enter the amount received")
        if not received_date:
            raise ClientValidationError("received_date", "Enter the date the payment arrived")

        payload = {"amount": amount, "received_date": received_date}
        if check_number:
            payload["check_number"] = check_number
        await self.client.record_payment_received(payment.id, payload)

        updated = payment.model_copy(update={
            "amount": amount,
            "received_date": received_date,
            "check_number": check_number,
            "status": PaymentStatus.RECEIVED,
        })
        self.payments[payment_type] = updated
        return updated

    def summary(self) -> PaymentSummary:
        return summarize_payments(list(self.payments.values()))

    def closure_status(self) -> ClosureStatus:
        return closure_status(list(self.payments.values()))
