# tanapark/workflow/checkout.py
"""
Valet-side checkout workflow.

  initialize (fresh txRef) -> save resume record -> widget -> poll verify -> receipt

Every terminal outcome comes back as a CheckoutResult with exactly one message
for the valet. A retry always starts from initialize, so a failed or cancelled
txRef is never sent to the gateway again. Only "still pending" keeps the resume
record: that txRef may yet succeed and must be re-verified, not re-charged.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from tanapark.services.errors import CheckoutError, PaymentRejected, PaymentStillPending
from tanapark.services.payment_session import PaymentSession
from tanapark.utils.clock import utcnow
from tanapark.utils.logger import get_logger
from tanapark.workflow.api_client import TanaParkClient
from tanapark.workflow.poller import poll_verification
from tanapark.workflow.resume_store import PendingCheckout, ResumeStore
from tanapark.workflow.widget import PaymentWidgetAdapter, WidgetOutcome

logger = get_logger(__name__)

SUCCEEDED = "succeeded"
FAILED = "failed"
CANCELLED = "cancelled"
PENDING = "pending"


@dataclass
class ReceiptInfo:
    tx_ref: str
    license_plate: Optional[str]
    base_amount: float
    vat_amount: float
    total_amount: float
    vat_rate: float
    duration_description: str = ""
    vehicle: dict = field(default_factory=dict)


@dataclass
class CheckoutResult:
    status: str                              # succeeded | failed | cancelled | pending
    message: str
    tx_ref: Optional[str] = None
    receipt: Optional[ReceiptInfo] = None
    error: Optional[CheckoutError] = None

    @property
    def retryable(self) -> bool:
        return self.error.retryable if self.error else self.status == CANCELLED


def _fee_snapshot(session: PaymentSession) -> dict:
    return {
        "base_amount": session.base_amount,
        "vat_amount": session.vat_amount,
        "total_amount": session.amount,
        "vat_rate": session.vat_rate,
        "duration_description": session.duration_description,
    }


def _receipt(tx_ref: str, verification: dict, record: Optional[PendingCheckout]) -> ReceiptInfo:
    vehicle = verification.get("vehicle") or {}
    fee = record.fee if record else {}
    base = vehicle.get("base_amount", fee.get("base_amount", 0.0))
    vat = vehicle.get("vat_amount", fee.get("vat_amount", 0.0))
    return ReceiptInfo(
        tx_ref=tx_ref,
        license_plate=vehicle.get("license_plate") or (record.license_plate if record else None),
        base_amount=base,
        vat_amount=vat,
        total_amount=vehicle.get("total_paid_amount") or fee.get("total_amount") or round(base + vat, 2),
        vat_rate=vehicle.get("vat_rate", fee.get("vat_rate", 0.0)),
        duration_description=fee.get("duration_description", ""),
        vehicle=vehicle,
    )


def _failed(error: CheckoutError, tx_ref: Optional[str] = None) -> CheckoutResult:
    return CheckoutResult(status=FAILED, message=error.user_message, tx_ref=tx_ref, error=error)


class CheckoutWorkflow:
    def __init__(self, api: TanaParkClient, widget: PaymentWidgetAdapter, store: ResumeStore,
                 max_attempts: Optional[int] = None, interval: Optional[float] = None,
                 sleep=asyncio.sleep):
        self.api = api
        self.widget = widget
        self.store = store
        self.max_attempts = max_attempts
        self.interval = interval
        self.sleep = sleep

    async def check_out_hourly(self, vehicle_id: int, customer: dict = None,
                               license_plate: Optional[str] = None) -> CheckoutResult:
        customer = customer or {}
        try:
            session = await self.api.initialize_hourly(vehicle_id, customer.get("phone"), customer.get("name"))
        except CheckoutError as e:
            logger.warning(f"[CHECKOUT] Vehicle {vehicle_id}: initialize failed: {e.detail}")
            return _failed(e)

        record = PendingCheckout(tx_ref=session.tx_ref, kind="hourly", created_at=utcnow().isoformat(),
                                 vehicle_id=vehicle_id, license_plate=license_plate, fee=_fee_snapshot(session))
        return await self._pay(session, record, customer)

    async def register_package(self, valet_id: int, draft: dict, package_duration: str,
                               customer: dict) -> CheckoutResult:
        try:
            session = await self.api.initialize_package(valet_id, draft, package_duration, customer.get("phone"))
        except CheckoutError as e:
            logger.warning(f"[CHECKOUT] Package {package_duration}: initialize failed: {e.detail}")
            return _failed(e)

        plate = "-".join(str(draft.get(k, "")) for k in ("plate_code", "region", "license_plate_number")).upper()
        record = PendingCheckout(tx_ref=session.tx_ref, kind="package", created_at=utcnow().isoformat(),
                                 package_duration=package_duration, license_plate=plate,
                                 fee=_fee_snapshot(session))
        return await self._pay(session, record, customer)

    async def _pay(self, session: PaymentSession, record: PendingCheckout, customer: dict) -> CheckoutResult:
        self.store.save(record)
        outcome = await self.widget.checkout(session.public_key, session, customer)

        if outcome.outcome is WidgetOutcome.CANCELLED:
            self.store.delete(session.tx_ref)
            return CheckoutResult(status=CANCELLED, message="Payment cancelled.", tx_ref=session.tx_ref)
        if outcome.outcome is WidgetOutcome.FAILED:
            self.store.delete(session.tx_ref)
            return _failed(PaymentRejected(session.tx_ref, "failed", outcome.error), session.tx_ref)

        return await self.reverify(session.tx_ref)

    async def reverify(self, tx_ref: str) -> CheckoutResult:
        """Poll the same txRef again; never issues a new one."""
        record = self.store.load(tx_ref)
        try:
            verification = await poll_verification(self.api.verify, tx_ref, self.max_attempts,
                                                    self.interval, self.sleep)
        except PaymentStillPending as e:
            logger.warning(f"[CHECKOUT] {tx_ref} still pending — resume record kept")
            return CheckoutResult(status=PENDING, message=e.user_message, tx_ref=tx_ref, error=e)
        except PaymentRejected as e:
            self.store.delete(tx_ref)
            return _failed(e, tx_ref)
        except CheckoutError as e:
            # Payment may have been taken; the record stays so support can re-verify.
            logger.error(f"[CHECKOUT] {tx_ref} {e.code}: {e.detail}")
            return _failed(e, tx_ref)

        self.store.delete(tx_ref)
        receipt = _receipt(tx_ref, verification, record)
        message = verification.get("message") or "Payment completed."
        logger.info(f"[CHECKOUT] {tx_ref} succeeded: {receipt.total_amount:.2f}")
        return CheckoutResult(status=SUCCEEDED, message=message, tx_ref=tx_ref, receipt=receipt)

    async def resume_pending(self) -> list[CheckoutResult]:
        results = []
        for record in self.store.pending():
            logger.info(f"[CHECKOUT] Resuming {record.kind} payment {record.tx_ref}")
            results.append(await self.reverify(record.tx_ref))
        return results
