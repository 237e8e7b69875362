# tanapark/workflow/widget.py
"""
Payment widget adapter — drives Chapa's inline checkout through an injected widget.

The concrete widget (browser bridge, kiosk UI, test fake) only has to implement
CheckoutWidget. The adapter owns everything around it:
  - phone number format by key mode (test keys want 0XXXXXXXXX, live keys +251XXXXXXXXX)
  - at most one open instance per public key; an old one is closed first
  - raw events success / failure / close normalised to WidgetOutcome
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Protocol

from tanapark.services.gateway import key_mode
from tanapark.services.payment_session import PaymentSession
from tanapark.utils.logger import get_logger
from tanapark.utils.phone import to_local, to_international

logger = get_logger(__name__)


class WidgetOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


_EVENT_OUTCOMES = {
    "success": WidgetOutcome.SUCCEEDED,
    "successful": WidgetOutcome.SUCCEEDED,
    "failure": WidgetOutcome.FAILED,
    "failed": WidgetOutcome.FAILED,
    "error": WidgetOutcome.FAILED,
    "close": WidgetOutcome.CANCELLED,
    "closed": WidgetOutcome.CANCELLED,
    "cancel": WidgetOutcome.CANCELLED,
    "cancelled": WidgetOutcome.CANCELLED,
}


@dataclass
class WidgetResult:
    outcome: WidgetOutcome
    payload: dict = field(default_factory=dict)
    error: Optional[str] = None


class CheckoutWidget(Protocol):
    async def open(self, options: dict) -> dict:
        """Show the checkout and return the terminal event: {"type": "success" | "failure" | "close", ...}."""

    def close(self) -> None:
        """Tear the widget down. Must be safe to call twice."""


def format_phone_for_mode(phone: Optional[str], mode: str) -> Optional[str]:
    if not phone:
        return None
    return to_local(phone) if mode == "test" else to_international(phone)


def normalize_event(event) -> WidgetResult:
    if not isinstance(event, dict):
        return WidgetResult(WidgetOutcome.FAILED, error=f"Unexpected widget event: {event!r}")
    kind = str(event.get("type") or event.get("status") or "").lower()
    outcome = _EVENT_OUTCOMES.get(kind)
    if outcome is None:
        return WidgetResult(WidgetOutcome.FAILED, payload=event, error=f"Unknown widget event {kind!r}")
    error = (event.get("message") or "Payment failed") if outcome is WidgetOutcome.FAILED else None
    return WidgetResult(outcome, payload=event, error=error)


class PaymentWidgetAdapter:
    def __init__(self, widget_factory: Callable[[dict], CheckoutWidget]):
        self.widget_factory = widget_factory
        self._instances: dict[str, CheckoutWidget] = {}

    def build_options(self, public_key: str, session: PaymentSession, customer: dict) -> dict:
        name = (customer.get("name") or "Tana Parking Customer").split()
        return {
            "public_key": public_key,
            "tx_ref": session.tx_ref,
            "amount": f"{session.amount:.2f}",
            "currency": session.currency,
            "mobile": format_phone_for_mode(customer.get("phone"), key_mode(public_key)),
            "first_name": name[0],
            "last_name": " ".join(name[1:]) or "Customer",
            "customization": {
                "title": "Tana Parking",
                "description": session.duration_description,
            },
        }

    def release(self, public_key: str):
        widget = self._instances.pop(public_key, None)
        if widget is not None:
            try:
                widget.close()
            except Exception as e:
                logger.warning(f"[WIDGET] Closing previous widget failed: {e}")

    async def checkout(self, public_key: str, session: PaymentSession, customer: dict) -> WidgetResult:
        self.release(public_key)
        try:
            options = self.build_options(public_key, session, customer)
            widget = self.widget_factory(options)
            self._instances[public_key] = widget
            event = await widget.open(options)
        except Exception as e:
            logger.error(f"[WIDGET] {session.tx_ref} widget raised: {e}")
            return WidgetResult(WidgetOutcome.FAILED, error=str(e))
        finally:
            self.release(public_key)

        result = normalize_event(event)
        logger.info(f"[WIDGET] {session.tx_ref} → {result.outcome.value}")
        return result
