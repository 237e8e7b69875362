# tanapark/services/errors.py
"""
Checkout error taxonomy shared by the backend services and the client workflow.
Each error carries the single message shown to the valet and whether a retry makes sense.
The backend renders them as {"error": code, "message": ...}; the client maps them back.
"""


class CheckoutError(Exception):
    code = "checkout_error"
    http_status = 400
    retryable = False
    default_message = "Checkout failed. Please try again."

    def __init__(self, detail: str = None, user_message: str = None):
        self.detail = detail or self.default_message
        self.user_message = user_message or self.default_message
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        body = {"error": self.code, "message": self.user_message, "detail": self.detail}
        if getattr(self, "tx_ref", None):
            body["tx_ref"] = self.tx_ref
        return body


class ConfigurationError(CheckoutError):
    """Pricing is not set up for the requested level / vehicle type / tier."""
    code = "configuration_error"
    http_status = 422
    default_message = "Pricing is not configured for this vehicle. Please contact the administrator."


class InitializationError(CheckoutError):
    """The payment session could not be created. Retry generates a fresh txRef."""
    code = "initialization_error"
    http_status = 502
    retryable = True
    default_message = "Could not start the online payment. Please try again."


class PaymentRejected(CheckoutError):
    """The gateway reported the payment failed or was cancelled."""
    code = "payment_rejected"
    http_status = 402
    retryable = True
    default_message = "The payment was not completed. Please try again."

    def __init__(self, tx_ref: str, status: str = "failed", detail: str = None):
        self.tx_ref = tx_ref
        self.status = status
        super().__init__(detail or f"Payment {tx_ref} {status}",
                         f"Payment {status}. Please try again.")


class PaymentStillPending(CheckoutError):
    """Polling ran out while the gateway still reports the payment as pending."""
    code = "payment_pending"
    http_status = 202
    retryable = True
    default_message = ("Payment is still being processed. "
                       "Please check again in a few minutes before charging the customer again.")

    def __init__(self, tx_ref: str, detail: str = None):
        self.tx_ref = tx_ref
        super().__init__(detail or f"Payment {tx_ref} still pending after polling")


class ProcessingError(CheckoutError):
    """Payment confirmed but the state to commit is missing or inconsistent."""
    code = "processing_error"
    http_status = 409
    default_message = ("Payment received but the record could not be updated. "
                       "Please contact support with the payment reference.")


ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (CheckoutError, ConfigurationError, InitializationError,
                PaymentRejected, PaymentStillPending, ProcessingError)
}


class VehicleNotFound(LookupError):
    """No parked vehicle with the given id."""


class VehicleStateError(ValueError):
    """The vehicle is not in a state that allows the requested operation."""
