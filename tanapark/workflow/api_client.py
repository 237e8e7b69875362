# tanapark/workflow/api_client.py
"""
HTTP client for the TanaPark backend, used by the valet-side checkout workflow.

Error bodies rendered by the backend ({"error": code, "message", "detail", "tx_ref"})
are turned back into the matching CheckoutError subclass, so the workflow handles
a server-side ConfigurationError exactly like a local one.
"""

import httpx
from typing import Optional

from tanapark.config import settings
from tanapark.services.errors import (
    ERRORS_BY_CODE, CheckoutError, InitializationError, PaymentRejected, PaymentStillPending, ProcessingError,
)
from tanapark.services.payment_session import PaymentSession
from tanapark.utils.logger import get_logger

logger = get_logger(__name__)


def error_from_body(body) -> Optional[CheckoutError]:
    if not isinstance(body, dict):
        return None
    cls = ERRORS_BY_CODE.get(body.get("error"))
    if cls is None:
        return None
    if cls in (PaymentRejected, PaymentStillPending):
        return cls(body.get("tx_ref") or "", detail=body.get("detail"))
    return cls(body.get("detail"), body.get("message"))


def _json_or_none(response: httpx.Response):
    try:
        return response.json()
    except ValueError:
        return None


class TanaParkClient:
    def __init__(self, base_url: str = None, api_key: str = None, timeout: float = 15,
                 client: httpx.AsyncClient = None):
        self.base_url = (base_url or f"http://{settings.BACKEND_IP}:{settings.BACKEND_PORT}/api/v1").rstrip("/")
        self.api_key = api_key if api_key is not None else settings.API_KEY
        self.timeout = timeout
        self._client = client

    def _headers(self) -> dict:
        return {"X-API-Key": self.api_key} if self.api_key else {}

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.base_url}{path}"
        if self._client is not None:
            return await self._client.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.request(method, url, headers=self._headers(), **kwargs)

    async def _initialize(self, path: str, payload: dict) -> PaymentSession:
        try:
            response = await self._request("POST", path, json=payload)
        except httpx.HTTPError as e:
            raise InitializationError(f"Backend unreachable: {e}",
                                      "Network error. Please check your connection and try again.") from e

        body = _json_or_none(response)
        if response.status_code >= 400:
            error = error_from_body(body)
            if error is not None:
                raise error
            detail = body.get("detail") if isinstance(body, dict) else None
            if response.status_code < 500:
                # Unknown vehicle or nothing to pay; not retryable
                raise CheckoutError(f"Initialize rejected with HTTP {response.status_code}: {detail}",
                                    str(detail) if isinstance(detail, str) else None)
            raise InitializationError(f"Initialize failed with HTTP {response.status_code}: {detail}",
                                      str(detail) if isinstance(detail, str) else None)
        if not isinstance(body, dict) or not body.get("tx_ref") or not body.get("public_key"):
            raise InitializationError(f"Initialize returned an incomplete session: {body!r}")
        return PaymentSession(**{k: body.get(k) for k in PaymentSession.__dataclass_fields__ if k in body})

    async def initialize_hourly(self, vehicle_id: int, customer_phone: Optional[str] = None,
                                customer_name: Optional[str] = None, amount: Optional[float] = None) -> PaymentSession:
        return await self._initialize("/payment/initialize", {
            "vehicle_id": vehicle_id,
            "customer_phone": customer_phone,
            "customer_name": customer_name,
            "amount": amount,
        })

    async def initialize_package(self, valet_id: int, draft: dict, package_duration: str, customer_phone: str,
                                 amount: Optional[float] = None) -> PaymentSession:
        return await self._initialize("/payment/initialize-package", {
            "valet_id": valet_id,
            "package_duration": package_duration,
            "customer_phone": customer_phone,
            "amount": amount,
            "vehicle": draft,
        })

    async def verify(self, tx_ref: str) -> dict:
        """
        Raises httpx.TransportError / httpx.HTTPStatusError (5xx) / ValueError (bad JSON)
        for transient problems, CheckoutError for answers the backend gave on purpose.
        """
        response = await self._request("GET", f"/payment/verify/{tx_ref}")
        if response.status_code >= 500:
            response.raise_for_status()
        body = response.json()
        if response.status_code >= 400:
            error = error_from_body(body)
            if error is not None:
                raise error
            raise ProcessingError(f"Verify {tx_ref} failed with HTTP {response.status_code}: {body}")
        return body
