# tanapark/services/gateway.py
"""
Chapa payment gateway — server-side verification API.

Endpoint: GET {CHAPA_BASE_URL}/verify/{tx_ref}  (Bearer CHAPA_SECRET_KEY)
Response: {"status": "success", "data": {"status": "successful"|"pending"|"failed", "amount", "currency", "tx_ref"}}

Chapa answers 404 / "not found" for a txRef the customer has not finished
paying yet, so those are reported as pending rather than as errors.
"""

import httpx
from dataclasses import dataclass, field
from typing import Optional

from tanapark.config import settings
from tanapark.utils.logger import get_logger

logger = get_logger(__name__)

TERMINAL_STATUSES = {"successful", "failed", "cancelled"}
PENDING_STATUSES = {"pending", "processing", "initiated"}
_PENDING_HINTS = ("not found", "processing", "pending", "not available")


class GatewayError(Exception):
    """Gateway unreachable or answered with an unexpected error."""


@dataclass
class GatewayTransaction:
    tx_ref: str
    status: str                      # successful | failed | cancelled | pending | processing | initiated
    amount: Optional[float] = None
    currency: Optional[str] = None
    meta: dict = field(default_factory=dict)

    @property
    def is_successful(self) -> bool:
        return self.status == "successful"

    @property
    def is_rejected(self) -> bool:
        return self.status in ("failed", "cancelled")


def normalize_status(status: Optional[str]) -> str:
    status = (status or "pending").strip().lower()
    return "successful" if status == "success" else status


def key_mode(public_key: Optional[str]) -> str:
    """test | live | invalid | unset — from the public key prefix."""
    key = (public_key or "").strip()
    if not key:
        return "unset"
    if key.startswith("CHAPUBK_TEST-"):
        return "test"
    if key.startswith("CHAPUBK-"):
        return "live"
    return "invalid"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    message = body.get("message") if isinstance(body, dict) else None
    if isinstance(message, dict):
        message = message.get("message") or message.get("error") or str(message)
    return str(message or body)


class ChapaGateway:
    def __init__(self, secret_key: str = None, base_url: str = None, timeout: float = None,
                 client: httpx.AsyncClient = None):
        self.secret_key = secret_key if secret_key is not None else settings.CHAPA_SECRET_KEY
        self.base_url = (base_url or settings.CHAPA_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.CHAPA_TIMEOUT_SECONDS
        self._client = client

    async def verify_transaction(self, tx_ref: str) -> GatewayTransaction:
        url = f"{self.base_url}/verify/{tx_ref}"
        headers = {"Authorization": f"Bearer {self.secret_key}"}
        try:
            if self._client is not None:
                response = await self._client.get(url, headers=headers, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, headers=headers)
        except httpx.TransportError as e:
            raise GatewayError(f"Chapa unreachable while verifying {tx_ref}: {e}") from e

        if response.status_code >= 400:
            message = _error_message(response)
            if response.status_code == 404 or any(h in message.lower() for h in _PENDING_HINTS):
                logger.info(f"[CHAPA] {tx_ref} not settled yet (HTTP {response.status_code}: {message})")
                return GatewayTransaction(tx_ref=tx_ref, status="pending")
            raise GatewayError(f"Chapa verify {tx_ref} failed with HTTP {response.status_code}: {message}")

        try:
            body = response.json()
        except ValueError as e:
            raise GatewayError(f"Chapa returned a non-JSON body for {tx_ref}") from e

        data = body.get("data") if isinstance(body, dict) else None
        if body.get("status") != "success" or not data:
            logger.info(f"[CHAPA] {tx_ref} verify returned status={body.get('status')} — treating as pending")
            return GatewayTransaction(tx_ref=tx_ref, status="pending")

        amount = data.get("amount")
        transaction = GatewayTransaction(
            tx_ref=data.get("tx_ref") or tx_ref,
            status=normalize_status(data.get("status")),
            amount=float(amount) if amount not in (None, "") else None,
            currency=data.get("currency"),
            meta=data.get("meta") or {},
        )
        logger.info(f"[CHAPA] {transaction.tx_ref} status={transaction.status} amount={transaction.amount}")
        return transaction
