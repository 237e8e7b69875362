# tanapark/workflow/poller.py
"""
Verification poller — asks the backend about one txRef until it settles.

Chapa can take a few seconds to settle after the widget reports success,
so "pending" is expected for the first attempts. Network blips are retried
the same way but logged as transient, not as gateway-pending.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import httpx

from tanapark.config import settings
from tanapark.services.errors import PaymentRejected, PaymentStillPending
from tanapark.utils.logger import get_logger

logger = get_logger(__name__)


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, (httpx.TransportError, ValueError))


async def poll_verification(
    verify: Callable[[str], Awaitable[dict]],
    tx_ref: str,
    max_attempts: Optional[int] = None,
    interval: Optional[float] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> dict:
    max_attempts = settings.VERIFY_MAX_ATTEMPTS if max_attempts is None else max_attempts
    interval = settings.VERIFY_INTERVAL_SECONDS if interval is None else interval

    for attempt in range(1, max_attempts + 1):
        try:
            result = await verify(tx_ref)
        except (httpx.HTTPError, ValueError) as e:
            if not _is_transient(e):
                raise
            logger.warning(f"[POLL] {tx_ref} attempt {attempt}/{max_attempts}: transient error {e!r}")
        else:
            status = str(result.get("status") or "pending").lower()
            if status in ("successful", "success"):
                logger.info(f"[POLL] {tx_ref} successful after {attempt} attempt(s)")
                return result
            if status in ("failed", "cancelled"):
                raise PaymentRejected(tx_ref, status)
            logger.info(f"[POLL] {tx_ref} attempt {attempt}/{max_attempts}: gateway says {status}")

        if attempt < max_attempts:
            await sleep(interval)

    raise PaymentStillPending(tx_ref)
