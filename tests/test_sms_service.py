# tests/test_sms_service.py
"""Phone normalisation, SMS dispatch and message templates."""

import httpx
import pytest
from datetime import datetime
from unittest.mock import AsyncMock, patch

from tanapark.services.sms_service import (
    SmsError, SmsNotifier, notify_best_effort, checkout_receipt_message, package_registration_message,
    unpaid_warning_message,
)
from tanapark.utils.phone import to_international, to_local


class TestPhone:
    @pytest.mark.parametrize("raw", ["0912345678", "912345678", "251912345678", "+251 91 234 5678"])
    def test_international(self, raw):
        assert to_international(raw) == "+251912345678"

    @pytest.mark.parametrize("raw", ["0912345678", "+251912345678"])
    def test_local(self, raw):
        assert to_local(raw) == "0912345678"

    def test_empty_is_invalid(self):
        with pytest.raises(ValueError):
            to_international("")


class TestSmsNotifier:
    @pytest.mark.asyncio
    async def test_disabled_without_url(self):
        notifier = SmsNotifier(api_url="")
        assert notifier.enabled is False
        with pytest.raises(SmsError):
            await notifier.send("0912345678", "hello")

    @pytest.mark.asyncio
    async def test_posts_international_number(self):
        response = httpx.Response(200, request=httpx.Request("POST", "https://sms.example/send"))
        with patch("httpx.AsyncClient.post", new_callable=AsyncMock, return_value=response) as post:
            await SmsNotifier(api_url="https://sms.example/send", api_token="t", sender="TanaPark") \
                .send("0912345678", "hello")

        payload = post.await_args.kwargs["json"]
        assert payload == {"to": "+251912345678", "from": "TanaPark", "message": "hello"}
        assert post.await_args.kwargs["headers"] == {"Authorization": "Bearer t"}

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        response = httpx.Response(503, request=httpx.Request("POST", "https://sms.example/send"))
        with patch("httpx.AsyncClient.post", new_callable=AsyncMock, return_value=response):
            with pytest.raises(SmsError):
                await SmsNotifier(api_url="https://sms.example/send").send("0912345678", "hello")

    @pytest.mark.asyncio
    async def test_best_effort_swallows_failure(self):
        notifier = SmsNotifier(api_url="https://sms.example/send")
        notifier.send = AsyncMock(side_effect=SmsError("down"))
        assert await notify_best_effort(notifier, "0912345678", "hi") is False

    @pytest.mark.asyncio
    async def test_best_effort_without_phone(self):
        notifier = SmsNotifier(api_url="https://sms.example/send")
        notifier.send = AsyncMock()
        assert await notify_best_effort(notifier, None, "hi") is False
        notifier.send.assert_not_awaited()


class TestTemplates:
    def test_receipt(self):
        message = checkout_receipt_message("3-AA-B12345", 75.0, 11.25, 86.25, 0.15, "tana-5-1-abc")
        assert "Parking fee: 75.00 ETB" in message
        assert "VAT (15%): 11.25 ETB" in message
        assert "Total: 86.25 ETB" in message
        assert "Payment Reference: tana-5-1-abc." in message

    def test_package(self):
        message = package_registration_message("3-AA-B45678", "monthly", 4025.0, datetime(2025, 4, 14), "tana-pkg-1")
        assert "monthly parking package" in message
        assert "Valid until: 2025-04-14." in message

    def test_unpaid_warning(self):
        message = unpaid_warning_message("3-AA-B12345", datetime(2025, 3, 14, 10, 5), 60.0, 9.0)
        assert "on 2025-03-14 at 10:05" in message
        assert "Total: 69.00 ETB" in message
