# tests/test_api_client.py
"""Backend client: error bodies mapped back to the checkout error taxonomy."""

import httpx
import pytest

from tanapark.services.errors import CheckoutError, ConfigurationError, InitializationError
from tanapark.workflow.api_client import TanaParkClient
from tests.conftest import TEST_PUBLIC_KEY


def client_with(handler):
    return TanaParkClient(base_url="http://backend/api/v1", api_key="",
                          client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestInitialize:
    @pytest.mark.asyncio
    async def test_session_returned(self):
        def handler(request):
            assert request.url.path == "/api/v1/payment/initialize"
            return httpx.Response(200, json={"tx_ref": "tana-5-1-abcdefgh", "public_key": TEST_PUBLIC_KEY,
                                             "mode": "test", "amount": 86.25, "currency": "ETB",
                                             "base_amount": 75.0, "vat_amount": 11.25, "vat_rate": 0.15,
                                             "duration_description": "1 hour 15 minutes"})

        session = await client_with(handler).initialize_hourly(5, "0912345678")

        assert session.tx_ref == "tana-5-1-abcdefgh"
        assert session.amount == 86.25

    @pytest.mark.asyncio
    async def test_unknown_vehicle_is_not_retryable(self):
        def handler(request):
            return httpx.Response(404, json={"detail": "Vehicle 5 not found"})

        with pytest.raises(CheckoutError) as exc:
            await client_with(handler).initialize_hourly(5)

        assert not isinstance(exc.value, InitializationError)
        assert exc.value.retryable is False
        assert exc.value.user_message == "Vehicle 5 not found"

    @pytest.mark.asyncio
    async def test_error_code_mapped_to_class(self):
        def handler(request):
            return httpx.Response(422, json={"error": "configuration_error", "message": "Contact admin",
                                             "detail": "no hourly rate"})

        with pytest.raises(ConfigurationError):
            await client_with(handler).initialize_hourly(5)

    @pytest.mark.asyncio
    async def test_server_error_is_retryable(self):
        def handler(request):
            return httpx.Response(503, text="unavailable")

        with pytest.raises(InitializationError) as exc:
            await client_with(handler).initialize_hourly(5)
        assert exc.value.retryable is True

    @pytest.mark.asyncio
    async def test_backend_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused")

        with pytest.raises(InitializationError):
            await client_with(handler).initialize_hourly(5)
