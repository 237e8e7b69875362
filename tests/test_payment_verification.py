# tests/test_payment_verification.py
"""Server-side verification: gateway status handling, alerts, SMS and callbacks."""

import pytest
from unittest.mock import AsyncMock, patch

from tanapark.models.alert import Alert
from tanapark.models.parked_vehicle import ParkedVehicle
from tanapark.models.pending_package_payment import PendingPackagePayment
from tanapark.services.errors import ProcessingError
from tanapark.services.gateway import GatewayError
from tanapark.services.payment_session import initialize_hourly_payment, initialize_package_payment
from tanapark.services.payment_verification import verify_payment, handle_callback
from tests.conftest import NOW, FakeGateway, FakeNotifier
from tests.test_payment_session import DRAFT


class TestVerifyHourly:
    @pytest.mark.asyncio
    async def test_successful_payment_checks_out_and_sends_receipt(self, db, pricing, make_vehicle, chapa_test_key):
        vehicle = make_vehicle(minutes_parked=75)
        session = initialize_hourly_payment(db, vehicle.id, NOW)
        notifier = FakeNotifier()

        result = await verify_payment(db, session.tx_ref, FakeGateway("successful", amount=86.25), notifier, NOW)

        assert result.status == "successful"
        assert result.applied is True
        assert result.vehicle.status == "checked_out"
        assert len(notifier.sent) == 1
        phone, message = notifier.sent[0]
        assert phone == "0912345678"
        assert "Total: 86.25 ETB" in message
        assert session.tx_ref in message

    @pytest.mark.asyncio
    async def test_repeat_verification_is_idempotent(self, db, pricing, make_vehicle, chapa_test_key):
        vehicle = make_vehicle(minutes_parked=75)
        session = initialize_hourly_payment(db, vehicle.id, NOW)
        notifier = FakeNotifier()
        gateway = FakeGateway("successful", amount=86.25)

        first = await verify_payment(db, session.tx_ref, gateway, notifier, NOW)
        second = await verify_payment(db, session.tx_ref, gateway, notifier, NOW)

        assert second.status == "successful"
        assert second.applied is False
        assert second.vehicle.id == first.vehicle.id
        assert second.vehicle.checked_out_at == first.vehicle.checked_out_at
        assert len(notifier.sent) == 1

    @pytest.mark.asyncio
    async def test_pending_changes_nothing(self, db, pricing, make_vehicle, chapa_test_key):
        vehicle = make_vehicle()
        session = initialize_hourly_payment(db, vehicle.id, NOW)

        result = await verify_payment(db, session.tx_ref, FakeGateway("pending"), FakeNotifier(), NOW)

        assert result.status == "pending"
        db.refresh(vehicle)
        assert vehicle.status == "parked"

    @pytest.mark.asyncio
    async def test_failed_payment_reported(self, db, pricing, make_vehicle, chapa_test_key):
        vehicle = make_vehicle()
        session = initialize_hourly_payment(db, vehicle.id, NOW)

        result = await verify_payment(db, session.tx_ref, FakeGateway("failed"), FakeNotifier(), NOW)

        assert result.status == "failed"
        assert result.applied is False
        db.refresh(vehicle)
        assert vehicle.status == "parked"

    @pytest.mark.asyncio
    async def test_sms_failure_does_not_fail_checkout(self, db, pricing, make_vehicle, chapa_test_key):
        vehicle = make_vehicle()
        session = initialize_hourly_payment(db, vehicle.id, NOW)

        result = await verify_payment(db, session.tx_ref, FakeGateway("successful"), FakeNotifier(fail=True), NOW)

        assert result.status == "successful"
        assert result.applied is True

    @pytest.mark.asyncio
    async def test_gateway_error_propagates(self, db, pricing, make_vehicle, chapa_test_key):
        vehicle = make_vehicle()
        session = initialize_hourly_payment(db, vehicle.id, NOW)
        with pytest.raises(GatewayError):
            await verify_payment(db, session.tx_ref, FakeGateway(GatewayError("down")), FakeNotifier(), NOW)

    @pytest.mark.asyncio
    async def test_processing_error_raises_alert(self, db, pricing, make_vehicle, chapa_test_key):
        vehicle = make_vehicle(status="checked_out", payment_method="manual", checked_out_at=NOW)
        tx_ref = f"tana-{vehicle.id}-1741953600000-abcdefgh"

        with pytest.raises(ProcessingError):
            await verify_payment(db, tx_ref, FakeGateway("successful"), FakeNotifier(), NOW)

        alert = db.query(Alert).filter_by(reference=tx_ref).one()
        assert alert.alert_type == "processing_error"


class TestVerifyPackage:
    @pytest.mark.asyncio
    async def test_failure_then_retry_registers_once(self, db, pricing, valet, chapa_test_key):
        failed = initialize_package_payment(db, valet.id, dict(DRAFT), "monthly", "0912345678", NOW)
        result = await verify_payment(db, failed.tx_ref, FakeGateway("failed"), FakeNotifier(), NOW)

        assert result.status == "failed"
        assert db.query(ParkedVehicle).count() == 0
        assert db.query(PendingPackagePayment).filter_by(tx_ref=failed.tx_ref).first() is None

        retry = initialize_package_payment(db, valet.id, dict(DRAFT), "monthly", "0912345678", NOW)
        notifier = FakeNotifier()
        result = await verify_payment(db, retry.tx_ref, FakeGateway("successful", amount=4025.00), notifier, NOW)

        assert retry.tx_ref != failed.tx_ref
        assert result.applied is True
        vehicles = db.query(ParkedVehicle).all()
        assert len(vehicles) == 1
        assert vehicles[0].payment_reference == retry.tx_ref
        assert "Valid until: 2025-04-14" in notifier.sent[0][1]


class TestCallback:
    @pytest.mark.asyncio
    async def test_non_success_callback_ignored(self, db):
        gateway = FakeGateway("successful")
        assert await handle_callback(db, "tana-1-1-abcdefgh", "failed", gateway, FakeNotifier(), NOW) is None
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_missing_tx_ref_ignored(self, db):
        assert await handle_callback(db, None, "success", FakeGateway(), FakeNotifier(), NOW) is None

    @pytest.mark.asyncio
    async def test_success_callback_is_reverified(self, db):
        with patch("tanapark.services.payment_verification.verify_payment", new_callable=AsyncMock) as verify:
            await handle_callback(db, "tana-1-1-abcdefgh", "success", FakeGateway(), FakeNotifier(), NOW)
        verify.assert_awaited_once()
