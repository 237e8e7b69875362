# tests/test_checkout_workflow.py
"""Client checkout workflow: outcomes, retries with fresh txRefs and the resume store."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from tanapark.services.errors import ConfigurationError, InitializationError, ProcessingError
from tanapark.workflow.checkout import CheckoutWorkflow
from tanapark.workflow.resume_store import PendingCheckout, ResumeStore
from tanapark.workflow.widget import PaymentWidgetAdapter, WidgetOutcome, WidgetResult
from tests.test_widget import make_session

VERIFIED = {
    "tx_ref": "tana-5-1741953600000-abcdefgh",
    "status": "successful",
    "applied": True,
    "message": "Payment verified and vehicle checked out.",
    "vehicle": {"id": 5, "license_plate": "3-AA-B12345", "base_amount": 75.0, "vat_amount": 11.25,
                "total_paid_amount": 86.25, "vat_rate": 0.15},
}


def make_workflow(tmp_path, outcome=WidgetOutcome.SUCCEEDED, verify=None, sessions=None):
    api = MagicMock()
    api.initialize_hourly = AsyncMock(side_effect=sessions or [make_session()])
    api.initialize_package = AsyncMock(side_effect=sessions or [make_session("tana-pkg-1741953600000-abcdefgh")])
    api.verify = verify or AsyncMock(return_value=VERIFIED)
    widget = MagicMock()
    widget.checkout = AsyncMock(return_value=WidgetResult(outcome))
    store = ResumeStore(tmp_path / "pending")
    workflow = CheckoutWorkflow(api, widget, store, max_attempts=3, interval=0, sleep=AsyncMock())
    return workflow, api, widget, store


class TestCheckOutHourly:
    @pytest.mark.asyncio
    async def test_success_returns_receipt_and_clears_record(self, tmp_path):
        workflow, api, widget, store = make_workflow(tmp_path)

        result = await workflow.check_out_hourly(5, {"phone": "0912345678"}, license_plate="3-AA-B12345")

        assert result.status == "succeeded"
        assert result.receipt.total_amount == 86.25
        assert result.receipt.base_amount == 75.0
        assert result.receipt.license_plate == "3-AA-B12345"
        assert result.receipt.duration_description == "1 hour 15 minutes"
        assert store.pending() == []

    @pytest.mark.asyncio
    async def test_cancel_aborts_without_polling(self, tmp_path):
        workflow, api, widget, store = make_workflow(tmp_path, outcome=WidgetOutcome.CANCELLED)

        result = await workflow.check_out_hourly(5)

        assert result.status == "cancelled"
        api.verify.assert_not_awaited()
        assert store.pending() == []

    @pytest.mark.asyncio
    async def test_widget_failure_then_retry_uses_fresh_tx_ref(self, tmp_path):
        sessions = [make_session("tana-5-1741953600000-aaaaaaaa"), make_session("tana-5-1741953600001-bbbbbbbb")]
        workflow, api, widget, store = make_workflow(tmp_path, sessions=sessions)
        widget.checkout.side_effect = [WidgetResult(WidgetOutcome.FAILED, error="declined"),
                                       WidgetResult(WidgetOutcome.SUCCEEDED)]

        first = await workflow.check_out_hourly(5)
        second = await workflow.check_out_hourly(5)

        assert first.status == "failed"
        assert first.error.retryable is True
        assert second.status == "succeeded"
        assert first.tx_ref != second.tx_ref
        api.verify.assert_awaited_once_with("tana-5-1741953600001-bbbbbbbb")

    @pytest.mark.asyncio
    async def test_still_pending_keeps_resume_record(self, tmp_path):
        workflow, api, widget, store = make_workflow(
            tmp_path, verify=AsyncMock(return_value={"status": "pending"}))

        result = await workflow.check_out_hourly(5)

        assert result.status == "pending"
        assert "before charging the customer again" in result.message
        records = store.pending()
        assert [r.tx_ref for r in records] == [result.tx_ref]
        assert records[0].fee["total_amount"] == 86.25

    @pytest.mark.asyncio
    async def test_gateway_rejection_clears_record(self, tmp_path):
        workflow, api, widget, store = make_workflow(
            tmp_path, verify=AsyncMock(return_value={"status": "failed"}))

        result = await workflow.check_out_hourly(5)

        assert result.status == "failed"
        assert result.message == "Payment failed. Please try again."
        assert store.pending() == []

    @pytest.mark.asyncio
    async def test_processing_error_keeps_record(self, tmp_path):
        workflow, api, widget, store = make_workflow(
            tmp_path, verify=AsyncMock(side_effect=ProcessingError("vehicle missing")))

        result = await workflow.check_out_hourly(5)

        assert result.status == "failed"
        assert isinstance(result.error, ProcessingError)
        assert len(store.pending()) == 1

    @pytest.mark.asyncio
    async def test_configuration_error_is_not_retryable(self, tmp_path):
        workflow, api, widget, store = make_workflow(tmp_path)
        api.initialize_hourly.side_effect = ConfigurationError("no hourly rate")

        result = await workflow.check_out_hourly(5)

        assert result.status == "failed"
        assert result.retryable is False
        assert "contact the administrator" in result.message
        widget.checkout.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_initialization_error(self, tmp_path):
        workflow, api, widget, store = make_workflow(tmp_path)
        api.initialize_hourly.side_effect = InitializationError("backend down")

        result = await workflow.check_out_hourly(5)

        assert result.status == "failed"
        assert result.retryable is True

    @pytest.mark.asyncio
    async def test_unparsable_customer_phone_is_reported_as_failure(self, tmp_path):
        workflow, api, widget, store = make_workflow(tmp_path)
        factory = MagicMock()
        workflow.widget = PaymentWidgetAdapter(factory)

        result = await workflow.check_out_hourly(5, {"phone": "n/a"})

        assert result.status == "failed"
        assert result.message == "Payment failed. Please try again."
        factory.assert_not_called()
        api.verify.assert_not_awaited()
        assert store.pending() == []


class TestRegisterPackage:
    @pytest.mark.asyncio
    async def test_success(self, tmp_path):
        workflow, api, widget, store = make_workflow(tmp_path)
        draft = {"plate_code": "3", "region": "AA", "license_plate_number": "b45678", "vehicle_type": "automobile"}

        result = await workflow.register_package(1, draft, "monthly", {"phone": "0912345678"})

        assert result.status == "succeeded"
        api.initialize_package.assert_awaited_once_with(1, draft, "monthly", "0912345678")


class TestResume:
    @pytest.mark.asyncio
    async def test_resume_pending_reverifies_same_tx_ref(self, tmp_path):
        workflow, api, widget, store = make_workflow(tmp_path)
        store.save(PendingCheckout(tx_ref="tana-5-1741953600000-abcdefgh", kind="hourly",
                                   created_at="2025-03-14T12:00:00", vehicle_id=5,
                                   fee={"total_amount": 86.25, "duration_description": "1 hour 15 minutes"}))

        results = await workflow.resume_pending()

        assert [r.status for r in results] == ["succeeded"]
        api.verify.assert_awaited_once_with("tana-5-1741953600000-abcdefgh")
        api.initialize_hourly.assert_not_awaited()
        assert store.pending() == []

    @pytest.mark.asyncio
    async def test_reverify_with_unreadable_record_still_polls(self, tmp_path):
        workflow, api, widget, store = make_workflow(tmp_path)
        (store.directory / "tana-5-1741953600000-abcdefgh.json").write_text("{broken")

        result = await workflow.reverify("tana-5-1741953600000-abcdefgh")

        assert result.status == "succeeded"
        assert result.receipt.total_amount == 86.25
        assert result.receipt.license_plate == "3-AA-B12345"
        api.verify.assert_awaited_once_with("tana-5-1741953600000-abcdefgh")


class TestResumeStore:
    def test_save_load_delete(self, tmp_path):
        store = ResumeStore(tmp_path)
        record = PendingCheckout(tx_ref="tana-pkg-1-x", kind="package", created_at="2025-03-14T12:00:00",
                                 package_duration="weekly")
        store.save(record)

        assert store.load("tana-pkg-1-x") == record
        assert store.delete("tana-pkg-1-x") is True
        assert store.load("tana-pkg-1-x") is None
        assert store.delete("tana-pkg-1-x") is False

    def test_unreadable_record_is_skipped(self, tmp_path):
        (tmp_path / "broken.json").write_text("{not json")
        assert ResumeStore(tmp_path).pending() == []

    def test_unreadable_record_loads_as_missing(self, tmp_path):
        (tmp_path / "tana-5-1-abc.json").write_text("{broken")
        (tmp_path / "tana-6-1-abc.json").write_text('{"unexpected": 1}')
        store = ResumeStore(tmp_path)
        assert store.load("tana-5-1-abc") is None
        assert store.load("tana-6-1-abc") is None
