from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy import func, select, update

from conftest import sign_body, webhook_body
from core.settings import settings
from models.enums import AgreementStatus, InvoiceStatus, PaymentStatus
from models.models import AuditLog, Invoice, Notification, Payment, TenancyAgreement
from models.utils import utcnow
from services.idempotency_guard import PaymentIdempotencyGuard
from services.payment_service import PaymentService
from services.tenancy_lifecycle_service import TenancyLifecycleService

URL = "/v1/webhooks/paystack"


def _gateway():
    paystack = AsyncMock()
    paystack.initialize_payment.return_value = {
        "authorization_url": "https://checkout.paystack.com/abc",
        "access_code": "abc",
        "reference": "ignored",
    }
    return paystack


@pytest_asyncio.fixture
async def pending(db, tenant, landlord, unit):
    lifecycle = TenancyLifecycleService(db)
    application = await lifecycle.submit_application(tenant, unit.id)
    application, invoice = await lifecycle.approve_application(application.id, landlord)
    result = await PaymentService(db, paystack=_gateway()).initialize_payment(
        invoice.id, tenant
    )
    return {
        "application_id": application.id,
        "invoice_id": invoice.id,
        "reference": result["reference"],
    }


async def _post(client, body: bytes, signature=None, header="X-Paystack-Signature"):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers[header] = signature
    return await client.post(URL, content=body, headers=headers)


async def _fresh(session_factory, model, *criteria):
    async with session_factory() as session:
        stmt = select(model)
        if criteria:
            stmt = stmt.where(*criteria)
        result = await session.execute(stmt)
        return result.scalars().all()


class TestAuthenticity:
    async def test_missing_signature_is_401(self, client):
        body = webhook_body("charge.success", "PMT-X", 100)
        response = await _post(client, body)
        assert response.status_code == 401
        assert response.json()["code"] == "AUTH"

    async def test_bad_signature_is_401(self, client):
        body = webhook_body("charge.success", "PMT-X", 100)
        response = await _post(client, body, sign_body(body, "wrong-secret"))
        assert response.status_code == 401

    async def test_non_ascii_signature_is_401(self, client):
        body = webhook_body("charge.success", "PMT-X", 100)
        response = await _post(client, body, b"\xe9abc")
        assert response.status_code == 401
        assert response.json()["code"] == "AUTH"

    async def test_missing_secret_is_500(self, client, monkeypatch):
        monkeypatch.setattr(settings, "PAYSTACK_SECRET_KEY", None)
        body = webhook_body("charge.success", "PMT-X", 100)
        response = await _post(client, body, "deadbeef")
        assert response.status_code == 500
        assert response.json()["code"] == "CONFIG_ERROR"

    async def test_malformed_json_is_400(self, client):
        body = b"{not json"
        response = await _post(client, body, sign_body(body))
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION"

    async def test_missing_reference_is_400(self, client):
        body = b'{"event":"charge.success","data":{}}'
        response = await _post(client, body, sign_body(body))
        assert response.status_code == 400

    async def test_unknown_reference_is_404(self, client):
        body = webhook_body("charge.success", "PMT-UNKNOWN", 100)
        response = await _post(client, body, sign_body(body))
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_other_events_are_ignored(self, client):
        body = webhook_body("transfer.success", "TRF-1", 100)
        response = await _post(client, body, sign_body(body))
        assert response.status_code == 200
        assert response.json() == {"status": "success", "message": "Event ignored"}

    async def test_x_signature_header_accepted(self, client):
        body = webhook_body("subscription.create", "SUB-1")
        response = await _post(client, body, sign_body(body), header="X-Signature")
        assert response.status_code == 200


class TestChargeSuccess:
    async def test_marks_paid_and_cascades(self, client, session_factory, pending):
        body = webhook_body(
            "charge.success",
            pending["reference"],
            18000000,
            channel="bank_transfer",
            paid_at="2025-03-01T10:00:00.000Z",
            customer={"email": "tobi.tenant@example.com"},
        )

        response = await _post(client, body, sign_body(body))

        assert response.status_code == 200
        assert response.json() == {
            "status": "success",
            "message": "Webhook processed successfully",
        }

        [payment] = await _fresh(
            session_factory, Payment, Payment.reference == pending["reference"]
        )
        assert payment.status == PaymentStatus.PAID
        assert payment.channel == "bank_transfer"
        assert payment.paid_at is not None
        assert payment.notes.startswith("Verified via webhook at")

        [invoice] = await _fresh(
            session_factory, Invoice, Invoice.id == pending["invoice_id"]
        )
        assert invoice.paid_amount == Decimal("180000.00")
        assert invoice.status == InvoiceStatus.PAID

        [agreement] = await _fresh(
            session_factory,
            TenancyAgreement,
            TenancyAgreement.application_id == pending["application_id"],
        )
        assert agreement.status == AgreementStatus.DRAFT
        assert agreement.payment_id == payment.id

        [audit] = await _fresh(
            session_factory, AuditLog, AuditLog.action == "payment_verified"
        )
        assert audit.changes["verified_via"] == "paystack_webhook"
        assert audit.changes["customer_email"] == "tobi.tenant@example.com"

    async def test_redelivery_has_no_further_effect(
        self, client, session_factory, pending
    ):
        body = webhook_body("charge.success", pending["reference"], 18000000)
        first = await _post(client, body, sign_body(body))

        async with session_factory() as session:
            notifications_after_first = (
                await session.execute(select(func.count(Notification.id)))
            ).scalar_one()

        second = await _post(client, body, sign_body(body))

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json() == {
            "status": "success",
            "message": "Payment already processed",
        }

        [invoice] = await _fresh(
            session_factory, Invoice, Invoice.id == pending["invoice_id"]
        )
        assert invoice.paid_amount == Decimal("180000.00")

        agreements = await _fresh(
            session_factory,
            TenancyAgreement,
            TenancyAgreement.application_id == pending["application_id"],
        )
        assert len(agreements) == 1

        audits = await _fresh(
            session_factory, AuditLog, AuditLog.action == "payment_verified"
        )
        assert len(audits) == 1

        async with session_factory() as session:
            notifications_after_second = (
                await session.execute(select(func.count(Notification.id)))
            ).scalar_one()
        assert notifications_after_second == notifications_after_first

    @pytest.mark.parametrize("bad_amount", ["18,000,000", "NaN", [1], True])
    async def test_unreadable_amount_leaves_payment_pending(
        self, client, session_factory, pending, bad_amount
    ):
        body = webhook_body("charge.success", pending["reference"], bad_amount)
        response = await _post(client, body, sign_body(body))

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION"
        [payment] = await _fresh(
            session_factory, Payment, Payment.reference == pending["reference"]
        )
        assert payment.status == PaymentStatus.PENDING

        retry = webhook_body("charge.success", pending["reference"], 18000000)
        response = await _post(client, retry, sign_body(retry))

        assert response.json()["message"] == "Webhook processed successfully"
        [invoice] = await _fresh(
            session_factory, Invoice, Invoice.id == pending["invoice_id"]
        )
        assert invoice.status == InvoiceStatus.PAID
        assert len(
            await _fresh(
                session_factory,
                TenancyAgreement,
                TenancyAgreement.application_id == pending["application_id"],
            )
        ) == 1

    async def test_lost_race_is_reported_as_duplicate(self, db, pending):
        guard = PaymentIdempotencyGuard(db)
        result = await guard.resolve(pending["reference"], "charge.success")
        assert result.duplicate is False

        await db.execute(
            update(Payment)
            .where(Payment.id == result.payment.id)
            .values(status=PaymentStatus.PAID)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        payment = result.payment
        assert payment.status == PaymentStatus.PENDING

        won = await guard.claim_paid(payment, utcnow(), "card", "late delivery")
        assert won is False


class TestChargeFailed:
    async def test_marks_failed_without_cascade(self, client, session_factory, pending):
        body = webhook_body(
            "charge.failed", pending["reference"], gateway_response="Declined"
        )

        response = await _post(client, body, sign_body(body))

        assert response.status_code == 200
        [payment] = await _fresh(
            session_factory, Payment, Payment.reference == pending["reference"]
        )
        assert payment.status == PaymentStatus.FAILED
        assert payment.notes == "Payment failed: Declined"

        [invoice] = await _fresh(
            session_factory, Invoice, Invoice.id == pending["invoice_id"]
        )
        assert invoice.paid_amount == Decimal("0.00")
        assert await _fresh(session_factory, TenancyAgreement) == []
        assert len(
            await _fresh(session_factory, AuditLog, AuditLog.action == "payment_failed")
        ) == 1

    async def test_failure_after_success_is_a_no_op(
        self, client, session_factory, pending
    ):
        success = webhook_body("charge.success", pending["reference"], 18000000)
        await _post(client, success, sign_body(success))

        failed = webhook_body("charge.failed", pending["reference"])
        response = await _post(client, failed, sign_body(failed))

        assert response.status_code == 200
        assert response.json()["message"] == "Payment already processed"
        [payment] = await _fresh(
            session_factory, Payment, Payment.reference == pending["reference"]
        )
        assert payment.status == PaymentStatus.PAID

    async def test_success_after_failure_does_not_pay(
        self, client, session_factory, pending
    ):
        failed = webhook_body("charge.failed", pending["reference"])
        await _post(client, failed, sign_body(failed))

        success = webhook_body("charge.success", pending["reference"], 18000000)
        response = await _post(client, success, sign_body(success))

        assert response.status_code == 200
        assert response.json()["message"] == "Payment already processed"
        [payment] = await _fresh(
            session_factory, Payment, Payment.reference == pending["reference"]
        )
        assert payment.status == PaymentStatus.FAILED


@pytest.mark.parametrize("amount_minor, expected", [(5000000, "50000.00")])
async def test_partial_payment_leaves_invoice_partial(
    client, session_factory, pending, amount_minor, expected
):
    body = webhook_body("charge.success", pending["reference"], amount_minor)
    await _post(client, body, sign_body(body))

    [invoice] = await _fresh(session_factory, Invoice, Invoice.id == pending["invoice_id"])
    assert invoice.paid_amount == Decimal(expected)
    assert invoice.status == InvoiceStatus.PARTIAL
