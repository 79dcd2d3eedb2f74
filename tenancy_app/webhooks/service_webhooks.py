import json
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from uuid import UUID

from dateutil import parser as date_parser

from core.errors import ValidationError
from fintech_verify_signature.verify_signature import WebhookSignatureVerifier
from models.enums import NotificationType, WebhookEvent
from models.utils import minor_to_major, to_money, utcnow
from repos.invoice_repo import InvoiceRepo
from repos.user_repo import UserRepo
from services.audit_service import AuditService
from services.idempotency_guard import PaymentIdempotencyGuard
from services.invoice_service import InvoiceService
from services.notification_service import NotificationService
from services.tenancy_lifecycle_service import TenancyLifecycleService

logger = logging.getLogger(__name__)

ALREADY_PROCESSED = {"status": "success", "message": "Payment already processed"}


class PaymentWebhooks:
    def __init__(self, db, verifier: WebhookSignatureVerifier | None = None):
        self.db = db
        self.verifier = verifier or WebhookSignatureVerifier()
        self.guard = PaymentIdempotencyGuard(db)
        self.invoice_repo = InvoiceRepo(db)
        self.user_repo = UserRepo(db)
        self.invoice_service = InvoiceService(db)
        self.audit_service = AuditService(db)
        self.notification_service = NotificationService(db)
        self.lifecycle_service = TenancyLifecycleService(db)

    @staticmethod
    def _parse(raw_body: bytes) -> tuple[str, dict]:
        try:
            payload = json.loads(raw_body)
        except (ValueError, UnicodeDecodeError):
            raise ValidationError("Malformed webhook payload")

        if not isinstance(payload, dict):
            raise ValidationError("Malformed webhook payload")

        event = payload.get("event")
        if not event:
            raise ValidationError("Webhook event is missing")

        data = payload.get("data")
        return event, data if isinstance(data, dict) else {}

    @staticmethod
    def _amount(data: dict) -> Decimal | None:
        value = data.get("amount")
        if value is None:
            return None
        if isinstance(value, bool):
            raise ValidationError("Invalid payment amount")
        try:
            amount = minor_to_major(value)
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError("Invalid payment amount")
        if not amount.is_finite() or amount < 0:
            raise ValidationError("Invalid payment amount")
        return amount

    @staticmethod
    def _paid_at(data: dict) -> datetime:
        value = data.get("paid_at") or data.get("paidAt")
        if not value:
            return utcnow()
        try:
            return date_parser.isoparse(value)
        except (TypeError, ValueError):
            logger.warning("Unparseable paid_at %r; using current time", value)
            return utcnow()

    async def _step(self, name: str, payment_id: UUID, func, *args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            await self.db.rollback()
            logger.error(
                "Webhook step %s failed for payment %s: %s",
                name,
                payment_id,
                e,
                exc_info=True,
            )
            return None

    async def handle(
        self,
        raw_body: bytes,
        signature: str | None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> dict:
        self.verifier.verify(signature, raw_body)

        event, data = self._parse(raw_body)
        if event not in (WebhookEvent.CHARGE_SUCCESS, WebhookEvent.CHARGE_FAILED):
            logger.info("Ignoring webhook event %s", event)
            return {"status": "success", "message": "Event ignored"}

        reference = data.get("reference")
        if not reference:
            raise ValidationError("Payment reference is missing")

        if event == WebhookEvent.CHARGE_SUCCESS:
            return await self._charge_success(reference, data, ip_address, user_agent)
        return await self._charge_failed(reference, data, ip_address, user_agent)

    async def _charge_success(
        self, reference: str, data: dict, ip_address, user_agent
    ) -> dict:
        result = await self.guard.resolve(reference, WebhookEvent.CHARGE_SUCCESS)
        if result.duplicate:
            return ALREADY_PROCESSED

        payment = result.payment
        parsed_amount = self._amount(data)
        paid_at = self._paid_at(data)
        channel = data.get("channel") or "card"
        notes = f"Verified via webhook at {utcnow().isoformat()}"

        if not await self.guard.claim_paid(payment, paid_at, channel, notes):
            return ALREADY_PROCESSED

        payment_id = payment.id
        tenant_id = payment.tenant_id
        unit_id = payment.unit_id
        invoice_id = payment.invoice_id
        application_id = payment.application_id
        amount = (
            parsed_amount if parsed_amount is not None else to_money(payment.amount)
        )
        customer = data.get("customer") if isinstance(data.get("customer"), dict) else {}
        logger.info("Payment %s (%s) marked paid: %s", payment_id, reference, amount)

        if invoice_id:
            await self._step(
                "apply_invoice",
                payment_id,
                self._apply_to_invoice,
                invoice_id,
                amount,
                paid_at,
            )

        await self._step(
            "audit",
            payment_id,
            self.audit_service.record_and_commit,
            action="payment_verified",
            entity_type="payment",
            entity_id=payment_id,
            actor_id=tenant_id,
            changes={
                "reference": reference,
                "amount": str(amount),
                "channel": channel,
                "verified_via": "paystack_webhook",
                "customer_email": customer.get("email"),
            },
            ip_address=ip_address,
            user_agent=user_agent,
        )

        await self._step(
            "notify", payment_id, self._notify_paid, tenant_id, unit_id, amount
        )

        if application_id:
            await self._step(
                "create_agreement",
                payment_id,
                self.lifecycle_service.create_agreement_from_application,
                application_id,
                payment_id,
            )

        return {"status": "success", "message": "Webhook processed successfully"}

    async def _charge_failed(
        self, reference: str, data: dict, ip_address, user_agent
    ) -> dict:
        result = await self.guard.resolve(reference, WebhookEvent.CHARGE_FAILED)
        if result.duplicate:
            return ALREADY_PROCESSED

        payment = result.payment
        payment_id, tenant_id = payment.id, payment.tenant_id
        message = data.get("gateway_response") or data.get("message") or "unknown"

        if not await self.guard.claim_failed(payment, f"Payment failed: {message}"):
            return ALREADY_PROCESSED

        logger.warning("Payment %s (%s) failed: %s", payment_id, reference, message)
        await self._step(
            "audit",
            payment_id,
            self.audit_service.record_and_commit,
            action="payment_failed",
            entity_type="payment",
            entity_id=payment_id,
            actor_id=tenant_id,
            changes={"reference": reference, "reason": message},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return {"status": "success", "message": "Payment failure recorded"}

    async def _apply_to_invoice(self, invoice_id: UUID, amount, paid_at: datetime):
        invoice = await self.invoice_repo.get_by_id(invoice_id)
        if not invoice:
            logger.error("Invoice %s referenced by payment not found", invoice_id)
            return None
        return await self.invoice_service.apply_payment(invoice, amount, paid_at)

    async def _notify_paid(self, tenant_id: UUID, unit_id: UUID, amount):
        await self.notification_service.notify(
            tenant_id,
            "Payment Confirmed",
            f"Your payment of {amount:,} has been confirmed.",
            NotificationType.SUCCESS,
        )
        landlord = await self.user_repo.get_landlord_for_unit(unit_id)
        if landlord:
            await self.notification_service.notify(
                landlord.id,
                "Payment Received",
                f"A payment of {amount:,} was received for your unit.",
                NotificationType.SUCCESS,
            )
