import logging
import uuid
from uuid import UUID

from core.errors import ConflictError, ForbiddenError, NotFoundError
from core.settings import settings
from fintechs.paystack import PaystackClient
from models.enums import PAYABLE_INVOICE_STATUSES, PaymentStatus, UserRole
from models.models import Payment, User
from models.utils import to_money
from repos.invoice_repo import InvoiceRepo
from repos.payment_repo import PaymentRepo

logger = logging.getLogger(__name__)


def generate_payment_reference() -> str:
    return f"PMT-{uuid.uuid4().hex.upper()}"


class PaymentService:
    def __init__(self, db, paystack: PaystackClient | None = None):
        self.db = db
        self.paystack = paystack or PaystackClient()
        self.invoice_repo = InvoiceRepo(db)
        self.payment_repo = PaymentRepo(db)

    async def initialize_payment(self, invoice_id: UUID, tenant: User) -> dict:
        invoice = await self.invoice_repo.get_by_id(invoice_id)
        if not invoice:
            raise NotFoundError("Invoice not found")
        if invoice.tenant_id != tenant.id:
            raise ForbiddenError("This invoice does not belong to you")
        if invoice.status not in PAYABLE_INVOICE_STATUSES:
            raise ConflictError(
                f"Invoice is {invoice.status.value} and cannot be paid",
                code="INVALID_STATE",
            )

        balance = to_money(invoice.balance_due)
        if balance <= 0:
            raise ConflictError("Invoice has no outstanding balance", code="INVALID_STATE")

        payment = Payment(
            reference=generate_payment_reference(),
            tenant_id=tenant.id,
            unit_id=invoice.unit_id,
            invoice_id=invoice.id,
            application_id=invoice.application_id,
            amount=balance,
            currency=settings.DEFAULT_CURRENCY,
            status=PaymentStatus.PENDING,
        )
        payment = await self.payment_repo.add_commit_and_refresh(payment)

        gateway = await self.paystack.initialize_payment(
            email=tenant.email,
            amount=balance,
            reference=payment.reference,
            callback_url=settings.PAYSTACK_CALLBACK_URL,
            metadata={
                "invoice_id": str(invoice.id),
                "payment_id": str(payment.id),
                "invoice_number": invoice.invoice_number,
            },
        )
        logger.info(
            "Payment %s initialized for invoice %s by tenant %s (%s)",
            payment.reference,
            invoice.id,
            tenant.id,
            balance,
        )
        return {
            "reference": payment.reference,
            "authorizationUrl": gateway.get("authorization_url"),
            "accessCode": gateway.get("access_code"),
            "amount": str(balance),
            "currency": payment.currency,
        }

    async def verify_payment(self, reference: str, current_user: User) -> dict:
        payment = await self.payment_repo.get_by_reference(reference)
        if not payment:
            raise NotFoundError("Payment not found")
        if payment.tenant_id != current_user.id and current_user.role != UserRole.ADMIN:
            raise ForbiddenError("You cannot view this payment")

        gateway = await self.paystack.verify_payment(reference)
        gateway_amount = gateway.get("amount")

        return {
            "reference": reference,
            "localStatus": payment.status.value,
            "gatewayStatus": gateway.get("status"),
            "verified": bool(gateway.get("success")),
            "amount": str(gateway_amount) if gateway_amount is not None else None,
            "expectedAmount": str(to_money(payment.amount)),
            "amountMatches": (
                gateway_amount is not None
                and to_money(gateway_amount) == to_money(payment.amount)
            ),
            "currency": gateway.get("currency"),
            "channel": gateway.get("channel"),
            "paidAt": gateway.get("paid_at"),
        }
