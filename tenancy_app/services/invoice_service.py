import logging
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from core.errors import ConflictError, NotFoundError
from core.settings import settings
from models.enums import (
    AgreementStatus,
    InvoiceStatus,
    InvoiceType,
    NotificationType,
)
from models.models import Application, Invoice, TenancyAgreement
from models.utils import due_date_in_month, month_bounds, to_money, utcnow
from repos.agreement_repo import AgreementRepo
from repos.invoice_repo import InvoiceRepo
from repos.unit_repo import UnitRepo

from .notification_service import NotificationService

logger = logging.getLogger(__name__)


def generate_invoice_number(today: date | None = None) -> str:
    today = today or date.today()
    return f"INV-{today:%Y%m}-{uuid.uuid4().hex[:8].upper()}"


def compute_invoice_status(invoice: Invoice, today: date | None = None) -> InvoiceStatus:
    today = today or date.today()
    total = to_money(invoice.total_amount)
    paid = to_money(invoice.paid_amount)

    if paid >= total:
        return InvoiceStatus.PAID
    if paid > 0:
        return InvoiceStatus.PARTIAL
    if invoice.due_date < today:
        return InvoiceStatus.OVERDUE
    return InvoiceStatus.PENDING


class InvoiceService:
    def __init__(self, db):
        self.db = db
        self.invoice_repo = InvoiceRepo(db)
        self.agreement_repo = AgreementRepo(db)
        self.unit_repo = UnitRepo(db)
        self.notification_service = NotificationService(db)

    async def _insert(self, invoice: Invoice) -> Invoice:
        invoice = await self.invoice_repo.add_commit_and_refresh(invoice)
        await self.announce(invoice)
        return invoice

    async def announce(self, invoice: Invoice) -> None:
        logger.info(
            "Invoice %s (%s) created for tenant %s: %s due %s",
            invoice.invoice_number,
            invoice.invoice_type.value,
            invoice.tenant_id,
            invoice.total_amount,
            invoice.due_date,
        )
        await self.notification_service.notify(
            invoice.tenant_id,
            "New Invoice",
            f"Invoice {invoice.invoice_number} for {settings.DEFAULT_CURRENCY} "
            f"{to_money(invoice.total_amount):,} is due on {invoice.due_date.isoformat()}.",
            NotificationType.INFO,
            action_url=f"/invoices/{invoice.id}",
        )

    def build_application_invoice(
        self,
        application: Application,
        rent_amount,
        deposit_amount,
        due_date: date | None = None,
    ) -> Invoice:
        today = date.today()
        rent = to_money(rent_amount)
        deposit = to_money(deposit_amount)
        return Invoice(
            invoice_number=generate_invoice_number(today),
            tenant_id=application.tenant_id,
            landlord_id=application.landlord_id,
            unit_id=application.unit_id,
            application_id=application.id,
            invoice_type=InvoiceType.INITIAL_PAYMENT,
            invoice_date=today,
            due_date=due_date or today + timedelta(days=settings.INVOICE_DUE_DAYS),
            rent_amount=rent,
            deposit_amount=deposit,
            total_amount=rent + deposit,
            paid_amount=Decimal("0.00"),
            status=InvoiceStatus.PENDING,
            notes="Initial payment: first month rent and security deposit",
        )

    async def create_application_invoice(
        self,
        application: Application,
        rent_amount,
        deposit_amount,
        due_date: date | None = None,
    ) -> Invoice:
        application_id = application.id
        existing = await self.invoice_repo.get_for_application(
            application_id, InvoiceType.INITIAL_PAYMENT
        )
        if existing:
            return existing

        invoice = self.build_application_invoice(
            application, rent_amount, deposit_amount, due_date
        )
        try:
            return await self._insert(invoice)
        except IntegrityError:
            logger.info(
                "Initial invoice for application %s created concurrently", application_id
            )
            existing = await self.invoice_repo.get_for_application(
                application_id, InvoiceType.INITIAL_PAYMENT
            )
            if existing is None:
                raise
            return existing

    async def create_monthly_rent_invoice(
        self, agreement: TenancyAgreement, today: date | None = None
    ) -> Invoice | None:
        today = today or date.today()
        if agreement.status != AgreementStatus.ACTIVE:
            raise ConflictError(
                "Rent invoices can only be raised for active agreements",
                code="INVALID_STATE",
            )

        month_start, next_month = month_bounds(today)
        if await self.invoice_repo.get_monthly_in_range(
            agreement.id, month_start, next_month
        ):
            return None

        rent = to_money(agreement.rent_amount)
        invoice = Invoice(
            invoice_number=generate_invoice_number(today),
            tenant_id=agreement.tenant_id,
            landlord_id=agreement.landlord_id,
            unit_id=agreement.unit_id,
            agreement_id=agreement.id,
            invoice_type=InvoiceType.MONTHLY_RENT,
            invoice_date=today,
            due_date=due_date_in_month(agreement.start_date, today),
            rent_amount=rent,
            total_amount=rent,
            paid_amount=Decimal("0.00"),
            status=InvoiceStatus.PENDING,
            notes=f"Monthly rent for {today:%B %Y}",
        )
        return await self._insert(invoice)

    async def generate_monthly_rent_invoices(self, today: date | None = None) -> int:
        today = today or date.today()
        agreements = await self.agreement_repo.list_by_status(AgreementStatus.ACTIVE)
        agreement_ids = [agreement.id for agreement in agreements]

        created = 0
        for agreement_id in agreement_ids:
            try:
                agreement = await self.agreement_repo.get_by_id(agreement_id)
                if agreement and await self.create_monthly_rent_invoice(agreement, today):
                    created += 1
            except Exception:
                await self.db.rollback()
                logger.exception(
                    "Monthly rent invoice failed for agreement %s", agreement_id
                )
        logger.info("Generated %s monthly rent invoices for %s", created, today)
        return created

    async def apply_payment(
        self, invoice: Invoice, amount, paid_at: datetime | None = None
    ) -> Invoice:
        if invoice.status == InvoiceStatus.CANCELLED:
            raise ConflictError(
                "Cannot apply payment to a cancelled invoice", code="INVALID_STATE"
            )

        invoice.paid_amount = to_money(invoice.paid_amount) + to_money(amount)
        invoice.status = compute_invoice_status(invoice)
        if invoice.status == InvoiceStatus.PAID:
            invoice.paid_at = paid_at or utcnow()

        invoice = await self.invoice_repo.commit_and_refresh(invoice)
        logger.info(
            "Applied %s to invoice %s: paid=%s status=%s",
            amount,
            invoice.id,
            invoice.paid_amount,
            invoice.status.value,
        )
        return invoice

    async def cancel_invoice(self, invoice: Invoice, reason: str | None = None) -> Invoice:
        if invoice.status != InvoiceStatus.PENDING:
            raise ConflictError(
                f"Only pending invoices can be cancelled (status={invoice.status.value})",
                code="INVALID_STATE",
            )
        invoice.status = InvoiceStatus.CANCELLED
        invoice.notes = f"Cancelled: {reason}" if reason else "Cancelled"
        return await self.invoice_repo.commit_and_refresh(invoice)

    async def get_invoice(self, invoice_id) -> Invoice:
        invoice = await self.invoice_repo.get_by_id(invoice_id)
        if not invoice:
            raise NotFoundError("Invoice not found")
        return invoice

    async def _raise_late_fee(self, invoice_id, today: date) -> Invoice | None:
        invoice = await self.invoice_repo.get_by_id(invoice_id)
        if invoice is None or await self.invoice_repo.get_late_fee_for(invoice.id):
            return None

        unit = await self.unit_repo.get_by_id(invoice.unit_id)
        fee = to_money(unit.late_fee_amount) if unit else Decimal("0.00")
        if fee <= 0:
            return None
        if today <= invoice.due_date + timedelta(days=unit.late_fee_grace_days or 0):
            return None

        late_fee = Invoice(
            invoice_number=generate_invoice_number(today),
            tenant_id=invoice.tenant_id,
            landlord_id=invoice.landlord_id,
            unit_id=invoice.unit_id,
            agreement_id=invoice.agreement_id,
            parent_invoice_id=invoice.id,
            invoice_type=InvoiceType.LATE_FEE,
            invoice_date=today,
            due_date=today + timedelta(days=settings.INVOICE_DUE_DAYS),
            late_fee_amount=fee,
            total_amount=fee,
            paid_amount=Decimal("0.00"),
            status=InvoiceStatus.PENDING,
            notes=f"Late fee for invoice {invoice.invoice_number}",
        )
        try:
            return await self._insert(late_fee)
        except IntegrityError:
            logger.info("Late fee for invoice %s already raised", invoice_id)
            return None

    async def mark_overdue_invoices(self, today: date | None = None) -> dict:
        today = today or date.today()

        past_due = await self.invoice_repo.list_past_due(today)
        for invoice in past_due:
            invoice.status = InvoiceStatus.OVERDUE
        await self.invoice_repo.commit()

        overdue_ids = [invoice.id for invoice in await self.invoice_repo.list_overdue_rent()]
        late_fees = 0
        for invoice_id in overdue_ids:
            try:
                if await self._raise_late_fee(invoice_id, today):
                    late_fees += 1
            except Exception:
                await self.db.rollback()
                logger.exception("Late fee failed for invoice %s", invoice_id)

        logger.info(
            "Overdue sweep for %s: %s marked overdue, %s late fees raised",
            today,
            len(past_due),
            late_fees,
        )
        return {"marked_overdue": len(past_due), "late_fees": late_fees}
