from datetime import date
from uuid import UUID

from sqlalchemy import select

from models.enums import InvoiceStatus, InvoiceType
from models.models import Invoice

from .base import SessionRepo


class InvoiceRepo(SessionRepo):
    async def get_by_id(self, invoice_id: UUID) -> Invoice | None:
        result = await self.db.execute(select(Invoice).where(Invoice.id == invoice_id))
        return result.scalar_one_or_none()

    async def get_for_application(
        self, application_id: UUID, invoice_type: InvoiceType
    ) -> Invoice | None:
        result = await self.db.execute(
            select(Invoice).where(
                Invoice.application_id == application_id,
                Invoice.invoice_type == invoice_type,
            )
        )
        return result.scalar_one_or_none()

    async def get_monthly_in_range(
        self, agreement_id: UUID, start: date, end: date
    ) -> Invoice | None:
        result = await self.db.execute(
            select(Invoice).where(
                Invoice.agreement_id == agreement_id,
                Invoice.invoice_type == InvoiceType.MONTHLY_RENT,
                Invoice.invoice_date >= start,
                Invoice.invoice_date < end,
            )
        )
        return result.scalars().first()

    async def get_late_fee_for(self, parent_invoice_id: UUID) -> Invoice | None:
        result = await self.db.execute(
            select(Invoice).where(
                Invoice.parent_invoice_id == parent_invoice_id,
                Invoice.invoice_type == InvoiceType.LATE_FEE,
            )
        )
        return result.scalar_one_or_none()

    async def list_past_due(self, today: date) -> list[Invoice]:
        result = await self.db.execute(
            select(Invoice).where(
                Invoice.status.in_([InvoiceStatus.PENDING, InvoiceStatus.PARTIAL]),
                Invoice.due_date < today,
            )
        )
        return list(result.scalars().all())

    async def list_overdue_rent(self) -> list[Invoice]:
        result = await self.db.execute(
            select(Invoice).where(
                Invoice.status == InvoiceStatus.OVERDUE,
                Invoice.invoice_type == InvoiceType.MONTHLY_RENT,
            )
        )
        return list(result.scalars().all())
