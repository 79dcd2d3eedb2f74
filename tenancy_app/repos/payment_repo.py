from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update

from models.enums import PaymentStatus
from models.models import Payment

from .base import SessionRepo


class PaymentRepo(SessionRepo):
    async def get_by_reference(self, reference: str) -> Payment | None:
        result = await self.db.execute(
            select(Payment).where(Payment.reference == reference)
        )
        return result.scalar_one_or_none()

    async def transition_from_pending(
        self, payment_id: UUID, status: PaymentStatus, **values
    ) -> bool:
        result = await self.db.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == PaymentStatus.PENDING)
            .values(status=status, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_paid(
        self, payment_id: UUID, paid_at: datetime, channel: str, notes: str
    ) -> bool:
        return await self.transition_from_pending(
            payment_id,
            PaymentStatus.PAID,
            paid_at=paid_at,
            channel=channel,
            notes=notes,
        )

    async def mark_failed(self, payment_id: UUID, notes: str) -> bool:
        return await self.transition_from_pending(
            payment_id, PaymentStatus.FAILED, notes=notes
        )
