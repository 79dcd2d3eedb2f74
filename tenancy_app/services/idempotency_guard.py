import logging
from dataclasses import dataclass
from datetime import datetime

from core.errors import NotFoundError
from models.enums import PaymentStatus, WebhookEvent
from models.models import Payment
from repos.payment_repo import PaymentRepo

logger = logging.getLogger(__name__)


@dataclass
class GuardResult:
    payment: Payment
    duplicate: bool


class PaymentIdempotencyGuard:
    """
    Exactly-once gate for gateway events, keyed by the payment reference.

    `resolve` is a fast path only. The compare-and-set in `claim_paid` and
    `claim_failed` decides which delivery wins when two arrive together.
    """

    def __init__(self, db):
        self.db = db
        self.payment_repo = PaymentRepo(db)

    async def resolve(self, reference: str, event: str) -> GuardResult:
        payment = await self.payment_repo.get_by_reference(reference)
        if not payment:
            logger.warning("Webhook for unknown payment reference %s", reference)
            raise NotFoundError("Payment not found")

        if event == WebhookEvent.CHARGE_SUCCESS:
            duplicate = payment.status == PaymentStatus.PAID
        else:
            duplicate = payment.status != PaymentStatus.PENDING

        if duplicate:
            logger.info(
                "Duplicate %s for payment %s (status=%s)",
                event,
                payment.id,
                payment.status.value,
            )
        return GuardResult(payment=payment, duplicate=duplicate)

    async def claim_paid(
        self, payment: Payment, paid_at: datetime, channel: str, notes: str
    ) -> bool:
        payment_id = payment.id
        won = await self.payment_repo.mark_paid(payment_id, paid_at, channel, notes)
        if won:
            await self.payment_repo.commit()
            await self.db.refresh(payment)
        else:
            await self.db.rollback()
            logger.info("Payment %s already claimed by another delivery", payment_id)
        return won

    async def claim_failed(self, payment: Payment, notes: str) -> bool:
        won = await self.payment_repo.mark_failed(payment.id, notes)
        if won:
            await self.payment_repo.commit()
            await self.db.refresh(payment)
        else:
            await self.db.rollback()
        return won
