from datetime import date
from uuid import UUID

from sqlalchemy import select

from models.enums import CLOSED_AGREEMENT_STATUSES, AgreementStatus
from models.models import TenancyAgreement

from .base import SessionRepo


class AgreementRepo(SessionRepo):
    async def get_by_id(self, agreement_id: UUID) -> TenancyAgreement | None:
        result = await self.db.execute(
            select(TenancyAgreement).where(TenancyAgreement.id == agreement_id)
        )
        return result.scalar_one_or_none()

    async def get_by_application(self, application_id: UUID) -> TenancyAgreement | None:
        result = await self.db.execute(
            select(TenancyAgreement).where(
                TenancyAgreement.application_id == application_id
            )
        )
        return result.scalar_one_or_none()

    async def get_live_for_unit(self, unit_id: UUID) -> TenancyAgreement | None:
        result = await self.db.execute(
            select(TenancyAgreement).where(
                TenancyAgreement.unit_id == unit_id,
                TenancyAgreement.status.not_in(list(CLOSED_AGREEMENT_STATUSES)),
            )
        )
        return result.scalars().first()

    async def list_by_status(self, *statuses: AgreementStatus) -> list[TenancyAgreement]:
        result = await self.db.execute(
            select(TenancyAgreement).where(
                TenancyAgreement.status.in_(list(statuses))
            )
        )
        return list(result.scalars().all())

    async def list_due_for_activation(self, today: date) -> list[TenancyAgreement]:
        result = await self.db.execute(
            select(TenancyAgreement).where(
                TenancyAgreement.status == AgreementStatus.SIGNED,
                TenancyAgreement.start_date <= today,
                TenancyAgreement.end_date >= today,
            )
        )
        return list(result.scalars().all())

    async def list_ended(self, today: date) -> list[TenancyAgreement]:
        result = await self.db.execute(
            select(TenancyAgreement).where(
                TenancyAgreement.status.in_(
                    [AgreementStatus.ACTIVE, AgreementStatus.SIGNED]
                ),
                TenancyAgreement.end_date < today,
            )
        )
        return list(result.scalars().all())
