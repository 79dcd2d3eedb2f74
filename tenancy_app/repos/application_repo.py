from uuid import UUID

from sqlalchemy import exists, select

from models.enums import OPEN_APPLICATION_STATUSES, ApplicationStatus
from models.models import Application, TenancyAgreement

from .base import SessionRepo


class ApplicationRepo(SessionRepo):
    async def get_by_id(self, application_id: UUID) -> Application | None:
        result = await self.db.execute(
            select(Application).where(Application.id == application_id)
        )
        return result.scalar_one_or_none()

    async def get_open_for_tenant(
        self, tenant_id: UUID, unit_id: UUID
    ) -> Application | None:
        result = await self.db.execute(
            select(Application).where(
                Application.tenant_id == tenant_id,
                Application.unit_id == unit_id,
                Application.status.in_(list(OPEN_APPLICATION_STATUSES)),
            )
        )
        return result.scalars().first()

    async def has_approved_without_agreement(self, unit_id: UUID) -> bool:
        result = await self.db.execute(
            select(Application.id).where(
                Application.unit_id == unit_id,
                Application.status == ApplicationStatus.APPROVED,
                ~exists().where(TenancyAgreement.application_id == Application.id),
            )
        )
        return result.first() is not None
