from uuid import UUID

from sqlalchemy import select

from models.enums import OPEN_RENEWAL_STATUSES
from models.models import LeaseRenewal

from .base import SessionRepo


class LeaseRenewalRepo(SessionRepo):
    async def get_by_id(self, renewal_id: UUID) -> LeaseRenewal | None:
        result = await self.db.execute(
            select(LeaseRenewal).where(LeaseRenewal.id == renewal_id)
        )
        return result.scalar_one_or_none()

    async def get_open_for_agreement(self, agreement_id: UUID) -> LeaseRenewal | None:
        result = await self.db.execute(
            select(LeaseRenewal).where(
                LeaseRenewal.current_agreement_id == agreement_id,
                LeaseRenewal.status.in_(list(OPEN_RENEWAL_STATUSES)),
            )
        )
        return result.scalars().first()

    async def get_by_new_agreement(self, agreement_id: UUID) -> LeaseRenewal | None:
        result = await self.db.execute(
            select(LeaseRenewal).where(LeaseRenewal.new_agreement_id == agreement_id)
        )
        return result.scalar_one_or_none()
