from uuid import UUID

from sqlalchemy import select, update

from models.enums import ListingStatus
from models.models import Property, Unit

from .base import SessionRepo


class UnitRepo(SessionRepo):
    async def get_by_id(self, unit_id: UUID) -> Unit | None:
        result = await self.db.execute(select(Unit).where(Unit.id == unit_id))
        return result.scalar_one_or_none()

    async def get_with_property(self, unit_id: UUID) -> tuple[Unit, Property] | None:
        result = await self.db.execute(
            select(Unit, Property)
            .join(Property, Property.id == Unit.property_id)
            .where(Unit.id == unit_id)
        )
        row = result.first()
        return (row[0], row[1]) if row else None

    async def set_listing_status(self, unit_id: UUID, status: ListingStatus) -> int:
        result = await self.db.execute(
            update(Unit)
            .where(Unit.id == unit_id)
            .values(listing_status=status)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    async def claim_available(self, unit_id: UUID, status: ListingStatus) -> bool:
        result = await self.db.execute(
            update(Unit)
            .where(Unit.id == unit_id, Unit.listing_status == ListingStatus.AVAILABLE)
            .values(listing_status=status)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1
