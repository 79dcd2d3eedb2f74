from uuid import UUID

from sqlalchemy import select

from models.models import Property, Unit, User

from .base import SessionRepo


class UserRepo(SessionRepo):
    async def get_by_id(self, user_id: UUID) -> User | None:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_landlord_for_unit(self, unit_id: UUID) -> User | None:
        result = await self.db.execute(
            select(User)
            .join(Property, Property.landlord_id == User.id)
            .join(Unit, Unit.property_id == Property.id)
            .where(Unit.id == unit_id)
        )
        return result.scalar_one_or_none()
