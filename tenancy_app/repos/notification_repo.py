from uuid import UUID

from sqlalchemy import select

from models.models import Notification

from .base import SessionRepo


class NotificationRepo(SessionRepo):
    async def list_for_user(self, user_id: UUID) -> list[Notification]:
        result = await self.db.execute(
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
        )
        return list(result.scalars().all())
