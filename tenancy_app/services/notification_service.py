import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from models.enums import NotificationType
from models.models import Notification
from repos.notification_repo import NotificationRepo

logger = logging.getLogger(__name__)


class NotificationService:
    """In-app notifications. A failed write is logged and never propagated."""

    def __init__(self, db):
        self.db = db
        self.notification_repo = NotificationRepo(db)

    async def notify(
        self,
        user_id: UUID,
        title: str,
        message: str,
        notification_type: NotificationType = NotificationType.INFO,
        action_url: str | None = None,
    ) -> bool:
        try:
            await self.notification_repo.add_commit_and_refresh(
                Notification(
                    user_id=user_id,
                    title=title,
                    message=message,
                    notification_type=notification_type,
                    action_url=action_url,
                )
            )
            return True
        except SQLAlchemyError as e:
            logger.warning("Notification to user %s failed (%s): %s", user_id, title, e)
            return False

    async def notify_many(self, user_ids, title: str, message: str, **kwargs) -> int:
        sent = 0
        for user_id in user_ids:
            if user_id and await self.notify(user_id, title, message, **kwargs):
                sent += 1
        return sent
