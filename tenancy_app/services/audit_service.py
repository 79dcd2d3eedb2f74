import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from models.models import AuditLog
from repos.audit_log_repo import AuditLogRepo

logger = logging.getLogger(__name__)


class AuditService:
    def __init__(self, db):
        self.db = db
        self.audit_repo = AuditLogRepo(db)

    def record(
        self,
        *,
        action: str,
        entity_type: str,
        entity_id,
        actor_id: UUID | None = None,
        changes: dict | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuditLog:
        """Stage an audit row in the caller's transaction."""
        return self.audit_repo.add(
            AuditLog(
                actor_id=actor_id,
                action=action,
                entity_type=entity_type,
                entity_id=str(entity_id),
                changes=changes,
                ip_address=ip_address,
                user_agent=user_agent[:512] if user_agent else None,
            )
        )

    async def record_and_commit(self, **kwargs) -> bool:
        try:
            self.record(**kwargs)
            await self.db.commit()
            return True
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "Audit %s for %s %s failed: %s",
                kwargs.get("action"),
                kwargs.get("entity_type"),
                kwargs.get("entity_id"),
                e,
            )
            return False
