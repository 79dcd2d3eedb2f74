from sqlalchemy.exc import SQLAlchemyError


class SessionRepo:
    def __init__(self, db):
        self.db = db

    async def add_commit_and_refresh(self, value):
        try:
            self.db.add(value)
            await self.db.commit()
            await self.db.refresh(value)
            return value
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    async def commit_and_refresh(self, value):
        try:
            await self.db.commit()
            await self.db.refresh(value)
            return value
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    async def commit(self):
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
