import uuid

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models.models import User

from .errors import AuthError
from .get_db import get_db_async
from .validators import jwt_protect


async def get_current_user(
    user_id: uuid.UUID = Depends(jwt_protect),
    db: AsyncSession = Depends(get_db_async),
) -> User:
    user = await db.execute(select(User).where(User.id == user_id))
    user_result = user.scalars().first()

    if not user_result or not user_result.is_active:
        raise AuthError("Not Authenticated", code="UNAUTHORIZED")

    return user_result
