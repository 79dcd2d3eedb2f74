import uuid

import jwt
from fastapi import Request

from .errors import AuthError, ConfigError
from .settings import settings


def bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization")
    if not header:
        return None

    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def decode_http_access_token(token: str) -> uuid.UUID:
    if not settings.SECRET_KEY:
        raise ConfigError("Token verification key is not configured")

    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
        )
    except jwt.PyJWTError:
        raise AuthError("Invalid or expired token", code="UNAUTHORIZED")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthError("Token missing user ID", code="UNAUTHORIZED")

    try:
        return uuid.UUID(str(user_id))
    except ValueError:
        raise AuthError("Invalid user ID format in token", code="UNAUTHORIZED")


async def jwt_protect(request: Request) -> uuid.UUID:
    token = bearer_token(request)
    if not token:
        raise AuthError("Unauthorized", code="UNAUTHORIZED")

    user_id = decode_http_access_token(token)
    request.state.user_id = user_id
    return user_id
