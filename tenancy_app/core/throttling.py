import logging

from fastapi import Depends, Request
from fastapi.responses import JSONResponse
from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter
from redis.asyncio import from_url

from .errors import AppError
from .settings import settings
from .validators import bearer_token, decode_http_access_token

logger = logging.getLogger(__name__)


class RateLimitManager:
    """Counts live in Redis so every API instance shares the same window."""

    def __init__(self):
        self.redis = None

    async def connect(self):
        self.redis = from_url(
            settings.RATE_LIMIT_REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
        await FastAPILimiter.init(self.redis, identifier=self.user_or_ip)
        logger.info("Rate limiter initialized.")

    async def close(self):
        if self.redis is not None:
            await FastAPILimiter.close()
            self.redis = None

    @staticmethod
    async def limit_exceeded_handler(request: Request, exc):
        return JSONResponse(
            status_code=429,
            content={
                "success": False,
                "error": "Limit exceeded. Please try again later.",
                "code": "RATE_LIMITED",
            },
        )

    @staticmethod
    async def user_or_ip(request: Request) -> str:
        user_id = getattr(request.state, "user_id", None)
        token = bearer_token(request)
        if user_id is None and token:
            try:
                user_id = decode_http_access_token(token)
            except AppError:
                user_id = None

        if user_id is not None:
            return f"user:{user_id}:{request.scope['path']}"

        if request.client and request.client.host:
            return f"ip:{request.client.host}:{request.scope['path']}"

        return f"anonymous:{request.scope['path']}"


rate_limiter_manager = RateLimitManager()
sensitive_limiter = RateLimiter(
    times=10, seconds=60, identifier=rate_limiter_manager.user_or_ip
)
rate_limit = Depends(sensitive_limiter)
