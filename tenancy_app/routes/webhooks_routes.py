from fastapi import APIRouter, Depends, Request
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_db import get_db_async
from core.safe_handler import safe_handler
from webhooks.service_webhooks import PaymentWebhooks

router = APIRouter(tags=["Webhooks"])


@cbv(router)
class WebhookRoutes:
    @router.post("/webhooks/paystack")
    @safe_handler
    async def paystack_webhook(
        self,
        request: Request,
        db: AsyncSession = Depends(get_db_async),
    ):
        raw_body = await request.body()
        signature = request.headers.get("x-paystack-signature") or request.headers.get(
            "x-signature"
        )
        return await PaymentWebhooks(db).handle(
            raw_body,
            signature,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
