from fastapi import APIRouter, Depends, Request
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_user
from core.get_db import get_db_async
from core.safe_handler import safe_handler
from core.throttling import rate_limit
from models.models import User
from schemas.schema import InitializePaymentSchema, VerifyPaymentSchema
from services.payment_service import PaymentService

router = APIRouter(tags=["Payments"])


@cbv(router)
class PaymentsRoutes:
    @router.post("/initialize", dependencies=[rate_limit])
    @safe_handler
    async def initialize_payment(
        self,
        request: Request,
        data: InitializePaymentSchema,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        result = await PaymentService(db).initialize_payment(
            data.invoice_id, current_user
        )
        return {"success": True, "data": result}

    @router.post("/verify", dependencies=[rate_limit])
    @safe_handler
    async def verify_payment(
        self,
        request: Request,
        data: VerifyPaymentSchema,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        result = await PaymentService(db).verify_payment(data.reference, current_user)
        return {"success": True, "data": result}
