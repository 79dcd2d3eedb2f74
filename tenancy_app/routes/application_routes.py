import uuid

from fastapi import APIRouter, Depends, Request, status
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_user
from core.get_db import get_db_async
from core.safe_handler import safe_handler
from models.models import User
from schemas.schema import (
    ApplicationCreateSchema,
    ApplicationOut,
    InvoiceOut,
    ReasonSchema,
)
from services.tenancy_lifecycle_service import TenancyLifecycleService

router = APIRouter(tags=["Rental Applications"])


@cbv(router)
class ApplicationRoutes:
    @router.post("/", status_code=status.HTTP_201_CREATED)
    @safe_handler
    async def submit_application(
        self,
        request: Request,
        data: ApplicationCreateSchema,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        application = await TenancyLifecycleService(db).submit_application(
            current_user, data.unit_id, data.move_in_date, data.message
        )
        return {"success": True, "data": ApplicationOut.model_validate(application)}

    @router.post("/{application_id}/approve")
    @safe_handler
    async def approve_application(
        self,
        request: Request,
        application_id: uuid.UUID,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        application, invoice = await TenancyLifecycleService(db).approve_application(
            application_id, current_user
        )
        return {
            "success": True,
            "data": {
                "application": ApplicationOut.model_validate(application),
                "invoice": InvoiceOut.model_validate(invoice),
            },
        }

    @router.post("/{application_id}/reject")
    @safe_handler
    async def reject_application(
        self,
        request: Request,
        application_id: uuid.UUID,
        data: ReasonSchema,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        application = await TenancyLifecycleService(db).reject_application(
            application_id, current_user, data.reason
        )
        return {"success": True, "data": ApplicationOut.model_validate(application)}

    @router.post("/{application_id}/withdraw")
    @safe_handler
    async def withdraw_application(
        self,
        request: Request,
        application_id: uuid.UUID,
        data: ReasonSchema,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        application = await TenancyLifecycleService(db).withdraw_application(
            application_id, current_user, data.reason
        )
        return {"success": True, "data": ApplicationOut.model_validate(application)}
