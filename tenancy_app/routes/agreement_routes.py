import uuid

from fastapi import APIRouter, Depends, Request, status
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_user
from core.get_db import get_db_async
from core.safe_handler import safe_handler
from core.throttling import rate_limit
from models.models import User
from schemas.schema import (
    AgreementOut,
    LeaseRenewalOut,
    ReasonSchema,
    RenewalApprovalSchema,
    RenewalRequestSchema,
    SignAgreementSchema,
)
from services.agreement_signing_service import AgreementSigningService
from services.lease_renewal_service import LeaseRenewalService
from services.tenancy_lifecycle_service import TenancyLifecycleService

router = APIRouter(tags=["Tenancy Agreements"])


@cbv(router)
class AgreementRoutes:
    @router.post("/sign", dependencies=[rate_limit])
    @safe_handler
    async def sign_agreement(
        self,
        request: Request,
        data: SignAgreementSchema,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        result = await AgreementSigningService(db).sign(
            data.agreement_id,
            current_user,
            device_fingerprint=data.device_fingerprint,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
        return {
            "success": True,
            "message": (
                "Agreement fully signed"
                if result.both_parties_signed
                else "Signature recorded; awaiting the other party"
            ),
            "data": {
                "agreementHash": result.agreement_hash,
                "signatureTimestamp": result.signature_timestamp,
                "signerRole": result.signer_role.value,
                "bothPartiesSigned": result.both_parties_signed,
                "agreementStatus": result.agreement_status.value,
            },
        }

    @router.get("/{agreement_id}/signing-status")
    @safe_handler
    async def signing_status(
        self,
        request: Request,
        agreement_id: uuid.UUID,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        data = await AgreementSigningService(db).signing_status(
            agreement_id, current_user
        )
        return {"success": True, "data": data}

    @router.get("/{agreement_id}/integrity", dependencies=[rate_limit])
    @safe_handler
    async def verify_integrity(
        self,
        request: Request,
        agreement_id: uuid.UUID,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        data = await AgreementSigningService(db).verify_integrity(
            agreement_id, current_user
        )
        return {"success": True, "data": data}

    @router.post("/{agreement_id}/terminate")
    @safe_handler
    async def terminate_agreement(
        self,
        request: Request,
        agreement_id: uuid.UUID,
        data: ReasonSchema,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        agreement = await TenancyLifecycleService(db).terminate_agreement(
            agreement_id, current_user, data.reason
        )
        return {
            "success": True,
            "message": "Agreement terminated",
            "data": AgreementOut.model_validate(agreement),
        }

    @router.post("/{agreement_id}/renewals", status_code=status.HTTP_201_CREATED)
    @safe_handler
    async def request_renewal(
        self,
        request: Request,
        agreement_id: uuid.UUID,
        data: RenewalRequestSchema,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        renewal = await LeaseRenewalService(db).request_renewal(
            agreement_id, current_user, data.requested_end_date, data.notes
        )
        return {"success": True, "data": LeaseRenewalOut.model_validate(renewal)}

    @router.post("/renewals/{renewal_id}/approve")
    @safe_handler
    async def approve_renewal(
        self,
        request: Request,
        renewal_id: uuid.UUID,
        data: RenewalApprovalSchema,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        renewal, agreement = await LeaseRenewalService(db).approve_renewal(
            renewal_id, current_user, data.proposed_rent_amount, data.notes
        )
        return {
            "success": True,
            "data": {
                "renewal": LeaseRenewalOut.model_validate(renewal),
                "agreement": AgreementOut.model_validate(agreement),
            },
        }

    @router.post("/renewals/{renewal_id}/reject")
    @safe_handler
    async def reject_renewal(
        self,
        request: Request,
        renewal_id: uuid.UUID,
        data: ReasonSchema,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        renewal = await LeaseRenewalService(db).reject_renewal(
            renewal_id, current_user, data.reason
        )
        return {"success": True, "data": LeaseRenewalOut.model_validate(renewal)}

    @router.post("/renewals/{renewal_id}/withdraw")
    @safe_handler
    async def withdraw_renewal(
        self,
        request: Request,
        renewal_id: uuid.UUID,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        renewal = await LeaseRenewalService(db).withdraw_renewal(
            renewal_id, current_user
        )
        return {"success": True, "data": LeaseRenewalOut.model_validate(renewal)}
