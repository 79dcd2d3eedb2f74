import json
import logging
from datetime import date
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from core.check_permission import CheckRolePermission
from core.errors import ConflictError, ForbiddenError, NotFoundError
from core.settings import settings
from models.enums import (
    CLOSED_AGREEMENT_STATUSES,
    DEFAULT_AGREEMENT_TERMS,
    AgreementStatus,
    ApplicationStatus,
    InvoiceStatus,
    InvoiceType,
    ListingStatus,
    NotificationType,
)
from models.models import Application, TenancyAgreement, User
from models.utils import lease_end_date, utcnow
from repos.agreement_repo import AgreementRepo
from repos.application_repo import ApplicationRepo
from repos.invoice_repo import InvoiceRepo
from repos.unit_repo import UnitRepo

from .audit_service import AuditService
from .invoice_service import InvoiceService
from .lease_renewal_service import LeaseRenewalService
from .notification_service import NotificationService

logger = logging.getLogger(__name__)


class TenancyLifecycleService:
    """Moves a unit through available -> applied -> rented and back."""

    def __init__(self, db):
        self.db = db
        self.unit_repo = UnitRepo(db)
        self.application_repo = ApplicationRepo(db)
        self.agreement_repo = AgreementRepo(db)
        self.invoice_repo = InvoiceRepo(db)
        self.invoice_service = InvoiceService(db)
        self.notification_service = NotificationService(db)
        self.audit_service = AuditService(db)
        self.renewal_service = LeaseRenewalService(db)
        self.permission = CheckRolePermission()

    async def _get_application(self, application_id: UUID) -> Application:
        application = await self.application_repo.get_by_id(application_id)
        if not application:
            raise NotFoundError("Application not found")
        return application

    async def _get_agreement(self, agreement_id: UUID) -> TenancyAgreement:
        agreement = await self.agreement_repo.get_by_id(agreement_id)
        if not agreement:
            raise NotFoundError("Agreement not found")
        return agreement

    async def release_unit_if_unreferenced(self, unit_id: UUID) -> bool:
        if await self.agreement_repo.get_live_for_unit(unit_id):
            return False
        if await self.application_repo.has_approved_without_agreement(unit_id):
            return False

        unit = await self.unit_repo.get_by_id(unit_id)
        if unit is None or unit.listing_status not in (
            ListingStatus.APPLIED,
            ListingStatus.RENTED,
        ):
            return False

        await self.unit_repo.set_listing_status(unit_id, ListingStatus.AVAILABLE)
        await self.unit_repo.commit()
        logger.info("Unit %s released back to available", unit_id)
        return True

    async def submit_application(
        self,
        tenant: User,
        unit_id: UUID,
        move_in_date: date | None = None,
        message: str | None = None,
    ) -> Application:
        self.permission.check_tenant(tenant)

        pair = await self.unit_repo.get_with_property(unit_id)
        if not pair:
            raise NotFoundError("Unit not found")
        unit, property_ = pair

        if unit.listing_status not in (ListingStatus.AVAILABLE, ListingStatus.APPLIED):
            raise ConflictError(
                "Unit is not open for applications", code="INVALID_STATE"
            )
        if property_.landlord_id == tenant.id:
            raise ForbiddenError("You cannot apply for your own unit")
        if await self.application_repo.get_open_for_tenant(tenant.id, unit_id):
            raise ConflictError("You already have an open application for this unit")

        application = Application(
            tenant_id=tenant.id,
            landlord_id=property_.landlord_id,
            unit_id=unit_id,
            move_in_date=move_in_date,
            message=message,
            status=ApplicationStatus.PENDING,
        )
        self.db.add(application)
        await self.db.flush()
        self.audit_service.record(
            action="application_submitted",
            entity_type="application",
            entity_id=application.id,
            actor_id=tenant.id,
            changes={"unit_id": str(unit_id)},
        )
        application = await self.application_repo.commit_and_refresh(application)

        await self.notification_service.notify(
            application.landlord_id,
            "New Application",
            f"{tenant.full_name} applied for unit {unit.unit_number}.",
            action_url=f"/applications/{application.id}",
        )
        return application

    async def approve_application(self, application_id: UUID, landlord: User):
        self.permission.check_landlord(landlord)
        application = await self._get_application(application_id)
        self.permission.check_party(landlord, application.landlord_id)

        if application.status != ApplicationStatus.PENDING:
            raise ConflictError(
                f"Application is {application.status.value}, not pending",
                code="INVALID_STATE",
            )

        unit = await self.unit_repo.get_by_id(application.unit_id)
        if unit is None:
            raise NotFoundError("Unit not found")
        rent_amount, deposit_amount = unit.rent_amount, unit.deposit_amount

        if not await self.unit_repo.claim_available(unit.id, ListingStatus.APPLIED):
            raise ConflictError(
                "Unit is no longer available", code="INVALID_STATE"
            )

        application.status = ApplicationStatus.APPROVED
        application.reviewed_by = landlord.id
        application.reviewed_at = utcnow()
        # approval, unit claim and initial invoice commit together
        invoice = self.invoice_service.build_application_invoice(
            application, rent_amount, deposit_amount
        )
        self.db.add(invoice)
        self.audit_service.record(
            action="application_approved",
            entity_type="application",
            entity_id=application.id,
            actor_id=landlord.id,
            changes={
                "status": ApplicationStatus.APPROVED.value,
                "invoice_number": invoice.invoice_number,
            },
        )
        application = await self.application_repo.commit_and_refresh(application)
        await self.db.refresh(invoice)
        logger.info(
            "Application %s approved by %s; unit %s now applied",
            application.id,
            landlord.id,
            application.unit_id,
        )

        await self.invoice_service.announce(invoice)
        await self.notification_service.notify(
            application.tenant_id,
            "Application Approved",
            f"Your application was approved. Pay invoice {invoice.invoice_number} "
            f"to secure the unit.",
            NotificationType.SUCCESS,
            action_url=f"/invoices/{invoice.id}",
        )
        return application, invoice

    async def reject_application(
        self, application_id: UUID, landlord: User, reason: str | None = None
    ) -> Application:
        self.permission.check_landlord(landlord)
        application = await self._get_application(application_id)
        self.permission.check_party(landlord, application.landlord_id)

        if application.status != ApplicationStatus.PENDING:
            raise ConflictError(
                f"Application is {application.status.value}, not pending",
                code="INVALID_STATE",
            )

        application.status = ApplicationStatus.REJECTED
        application.reviewed_by = landlord.id
        application.reviewed_at = utcnow()
        application.decision_reason = reason
        self.audit_service.record(
            action="application_rejected",
            entity_type="application",
            entity_id=application.id,
            actor_id=landlord.id,
            changes={"reason": reason},
        )
        application = await self.application_repo.commit_and_refresh(application)

        await self.notification_service.notify(
            application.tenant_id,
            "Application Rejected",
            f"Your application was rejected. {reason or ''}".strip(),
            NotificationType.WARNING,
        )
        return application

    async def withdraw_application(
        self, application_id: UUID, tenant: User, reason: str | None = None
    ) -> Application:
        application = await self._get_application(application_id)
        self.permission.check_party(tenant, application.tenant_id)

        if application.status not in (
            ApplicationStatus.PENDING,
            ApplicationStatus.APPROVED,
        ):
            raise ConflictError(
                f"Application is {application.status.value} and cannot be withdrawn",
                code="INVALID_STATE",
            )

        agreement = await self.agreement_repo.get_by_application(application.id)
        if agreement and agreement.status not in CLOSED_AGREEMENT_STATUSES:
            raise ConflictError(
                "Application already has a tenancy agreement; terminate it instead",
                code="INVALID_STATE",
            )

        unit_id = application.unit_id
        application.status = ApplicationStatus.WITHDRAWN
        application.decision_reason = reason
        self.audit_service.record(
            action="application_withdrawn",
            entity_type="application",
            entity_id=application.id,
            actor_id=tenant.id,
            changes={"reason": reason},
        )
        application = await self.application_repo.commit_and_refresh(application)

        invoice = await self.invoice_repo.get_for_application(
            application.id, InvoiceType.INITIAL_PAYMENT
        )
        if invoice and invoice.status == InvoiceStatus.PENDING:
            await self.invoice_service.cancel_invoice(invoice, "application withdrawn")

        await self.release_unit_if_unreferenced(unit_id)

        await self.notification_service.notify_many(
            [application.tenant_id, application.landlord_id],
            "Application Withdrawn",
            "The rental application has been withdrawn.",
        )
        return application

    async def create_agreement_from_application(
        self, application_id: UUID, payment_id: UUID | None = None
    ) -> TenancyAgreement | None:
        """Draft the lease once the application's initial invoice is paid."""
        application = await self._get_application(application_id)

        if await self.agreement_repo.get_by_application(application_id):
            return None

        pair = await self.unit_repo.get_with_property(application.unit_id)
        if not pair:
            raise NotFoundError("Unit not found")
        unit, property_ = pair

        live = await self.agreement_repo.get_live_for_unit(unit.id)
        if live:
            logger.warning(
                "Skipping agreement for application %s: unit %s held by agreement %s",
                application_id,
                unit.id,
                live.id,
            )
            return None

        start_date = application.move_in_date or date.today()
        agreement = TenancyAgreement(
            application_id=application.id,
            payment_id=payment_id,
            tenant_id=application.tenant_id,
            landlord_id=property_.landlord_id,
            property_id=property_.id,
            unit_id=unit.id,
            start_date=start_date,
            end_date=lease_end_date(start_date, settings.DEFAULT_LEASE_MONTHS),
            rent_amount=unit.rent_amount,
            deposit_amount=unit.deposit_amount,
            terms=json.dumps(DEFAULT_AGREEMENT_TERMS),
            agreement_version=1,
            status=AgreementStatus.DRAFT,
        )
        try:
            agreement = await self.agreement_repo.add_commit_and_refresh(agreement)
        except IntegrityError:
            logger.info("Agreement for application %s created concurrently", application_id)
            return None

        logger.info(
            "Draft agreement %s created for application %s", agreement.id, application_id
        )
        await self.notification_service.notify_many(
            [agreement.tenant_id, agreement.landlord_id],
            "Tenancy Agreement Ready",
            "Your tenancy agreement is ready. Please review and sign it.",
            action_url=f"/agreements/{agreement.id}",
        )
        return agreement

    async def terminate_agreement(
        self, agreement_id: UUID, user: User, reason: str | None = None
    ) -> TenancyAgreement:
        agreement = await self._get_agreement(agreement_id)
        self.permission.check_party(user, agreement.tenant_id, agreement.landlord_id)

        if agreement.status in CLOSED_AGREEMENT_STATUSES:
            raise ConflictError(
                f"Agreement is already {agreement.status.value}", code="INVALID_STATE"
            )

        previous = agreement.status
        unit_id = agreement.unit_id
        agreement.status = AgreementStatus.TERMINATED
        agreement.terminated_at = utcnow()
        agreement.termination_reason = reason
        self.audit_service.record(
            action="agreement_terminated",
            entity_type="tenancy_agreement",
            entity_id=agreement.id,
            actor_id=user.id,
            changes={
                "from": previous.value,
                "to": AgreementStatus.TERMINATED.value,
                "reason": reason,
            },
        )
        agreement = await self.agreement_repo.commit_and_refresh(agreement)
        logger.info("Agreement %s terminated by %s", agreement.id, user.id)

        await self.release_unit_if_unreferenced(unit_id)

        other = (
            agreement.landlord_id if user.id == agreement.tenant_id else agreement.tenant_id
        )
        await self.notification_service.notify(
            other,
            "Tenancy Agreement Terminated",
            f"The tenancy agreement was terminated. {reason or ''}".strip(),
            NotificationType.WARNING,
        )
        return agreement

    async def activate_due_agreements(self, today: date | None = None) -> int:
        today = today or date.today()
        due_ids = [a.id for a in await self.agreement_repo.list_due_for_activation(today)]

        activated = 0
        for agreement_id in due_ids:
            try:
                agreement = await self.agreement_repo.get_by_id(agreement_id)
                agreement.status = AgreementStatus.ACTIVE
                agreement.activated_at = utcnow()
                await self.unit_repo.set_listing_status(
                    agreement.unit_id, ListingStatus.RENTED
                )
                await self.renewal_service.stage_completion(agreement)
                self.audit_service.record(
                    action="agreement_activated",
                    entity_type="tenancy_agreement",
                    entity_id=agreement_id,
                )
                await self.agreement_repo.commit()
                activated += 1
            except IntegrityError:
                await self.db.rollback()
                logger.error(
                    "Agreement %s not activated: unit already has an active agreement",
                    agreement_id,
                )
        logger.info("Activated %s agreements for %s", activated, today)
        return activated

    async def expire_ended_agreements(self, today: date | None = None) -> int:
        today = today or date.today()
        ended = [(a.id, a.unit_id) for a in await self.agreement_repo.list_ended(today)]

        expired = 0
        for agreement_id, unit_id in ended:
            try:
                agreement = await self.agreement_repo.get_by_id(agreement_id)
                agreement.status = AgreementStatus.EXPIRED
                self.audit_service.record(
                    action="agreement_expired",
                    entity_type="tenancy_agreement",
                    entity_id=agreement_id,
                )
                await self.agreement_repo.commit()
                expired += 1
                await self.release_unit_if_unreferenced(unit_id)
            except Exception:
                await self.db.rollback()
                logger.exception("Expiry failed for agreement %s", agreement_id)

        logger.info("Expired %s agreements for %s", expired, today)
        return expired
