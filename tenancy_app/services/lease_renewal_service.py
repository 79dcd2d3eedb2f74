import logging
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from core.check_permission import CheckRolePermission
from core.errors import ConflictError, NotFoundError, ValidationError
from models.enums import AgreementStatus, NotificationType, RenewalStatus
from models.models import LeaseRenewal, TenancyAgreement, User
from models.utils import to_money, utcnow
from repos.agreement_repo import AgreementRepo
from repos.lease_renewal_repo import LeaseRenewalRepo

from .audit_service import AuditService
from .notification_service import NotificationService

logger = logging.getLogger(__name__)


class LeaseRenewalService:
    """
    Renewal requests on active agreements.

    Approval drafts a successor agreement at the next version, linked back to
    the current one. The successor goes through the normal two-party signing
    flow and takes over the unit when the daily job activates it.
    """

    def __init__(self, db):
        self.db = db
        self.renewal_repo = LeaseRenewalRepo(db)
        self.agreement_repo = AgreementRepo(db)
        self.audit_service = AuditService(db)
        self.notification_service = NotificationService(db)
        self.permission = CheckRolePermission()

    async def _get_renewal(self, renewal_id: UUID) -> LeaseRenewal:
        renewal = await self.renewal_repo.get_by_id(renewal_id)
        if not renewal:
            raise NotFoundError("Renewal request not found")
        return renewal

    @staticmethod
    def _require_pending(renewal: LeaseRenewal):
        if renewal.status != RenewalStatus.PENDING:
            raise ConflictError(
                f"Renewal is {renewal.status.value}, not pending", code="INVALID_STATE"
            )

    async def request_renewal(
        self,
        agreement_id: UUID,
        tenant: User,
        requested_end_date: date,
        notes: str | None = None,
    ) -> LeaseRenewal:
        agreement = await self.agreement_repo.get_by_id(agreement_id)
        if not agreement:
            raise NotFoundError("Agreement not found")
        self.permission.check_party(tenant, agreement.tenant_id)

        if agreement.status != AgreementStatus.ACTIVE:
            raise ConflictError(
                "Only active agreements can be renewed", code="INVALID_STATE"
            )
        if requested_end_date <= agreement.end_date:
            raise ValidationError("Renewal must end after the current lease")
        if await self.renewal_repo.get_open_for_agreement(agreement.id):
            raise ConflictError("A renewal is already in progress for this agreement")

        renewal = LeaseRenewal(
            current_agreement_id=agreement.id,
            tenant_id=agreement.tenant_id,
            landlord_id=agreement.landlord_id,
            unit_id=agreement.unit_id,
            requested_start_date=agreement.end_date + timedelta(days=1),
            requested_end_date=requested_end_date,
            requested_rent_amount=to_money(agreement.rent_amount),
            tenant_notes=notes,
            status=RenewalStatus.PENDING,
        )
        self.db.add(renewal)
        agreement.renewal_status = RenewalStatus.PENDING
        await self.db.flush()
        self.audit_service.record(
            action="renewal_requested",
            entity_type="lease_renewal",
            entity_id=renewal.id,
            actor_id=tenant.id,
            changes={
                "agreement_id": str(agreement.id),
                "requested_end_date": requested_end_date.isoformat(),
            },
        )
        renewal = await self.renewal_repo.commit_and_refresh(renewal)
        logger.info("Renewal %s requested for agreement %s", renewal.id, agreement_id)

        await self.notification_service.notify(
            renewal.landlord_id,
            "Lease Renewal Requested",
            f"Your tenant asked to renew the lease until "
            f"{requested_end_date.isoformat()}.",
            action_url=f"/renewals/{renewal.id}",
        )
        return renewal

    async def approve_renewal(
        self,
        renewal_id: UUID,
        landlord: User,
        proposed_rent_amount: Decimal | None = None,
        notes: str | None = None,
    ) -> tuple[LeaseRenewal, TenancyAgreement]:
        self.permission.check_landlord(landlord)
        renewal = await self._get_renewal(renewal_id)
        self.permission.check_party(landlord, renewal.landlord_id)
        self._require_pending(renewal)

        current = await self.agreement_repo.get_by_id(renewal.current_agreement_id)
        if current is None or current.status != AgreementStatus.ACTIVE:
            raise ConflictError(
                "The agreement being renewed is no longer active", code="INVALID_STATE"
            )

        rent = (
            to_money(proposed_rent_amount)
            if proposed_rent_amount is not None
            else to_money(renewal.requested_rent_amount)
        )
        if rent <= 0:
            raise ValidationError("Rent amount must be positive")

        successor = TenancyAgreement(
            previous_agreement_id=current.id,
            tenant_id=current.tenant_id,
            landlord_id=current.landlord_id,
            property_id=current.property_id,
            unit_id=current.unit_id,
            start_date=renewal.requested_start_date,
            end_date=renewal.requested_end_date,
            rent_amount=rent,
            deposit_amount=current.deposit_amount,
            terms=current.terms,
            agreement_version=current.agreement_version + 1,
            status=AgreementStatus.DRAFT,
        )
        self.db.add(successor)
        await self.db.flush()

        renewal.status = RenewalStatus.APPROVED
        renewal.responded_at = utcnow()
        renewal.proposed_rent_amount = rent
        renewal.landlord_notes = notes
        renewal.new_agreement_id = successor.id
        current.renewal_status = RenewalStatus.APPROVED
        current.renewal_end_date = renewal.requested_end_date
        self.audit_service.record(
            action="renewal_approved",
            entity_type="lease_renewal",
            entity_id=renewal.id,
            actor_id=landlord.id,
            changes={
                "new_agreement_id": str(successor.id),
                "agreement_version": successor.agreement_version,
                "rent_amount": str(rent),
            },
        )
        renewal = await self.renewal_repo.commit_and_refresh(renewal)
        await self.db.refresh(successor)
        logger.info(
            "Renewal %s approved; agreement %s drafted as version %s",
            renewal.id,
            successor.id,
            successor.agreement_version,
        )

        await self.notification_service.notify_many(
            [successor.tenant_id, successor.landlord_id],
            "Renewal Agreement Ready",
            "Your lease renewal was approved. Please review and sign the new agreement.",
            notification_type=NotificationType.SUCCESS,
            action_url=f"/agreements/{successor.id}",
        )
        return renewal, successor

    async def reject_renewal(
        self, renewal_id: UUID, landlord: User, reason: str | None = None
    ) -> LeaseRenewal:
        self.permission.check_landlord(landlord)
        renewal = await self._get_renewal(renewal_id)
        self.permission.check_party(landlord, renewal.landlord_id)
        self._require_pending(renewal)

        current = await self.agreement_repo.get_by_id(renewal.current_agreement_id)
        renewal.status = RenewalStatus.REJECTED
        renewal.responded_at = utcnow()
        renewal.rejection_reason = reason
        if current:
            current.renewal_status = RenewalStatus.REJECTED
        self.audit_service.record(
            action="renewal_rejected",
            entity_type="lease_renewal",
            entity_id=renewal.id,
            actor_id=landlord.id,
            changes={"reason": reason},
        )
        renewal = await self.renewal_repo.commit_and_refresh(renewal)

        await self.notification_service.notify(
            renewal.tenant_id,
            "Lease Renewal Declined",
            f"Your renewal request was declined. {reason or ''}".strip(),
            NotificationType.WARNING,
        )
        return renewal

    async def withdraw_renewal(self, renewal_id: UUID, tenant: User) -> LeaseRenewal:
        renewal = await self._get_renewal(renewal_id)
        self.permission.check_party(tenant, renewal.tenant_id)
        self._require_pending(renewal)

        current = await self.agreement_repo.get_by_id(renewal.current_agreement_id)
        renewal.status = RenewalStatus.WITHDRAWN
        renewal.responded_at = utcnow()
        if current:
            current.renewal_status = None
        self.audit_service.record(
            action="renewal_withdrawn",
            entity_type="lease_renewal",
            entity_id=renewal.id,
            actor_id=tenant.id,
        )
        return await self.renewal_repo.commit_and_refresh(renewal)

    async def stage_completion(self, successor: TenancyAgreement) -> None:
        """Mark the renewal behind ``successor`` completed; the caller commits."""
        if successor.previous_agreement_id is None:
            return
        renewal = await self.renewal_repo.get_by_new_agreement(successor.id)
        if renewal is None:
            return
        renewal.status = RenewalStatus.COMPLETED
        renewal.completed_at = utcnow()
        previous = await self.agreement_repo.get_by_id(successor.previous_agreement_id)
        if previous:
            previous.renewal_status = RenewalStatus.COMPLETED
