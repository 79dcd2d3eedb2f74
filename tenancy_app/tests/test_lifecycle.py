import uuid
from datetime import date, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from conftest import make_agreement
from core.errors import ConflictError, ForbiddenError, NotFoundError
from models.enums import (
    AgreementStatus,
    ApplicationStatus,
    InvoiceStatus,
    ListingStatus,
)
from models.models import AuditLog, Invoice
from repos.application_repo import ApplicationRepo
from services.tenancy_lifecycle_service import TenancyLifecycleService


class TestApplications:
    async def test_submit_and_approve(self, db, tenant, landlord, unit):
        service = TenancyLifecycleService(db)

        application = await service.submit_application(
            tenant, unit.id, message="I'd like to rent this unit"
        )
        assert application.status == ApplicationStatus.PENDING
        assert application.landlord_id == landlord.id

        application, invoice = await service.approve_application(
            application.id, landlord
        )

        await db.refresh(unit)
        assert application.status == ApplicationStatus.APPROVED
        assert application.reviewed_by == landlord.id
        assert unit.listing_status == ListingStatus.APPLIED
        assert invoice.application_id == application.id
        assert invoice.total_amount == unit.rent_amount + unit.deposit_amount

    async def test_duplicate_open_application_rejected(self, db, tenant, unit):
        service = TenancyLifecycleService(db)
        await service.submit_application(tenant, unit.id)

        with pytest.raises(ConflictError):
            await service.submit_application(tenant, unit.id)

    async def test_unknown_unit(self, db, tenant):
        with pytest.raises(NotFoundError):
            await TenancyLifecycleService(db).submit_application(tenant, uuid.uuid4())

    async def test_only_unit_landlord_can_approve(
        self, db, tenant, outsider, unit
    ):
        service = TenancyLifecycleService(db)
        application = await service.submit_application(tenant, unit.id)

        with pytest.raises(ForbiddenError):
            await service.approve_application(application.id, outsider)

    async def test_second_approval_for_unit_conflicts(
        self, db, tenant, outsider, landlord, unit
    ):
        service = TenancyLifecycleService(db)
        first = await service.submit_application(tenant, unit.id)
        second = await service.submit_application(outsider, unit.id)
        await service.approve_application(first.id, landlord)

        with pytest.raises(ConflictError) as exc:
            await service.approve_application(second.id, landlord)
        assert exc.value.code == "INVALID_STATE"

    async def test_reject_pending(self, db, tenant, landlord, unit):
        service = TenancyLifecycleService(db)
        application = await service.submit_application(tenant, unit.id)

        application = await service.reject_application(
            application.id, landlord, "Incomplete documents"
        )

        assert application.status == ApplicationStatus.REJECTED
        assert application.decision_reason == "Incomplete documents"
        with pytest.raises(ConflictError):
            await service.reject_application(application.id, landlord)

    async def test_withdraw_approved_releases_unit(self, db, tenant, landlord, unit):
        service = TenancyLifecycleService(db)
        application = await service.submit_application(tenant, unit.id)
        application, invoice = await service.approve_application(
            application.id, landlord
        )

        application = await service.withdraw_application(
            application.id, tenant, "Found another place"
        )

        await db.refresh(unit)
        await db.refresh(invoice)
        assert application.status == ApplicationStatus.WITHDRAWN
        assert invoice.status == InvoiceStatus.CANCELLED
        assert unit.listing_status == ListingStatus.AVAILABLE

    async def test_audit_trail_written(self, db, tenant, landlord, unit):
        service = TenancyLifecycleService(db)
        application = await service.submit_application(tenant, unit.id)
        await service.approve_application(application.id, landlord)

        actions = (
            await db.execute(
                select(AuditLog.action).where(
                    AuditLog.entity_id == str(application.id)
                )
            )
        ).scalars().all()
        assert set(actions) == {"application_submitted", "application_approved"}

    async def test_failed_invoice_rolls_back_approval(
        self, db, tenant, landlord, unit, monkeypatch
    ):
        service = TenancyLifecycleService(db)
        application = await service.submit_application(tenant, unit.id)
        application_id = application.id

        monkeypatch.setattr(
            "services.invoice_service.generate_invoice_number", lambda today=None: None
        )
        with pytest.raises(IntegrityError):
            await service.approve_application(application_id, landlord)
        monkeypatch.undo()

        for obj in (landlord, unit):
            await db.refresh(obj)
        application = await ApplicationRepo(db).get_by_id(application_id)
        invoices = (
            await db.execute(
                select(Invoice).where(Invoice.application_id == application_id)
            )
        ).scalars().all()
        assert application.status == ApplicationStatus.PENDING
        assert unit.listing_status == ListingStatus.AVAILABLE
        assert invoices == []

        application, invoice = await service.approve_application(
            application_id, landlord
        )
        assert application.status == ApplicationStatus.APPROVED
        assert invoice.application_id == application_id


class TestAgreements:
    async def test_agreement_created_once_per_application(
        self, db, tenant, landlord, unit
    ):
        service = TenancyLifecycleService(db)
        application = await service.submit_application(
            tenant, unit.id, move_in_date=date(2025, 5, 1)
        )
        await service.approve_application(application.id, landlord)

        agreement = await service.create_agreement_from_application(application.id)
        again = await service.create_agreement_from_application(application.id)

        assert again is None
        assert agreement.status == AgreementStatus.DRAFT
        assert agreement.start_date == date(2025, 5, 1)
        assert agreement.end_date == date(2026, 5, 1)
        assert agreement.rent_amount == unit.rent_amount
        assert agreement.agreement_hash is None

    async def test_terminate_releases_unit(self, db, tenant, landlord, unit):
        agreement = await make_agreement(
            db, tenant, landlord, unit, status=AgreementStatus.SIGNED
        )
        unit.listing_status = ListingStatus.RENTED
        await db.commit()

        agreement = await TenancyLifecycleService(db).terminate_agreement(
            agreement.id, tenant, "Relocating"
        )

        await db.refresh(unit)
        assert agreement.status == AgreementStatus.TERMINATED
        assert agreement.terminated_at is not None
        assert unit.listing_status == ListingStatus.AVAILABLE

    async def test_terminate_requires_party(self, db, tenant, landlord, outsider, unit):
        agreement = await make_agreement(db, tenant, landlord, unit)

        with pytest.raises(ForbiddenError):
            await TenancyLifecycleService(db).terminate_agreement(
                agreement.id, outsider
            )

    async def test_terminated_agreement_cannot_be_terminated_again(
        self, db, tenant, landlord, unit
    ):
        agreement = await make_agreement(
            db, tenant, landlord, unit, status=AgreementStatus.TERMINATED
        )

        with pytest.raises(ConflictError):
            await TenancyLifecycleService(db).terminate_agreement(
                agreement.id, landlord
            )

    async def test_unit_held_while_live_agreement_exists(
        self, db, tenant, landlord, unit
    ):
        await make_agreement(db, tenant, landlord, unit, status=AgreementStatus.SENT)
        unit.listing_status = ListingStatus.APPLIED
        await db.commit()

        released = await TenancyLifecycleService(db).release_unit_if_unreferenced(
            unit.id
        )

        await db.refresh(unit)
        assert released is False
        assert unit.listing_status == ListingStatus.APPLIED


class TestScheduledTransitions:
    async def test_signed_agreement_activates_on_start(
        self, db, tenant, landlord, unit
    ):
        agreement = await make_agreement(
            db,
            tenant,
            landlord,
            unit,
            status=AgreementStatus.SIGNED,
            start_date=date.today() - timedelta(days=1),
        )

        activated = await TenancyLifecycleService(db).activate_due_agreements()

        await db.refresh(agreement)
        await db.refresh(unit)
        assert activated == 1
        assert agreement.status == AgreementStatus.ACTIVE
        assert agreement.activated_at is not None
        assert unit.listing_status == ListingStatus.RENTED

    async def test_future_agreement_not_activated(self, db, tenant, landlord, unit):
        await make_agreement(
            db,
            tenant,
            landlord,
            unit,
            status=AgreementStatus.SIGNED,
            start_date=date.today() + timedelta(days=10),
        )

        assert await TenancyLifecycleService(db).activate_due_agreements() == 0

    async def test_ended_agreement_expires_and_releases_unit(
        self, db, tenant, landlord, unit
    ):
        agreement = await make_agreement(
            db,
            tenant,
            landlord,
            unit,
            status=AgreementStatus.ACTIVE,
            start_date=date(2024, 1, 1),
        )
        unit.listing_status = ListingStatus.RENTED
        await db.commit()

        expired = await TenancyLifecycleService(db).expire_ended_agreements(
            date(2025, 1, 2)
        )

        await db.refresh(agreement)
        await db.refresh(unit)
        assert expired == 1
        assert agreement.status == AgreementStatus.EXPIRED
        assert unit.listing_status == ListingStatus.AVAILABLE

    async def test_expiry_continues_past_a_failing_agreement(
        self, db, tenant, landlord, unit, monkeypatch
    ):
        broken = await make_agreement(
            db,
            tenant,
            landlord,
            unit,
            status=AgreementStatus.ACTIVE,
            start_date=date(2024, 1, 1),
        )
        healthy = await make_agreement(
            db,
            tenant,
            landlord,
            unit,
            status=AgreementStatus.SIGNED,
            start_date=date(2024, 2, 1),
        )
        broken_id = broken.id

        service = TenancyLifecycleService(db)
        record = service.audit_service.record

        def failing_record(**kwargs):
            if kwargs["entity_id"] == broken_id:
                raise RuntimeError("audit store unavailable")
            return record(**kwargs)

        monkeypatch.setattr(service.audit_service, "record", failing_record)

        expired = await service.expire_ended_agreements(date(2025, 6, 1))

        await db.refresh(broken)
        await db.refresh(healthy)
        assert expired == 1
        assert broken.status == AgreementStatus.ACTIVE
        assert healthy.status == AgreementStatus.EXPIRED

    async def test_cancelled_invoice_not_counted(self, db, tenant, landlord, unit):
        service = TenancyLifecycleService(db)
        application = await service.submit_application(tenant, unit.id)
        await service.approve_application(application.id, landlord)
        await service.withdraw_application(application.id, tenant)

        invoices = (
            await db.execute(select(Invoice).where(Invoice.application_id == application.id))
        ).scalars().all()
        assert [i.status for i in invoices] == [InvoiceStatus.CANCELLED]
