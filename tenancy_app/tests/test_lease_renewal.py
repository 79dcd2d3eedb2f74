from datetime import date, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio

from conftest import auth_headers, make_agreement
from core.agreement_hash import AgreementHasher
from core.errors import ConflictError, ForbiddenError, ValidationError
from models.enums import AgreementStatus, ListingStatus, RenewalStatus
from services.agreement_signing_service import AgreementSigningService
from services.lease_renewal_service import LeaseRenewalService
from services.tenancy_lifecycle_service import TenancyLifecycleService


@pytest_asyncio.fixture
async def active(db, tenant, landlord, unit):
    agreement = await make_agreement(
        db,
        tenant,
        landlord,
        unit,
        status=AgreementStatus.ACTIVE,
        start_date=date.today() - timedelta(days=30),
    )
    unit.listing_status = ListingStatus.RENTED
    await db.commit()
    return agreement


class TestRequestRenewal:
    async def test_request_opens_pending_renewal(self, db, tenant, active):
        new_end = active.end_date + timedelta(days=365)

        renewal = await LeaseRenewalService(db).request_renewal(
            active.id, tenant, new_end, "Happy to stay another year"
        )

        await db.refresh(active)
        assert renewal.status == RenewalStatus.PENDING
        assert renewal.requested_start_date == active.end_date + timedelta(days=1)
        assert renewal.requested_end_date == new_end
        assert renewal.requested_rent_amount == Decimal("120000.00")
        assert active.renewal_status == RenewalStatus.PENDING

    async def test_only_active_agreements_renew(self, db, tenant, landlord, unit):
        draft = await make_agreement(db, tenant, landlord, unit)

        with pytest.raises(ConflictError) as exc:
            await LeaseRenewalService(db).request_renewal(
                draft.id, tenant, draft.end_date + timedelta(days=30)
            )
        assert exc.value.code == "INVALID_STATE"

    async def test_end_date_must_extend_lease(self, db, tenant, active):
        with pytest.raises(ValidationError):
            await LeaseRenewalService(db).request_renewal(
                active.id, tenant, active.end_date
            )

    async def test_one_open_renewal_per_agreement(self, db, tenant, active):
        service = LeaseRenewalService(db)
        await service.request_renewal(
            active.id, tenant, active.end_date + timedelta(days=90)
        )

        with pytest.raises(ConflictError):
            await service.request_renewal(
                active.id, tenant, active.end_date + timedelta(days=180)
            )

    async def test_non_tenant_cannot_request(self, db, outsider, active):
        with pytest.raises(ForbiddenError):
            await LeaseRenewalService(db).request_renewal(
                active.id, outsider, active.end_date + timedelta(days=90)
            )


class TestDecideRenewal:
    async def test_approval_drafts_next_version(self, db, tenant, landlord, active):
        service = LeaseRenewalService(db)
        renewal = await service.request_renewal(
            active.id, tenant, active.end_date + timedelta(days=365)
        )

        renewal, successor = await service.approve_renewal(
            renewal.id, landlord, Decimal("130000"), "New rate applies"
        )

        await db.refresh(active)
        assert renewal.status == RenewalStatus.APPROVED
        assert renewal.new_agreement_id == successor.id
        assert successor.status == AgreementStatus.DRAFT
        assert successor.previous_agreement_id == active.id
        assert successor.agreement_version == active.agreement_version + 1
        assert successor.start_date == renewal.requested_start_date
        assert successor.end_date == renewal.requested_end_date
        assert successor.rent_amount == Decimal("130000.00")
        assert successor.application_id is None
        assert active.renewal_status == RenewalStatus.APPROVED
        assert active.renewal_end_date == renewal.requested_end_date
        assert AgreementHasher.compute_for(successor) != AgreementHasher.compute_for(
            active
        )

    async def test_version_alone_changes_hash(self, db, tenant, landlord, active):
        service = LeaseRenewalService(db)
        renewal = await service.request_renewal(
            active.id, tenant, active.end_date + timedelta(days=365)
        )
        _, successor = await service.approve_renewal(renewal.id, landlord)

        fields = {
            "tenant_id": successor.tenant_id,
            "landlord_id": successor.landlord_id,
            "property_id": successor.property_id,
            "unit_id": successor.unit_id,
            "start_date": successor.start_date,
            "end_date": successor.end_date,
            "rent_amount": successor.rent_amount,
            "deposit_amount": successor.deposit_amount,
            "terms": successor.terms,
        }
        assert AgreementHasher.compute_for(successor) == AgreementHasher.compute(
            {**fields, "version": 2}
        )
        assert AgreementHasher.compute({**fields, "version": 1}) != (
            AgreementHasher.compute({**fields, "version": 2})
        )

    async def test_only_the_landlord_decides(self, db, tenant, outsider, active):
        service = LeaseRenewalService(db)
        renewal = await service.request_renewal(
            active.id, tenant, active.end_date + timedelta(days=90)
        )

        with pytest.raises(ForbiddenError):
            await service.approve_renewal(renewal.id, tenant)
        with pytest.raises(ForbiddenError):
            await service.reject_renewal(renewal.id, outsider)

    async def test_rejection_allows_a_new_request(self, db, tenant, landlord, active):
        service = LeaseRenewalService(db)
        renewal = await service.request_renewal(
            active.id, tenant, active.end_date + timedelta(days=90)
        )

        renewal = await service.reject_renewal(renewal.id, landlord, "Selling the unit")

        await db.refresh(active)
        assert renewal.status == RenewalStatus.REJECTED
        assert renewal.rejection_reason == "Selling the unit"
        assert active.renewal_status == RenewalStatus.REJECTED
        with pytest.raises(ConflictError):
            await service.approve_renewal(renewal.id, landlord)

        again = await service.request_renewal(
            active.id, tenant, active.end_date + timedelta(days=60)
        )
        assert again.status == RenewalStatus.PENDING

    async def test_tenant_can_withdraw_pending(self, db, tenant, active):
        service = LeaseRenewalService(db)
        renewal = await service.request_renewal(
            active.id, tenant, active.end_date + timedelta(days=90)
        )

        renewal = await service.withdraw_renewal(renewal.id, tenant)

        await db.refresh(active)
        assert renewal.status == RenewalStatus.WITHDRAWN
        assert active.renewal_status is None


class TestRenewalHandover:
    async def test_signed_successor_takes_over_unit(
        self, db, tenant, landlord, unit, active
    ):
        renewals = LeaseRenewalService(db)
        renewal = await renewals.request_renewal(
            active.id, tenant, active.end_date + timedelta(days=365)
        )
        renewal, successor = await renewals.approve_renewal(renewal.id, landlord)

        signing = AgreementSigningService(db)
        await signing.sign(successor.id, tenant)
        result = await signing.sign(successor.id, landlord)
        assert result.agreement_status == AgreementStatus.SIGNED

        handover_day = active.end_date + timedelta(days=1)
        lifecycle = TenancyLifecycleService(db)
        assert await lifecycle.expire_ended_agreements(handover_day) == 1
        assert await lifecycle.activate_due_agreements(handover_day) == 1

        for obj in (active, successor, renewal, unit):
            await db.refresh(obj)
        assert active.status == AgreementStatus.EXPIRED
        assert active.renewal_status == RenewalStatus.COMPLETED
        assert successor.status == AgreementStatus.ACTIVE
        assert renewal.status == RenewalStatus.COMPLETED
        assert renewal.completed_at is not None
        assert unit.listing_status == ListingStatus.RENTED


async def test_request_renewal_over_http(client, tenant, active):
    new_end = active.end_date + timedelta(days=180)

    response = await client.post(
        f"/v1/agreements/{active.id}/renewals",
        json={"requestedEndDate": new_end.isoformat(), "notes": "Extend please"},
        headers=auth_headers(tenant),
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["status"] == "pending"
    assert data["requested_end_date"] == new_end.isoformat()
