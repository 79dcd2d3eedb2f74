import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from core.agreement_hash import AgreementHasher
from core.check_permission import CheckRolePermission
from core.errors import ConflictError, ForbiddenError, NotFoundError, TamperDetectedError
from models.enums import AgreementStatus, ListingStatus, NotificationType, SignerRole
from models.models import AgreementSignature, TenancyAgreement, User
from models.utils import utcnow
from repos.agreement_repo import AgreementRepo
from repos.agreement_signature_repo import AgreementSignatureRepo
from repos.unit_repo import UnitRepo

from .audit_service import AuditService
from .notification_service import NotificationService

logger = logging.getLogger(__name__)

UNSIGNABLE_STATUSES = {
    AgreementStatus.SIGNED,
    AgreementStatus.ACTIVE,
    AgreementStatus.EXPIRED,
    AgreementStatus.TERMINATED,
}


@dataclass
class SignResult:
    agreement_hash: str
    signature_timestamp: datetime
    signer_role: SignerRole
    both_parties_signed: bool
    agreement_status: AgreementStatus


class AgreementSigningService:
    """
    Append-only two-party signature ledger.

    A signature is an authenticated, audited acknowledgment of the agreement's
    content hash. It is not a PKI digital signature.
    """

    def __init__(self, db):
        self.db = db
        self.agreement_repo = AgreementRepo(db)
        self.signature_repo = AgreementSignatureRepo(db)
        self.unit_repo = UnitRepo(db)
        self.audit_service = AuditService(db)
        self.notification_service = NotificationService(db)
        self.permission = CheckRolePermission()

    async def _get_agreement(self, agreement_id: UUID) -> TenancyAgreement:
        agreement = await self.agreement_repo.get_by_id(agreement_id)
        if not agreement:
            raise NotFoundError("Agreement not found")
        return agreement

    @staticmethod
    def _signer_role(agreement: TenancyAgreement, user: User) -> SignerRole:
        if user.id == agreement.tenant_id:
            return SignerRole.TENANT
        if user.id == agreement.landlord_id:
            return SignerRole.LANDLORD
        raise ForbiddenError("You are not a party to this agreement")

    async def sign(
        self,
        agreement_id: UUID,
        current_user: User,
        device_fingerprint: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> SignResult:
        agreement = await self._get_agreement(agreement_id)
        signer_role = self._signer_role(agreement, current_user)
        user_id = current_user.id

        if await self.signature_repo.get_for_signer(agreement.id, user_id):
            raise ConflictError(
                "You have already signed this agreement", code="ALREADY_SIGNED"
            )

        if agreement.status in UNSIGNABLE_STATUSES:
            raise ConflictError(
                f"Agreement is {agreement.status.value} and cannot be signed",
                code="INVALID_STATE",
            )

        computed_hash = AgreementHasher.compute_for(agreement)
        stored_hash = agreement.agreement_hash
        if stored_hash and stored_hash != computed_hash:
            logger.error(
                "Tamper detected on agreement %s by %s: stored=%s computed=%s",
                agreement.id,
                user_id,
                stored_hash,
                computed_hash,
            )
            await self.audit_service.record_and_commit(
                action="agreement_tamper_detected",
                entity_type="tenancy_agreement",
                entity_id=agreement_id,
                actor_id=user_id,
                changes={"stored_hash": stored_hash, "computed_hash": computed_hash},
                ip_address=ip_address,
                user_agent=user_agent,
            )
            raise TamperDetectedError(
                "Agreement content changed after it was signed; signing is blocked"
            )

        signed_at = utcnow()
        await self.signature_repo.insert(
            AgreementSignature(
                agreement_id=agreement.id,
                signer_id=user_id,
                signer_role=signer_role,
                agreement_hash=computed_hash,
                agreement_version=agreement.agreement_version,
                signature_timestamp=signed_at,
                ip_address=ip_address,
                user_agent=user_agent[:512] if user_agent else None,
                device_fingerprint=device_fingerprint,
            )
        )

        signatures = await self.signature_repo.list_for_agreement(agreement.id)
        roles = {signature.signer_role for signature in signatures}
        both_signed = SignerRole.TENANT in roles and SignerRole.LANDLORD in roles

        previous_status = agreement.status
        if not stored_hash:
            agreement.agreement_hash = computed_hash
        if both_signed:
            agreement.status = AgreementStatus.SIGNED
            agreement.signed_at = signed_at
            await self.unit_repo.set_listing_status(
                agreement.unit_id, ListingStatus.RENTED
            )
        elif agreement.status == AgreementStatus.DRAFT:
            agreement.status = AgreementStatus.SENT

        self.audit_service.record(
            action="agreement_signed",
            entity_type="tenancy_agreement",
            entity_id=agreement.id,
            actor_id=user_id,
            changes={
                "signer_role": signer_role.value,
                "agreement_hash": computed_hash,
                "both_parties_signed": both_signed,
                "from": previous_status.value,
                "to": agreement.status.value,
                "device_fingerprint": device_fingerprint,
            },
            ip_address=ip_address,
            user_agent=user_agent,
        )
        agreement = await self.agreement_repo.commit_and_refresh(agreement)
        logger.info(
            "Agreement %s signed by %s (%s); both_signed=%s status=%s",
            agreement.id,
            user_id,
            signer_role.value,
            both_signed,
            agreement.status.value,
        )

        if both_signed:
            await self.notification_service.notify_many(
                [agreement.tenant_id, agreement.landlord_id],
                "Tenancy Agreement Signed",
                "Both parties have signed the tenancy agreement.",
                notification_type=NotificationType.SUCCESS,
                action_url=f"/agreements/{agreement.id}",
            )
        else:
            other = (
                agreement.landlord_id
                if signer_role == SignerRole.TENANT
                else agreement.tenant_id
            )
            await self.notification_service.notify(
                other,
                "Signature Required",
                f"The {signer_role.value} has signed the tenancy agreement. "
                f"Your signature is required.",
                action_url=f"/agreements/{agreement.id}",
            )

        return SignResult(
            agreement_hash=computed_hash,
            signature_timestamp=signed_at,
            signer_role=signer_role,
            both_parties_signed=both_signed,
            agreement_status=agreement.status,
        )

    async def signing_status(self, agreement_id: UUID, current_user: User) -> dict:
        agreement = await self._get_agreement(agreement_id)
        self.permission.check_party(
            current_user, agreement.tenant_id, agreement.landlord_id
        )

        signatures = await self.signature_repo.list_for_agreement(agreement.id)
        by_role = {signature.signer_role: signature for signature in signatures}
        tenant_sig = by_role.get(SignerRole.TENANT)
        landlord_sig = by_role.get(SignerRole.LANDLORD)

        return {
            "agreementId": str(agreement.id),
            "agreementStatus": agreement.status.value,
            "tenantSigned": tenant_sig is not None,
            "landlordSigned": landlord_sig is not None,
            "bothPartiesSigned": tenant_sig is not None and landlord_sig is not None,
            "tenantSignedAt": tenant_sig.signature_timestamp if tenant_sig else None,
            "landlordSignedAt": landlord_sig.signature_timestamp if landlord_sig else None,
            "agreementHash": agreement.agreement_hash,
        }

    async def verify_integrity(self, agreement_id: UUID, current_user: User) -> dict:
        agreement = await self._get_agreement(agreement_id)
        self.permission.check_party(
            current_user, agreement.tenant_id, agreement.landlord_id
        )

        current_hash = AgreementHasher.compute_for(agreement)
        stored_hash = agreement.agreement_hash
        signatures = await self.signature_repo.list_for_agreement(agreement.id)
        mismatched = [
            signature.signer_role.value
            for signature in signatures
            if signature.agreement_hash != current_hash
        ]

        if not stored_hash:
            is_valid, message = True, "Agreement has not been signed yet"
        elif stored_hash != current_hash or mismatched:
            is_valid, message = False, "Agreement content does not match signed hash"
        else:
            is_valid, message = True, "Agreement integrity verified"

        if not is_valid:
            logger.warning(
                "Integrity check failed for agreement %s (mismatched=%s)",
                agreement.id,
                mismatched,
            )

        return {
            "agreementId": str(agreement.id),
            "isValid": is_valid,
            "currentHash": current_hash,
            "storedHash": stored_hash,
            "mismatchedSignatures": mismatched,
            "message": message,
        }
