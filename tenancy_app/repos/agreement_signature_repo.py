from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from core.errors import ConflictError
from models.models import AgreementSignature


class AgreementSignatureRepo:
    """Insert and read only. Signature rows are never updated or deleted."""

    def __init__(self, db):
        self.db = db

    async def list_for_agreement(self, agreement_id: UUID) -> list[AgreementSignature]:
        result = await self.db.execute(
            select(AgreementSignature)
            .where(AgreementSignature.agreement_id == agreement_id)
            .order_by(AgreementSignature.signature_timestamp)
        )
        return list(result.scalars().all())

    async def get_for_signer(
        self, agreement_id: UUID, signer_id: UUID
    ) -> AgreementSignature | None:
        result = await self.db.execute(
            select(AgreementSignature).where(
                AgreementSignature.agreement_id == agreement_id,
                AgreementSignature.signer_id == signer_id,
            )
        )
        return result.scalar_one_or_none()

    async def insert(self, signature: AgreementSignature) -> AgreementSignature:
        self.db.add(signature)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(
                "You have already signed this agreement", code="ALREADY_SIGNED"
            )
        return signature
