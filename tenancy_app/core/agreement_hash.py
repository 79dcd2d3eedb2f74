import hashlib
import json
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping

HASHED_FIELDS = (
    "tenant_id",
    "landlord_id",
    "property_id",
    "unit_id",
    "start_date",
    "end_date",
    "rent_amount",
    "deposit_amount",
    "terms",
    "version",
)

AMOUNT_FIELDS = {"rent_amount", "deposit_amount"}
DATE_FIELDS = {"start_date", "end_date"}


class AgreementHasher:
    """
    SHA-256 over a canonical JSON rendering of the agreement's legal content.

    Keys are sorted and whitespace is stripped, so the digest depends only on
    the field values, never on the order they were supplied in.
    """

    @staticmethod
    def _normalize(field: str, value: Any):
        if field == "terms":
            return "" if value is None else str(value)
        if field == "version":
            return int(value) if value is not None else 1
        if value is None:
            return None
        if field in AMOUNT_FIELDS:
            amount = Decimal(str(value)).quantize(
                Decimal("0.01"), rounding=ROUND_HALF_UP
            )
            return str(amount)
        if field in DATE_FIELDS:
            if isinstance(value, datetime):
                value = value.date()
            if isinstance(value, date):
                return value.isoformat()
            return str(value)
        return str(value)

    @classmethod
    def canonical(cls, fields: Mapping[str, Any]) -> str:
        document = {
            field: cls._normalize(field, fields.get(field)) for field in HASHED_FIELDS
        }
        return json.dumps(
            document, sort_keys=True, separators=(",", ":"), ensure_ascii=False
        )

    @classmethod
    def compute(cls, fields: Mapping[str, Any]) -> str:
        return hashlib.sha256(cls.canonical(fields).encode("utf-8")).hexdigest()

    @classmethod
    def compute_for(cls, agreement) -> str:
        return cls.compute(
            {
                "tenant_id": agreement.tenant_id,
                "landlord_id": agreement.landlord_id,
                "property_id": agreement.property_id,
                "unit_id": agreement.unit_id,
                "start_date": agreement.start_date,
                "end_date": agreement.end_date,
                "rent_amount": agreement.rent_amount,
                "deposit_amount": agreement.deposit_amount,
                "terms": agreement.terms,
                "version": agreement.agreement_version,
            }
        )
