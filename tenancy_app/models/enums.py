from enum import Enum


class UserRole(str, Enum):
    TENANT = "tenant"
    LANDLORD = "landlord"
    ADMIN = "admin"


class ListingStatus(str, Enum):
    AVAILABLE = "available"
    APPLIED = "applied"
    RENTED = "rented"
    UNLISTED = "unlisted"


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class InvoiceType(str, Enum):
    INITIAL_PAYMENT = "initial_payment"
    MONTHLY_RENT = "monthly_rent"
    LATE_FEE = "late_fee"
    MAINTENANCE = "maintenance"
    OTHER = "other"


class InvoiceStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class AgreementStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    SIGNED = "signed"
    ACTIVE = "active"
    EXPIRED = "expired"
    TERMINATED = "terminated"


class RenewalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"
    COMPLETED = "completed"


class SignerRole(str, Enum):
    TENANT = "tenant"
    LANDLORD = "landlord"


class NotificationType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class WebhookEvent(str, Enum):
    CHARGE_SUCCESS = "charge.success"
    CHARGE_FAILED = "charge.failed"


OPEN_APPLICATION_STATUSES = {ApplicationStatus.PENDING, ApplicationStatus.APPROVED}
CLOSED_AGREEMENT_STATUSES = {AgreementStatus.TERMINATED, AgreementStatus.EXPIRED}
OPEN_RENEWAL_STATUSES = {RenewalStatus.PENDING, RenewalStatus.APPROVED}
PAYABLE_INVOICE_STATUSES = {
    InvoiceStatus.PENDING,
    InvoiceStatus.PARTIAL,
    InvoiceStatus.OVERDUE,
}

DEFAULT_AGREEMENT_TERMS = [
    "Tenant agrees to pay rent on time each month",
    "Tenant is responsible for minor maintenance and repairs",
    "Landlord is responsible for major repairs and structural maintenance",
    "Property must be kept clean and in good condition",
    "No subletting without written permission from landlord",
    "Tenant must provide 30 days notice before moving out",
]
