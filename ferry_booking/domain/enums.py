from enum import Enum


class FerryStatus(str, Enum):
    ACTIVE = "ACTIVE"
    MAINTENANCE = "MAINTENANCE"
    RETIRED = "RETIRED"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    DIGITAL_WALLET = "DIGITAL_WALLET"
    MOBILE_PAYMENT = "MOBILE_PAYMENT"
    CHEQUE = "CHEQUE"
    ONLINE_PAYMENT = "ONLINE_PAYMENT"


class BookingAction(str, Enum):
    """Audit record actions."""

    BOOKING_CREATED = "BOOKING_CREATED"
    BOOKING_CONFIRMED = "BOOKING_CONFIRMED"
    BOOKING_REJECTED = "BOOKING_REJECTED"
    BOOKING_UPDATED = "BOOKING_UPDATED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    BOOKING_COMPLETED = "BOOKING_COMPLETED"
    PAYMENT_PROCESSED = "PAYMENT_PROCESSED"
    PAYMENT_REFUNDED = "PAYMENT_REFUNDED"


class NotificationType(str, Enum):
    BOOKING_CREATED = "BOOKING_CREATED"
    BOOKING_STATUS_CHANGED = "BOOKING_STATUS_CHANGED"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    REVIEW_REQUIRED = "REVIEW_REQUIRED"
    REVIEW_OVERDUE = "REVIEW_OVERDUE"
