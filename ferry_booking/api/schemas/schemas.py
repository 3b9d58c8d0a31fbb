from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ferry_booking.domain.enums import PaymentMethod
from ferry_booking.domain.state_machine import (
    ApprovalStatus,
    BookingStatus,
    PaymentStatus,
)


class BookingRequest(BaseModel):
    customer_id: str = Field(min_length=1)
    route_id: str = Field(min_length=1)
    ferry_id: str = Field(min_length=1)
    departure_time: datetime
    vehicle_count: int = Field(default=0, ge=0)
    passenger_count: int = Field(default=0, ge=0)
    total_amount_cents: int = Field(ge=0)
    note: str | None = None

    @model_validator(mode="after")
    def _requires_load(self) -> "BookingRequest":
        if self.vehicle_count + self.passenger_count == 0:
            raise ValueError("A booking must carry at least one vehicle or passenger")
        return self


class PaymentRequest(BaseModel):
    booking_id: str
    method: PaymentMethod
    amount_cents: int | None = Field(default=None, gt=0)
    reference_number: str | None = None
    notes: str | None = None
    simulation: bool = False


class BookingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    booking_code: str
    customer_id: str
    ferry_id: str
    departure_time: datetime
    departure_date: date
    vehicle_count: int
    passenger_count: int
    total_amount_cents: int
    status: BookingStatus
    created_at: datetime
    cancellation_reason: str | None = None
    rejection_reason: str | None = None
    refund_amount_cents: int | None = None


class ApprovalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    booking_id: str
    status: ApprovalStatus
    review_started_at: datetime | None = None
    review_deadline: datetime | None = None
    reviewer_id: str | None = None
    decision_notes: str | None = None
    decided_at: datetime | None = None


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    payment_number: str
    booking_id: str
    amount_cents: int
    method: PaymentMethod
    status: PaymentStatus
    transaction_id: str | None = None
    applied: bool
    payment_date: datetime | None = None
    gateway_response: str | None = None
    failure_reason: str | None = None
    refund_amount_cents: int | None = None
    refund_date: datetime | None = None
    notes: str | None = None
    is_successful: bool
    can_be_refunded: bool
    refundable_amount_cents: int


class CapacityInfoResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ferry_id: str
    ferry_name: str
    day: date
    current_vehicles: int
    max_vehicles: int
    current_passengers: int
    max_passengers: int
    vehicle_utilization_percent: float
    passenger_utilization_percent: float


class ApprovalStatisticsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    pending: int
    in_review: int
    approved: int
    rejected: int
    overdue: int
