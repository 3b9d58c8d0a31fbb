# tests/integration/test_response_models.py

from ferry_booking.api.schemas.schemas import (
    ApprovalResponse,
    ApprovalStatisticsResponse,
    BookingResponse,
    CapacityInfoResponse,
    PaymentResponse,
)


def test_entities_serialize(core, paid_booking):
    booking = BookingResponse.model_validate(paid_booking)
    approval = ApprovalResponse.model_validate(
        core.approvals.get_approval_by_booking(paid_booking.id)
    )
    payment = PaymentResponse.model_validate(
        core.payments.payments_for_booking(paid_booking.id)[0]
    )

    assert booking.status == "PAID"
    assert booking.booking_code == paid_booking.booking_code
    assert approval.status == "PENDING"
    assert approval.review_deadline is None
    assert payment.is_successful
    assert payment.can_be_refunded
    assert payment.refundable_amount_cents == paid_booking.total_amount_cents

    dumped = payment.model_dump(mode="json")
    assert dumped["method"] == "CREDIT_CARD"


def test_capacity_and_statistics_serialize(core, paid_booking):
    info = CapacityInfoResponse.model_validate(
        core.bookings.get_capacity_info(paid_booking.ferry_id, paid_booking.departure_date)
    )
    stats = ApprovalStatisticsResponse.model_validate(core.approvals.get_statistics())

    assert info.current_vehicles == 1
    assert info.vehicle_utilization_percent == 20.0
    assert stats.pending == 1
