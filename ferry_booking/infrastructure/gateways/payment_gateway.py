# ferry_booking/infrastructure/gateways/payment_gateway.py

import logging
import random
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Protocol
from uuid import uuid4

from ferry_booking.domain.enums import PaymentMethod

logger = logging.getLogger(__name__)

SIMULATED_FAILURE_REASON = "Simulated payment failure - insufficient funds"
INTERRUPTED_FAILURE_REASON = "Payment processing interrupted"


@dataclass(frozen=True)
class GatewayResult:
    """
    Outcome of one charge attempt. A failed result is recorded on the
    payment; it is never raised.
    """

    success: bool
    gateway_response: str
    transaction_id: Optional[str] = None
    failure_reason: Optional[str] = None


class PaymentGateway(Protocol):
    def charge(
        self,
        payment_number: str,
        amount_cents: int,
        method: PaymentMethod,
    ) -> GatewayResult:
        ...


class SimulatedPaymentGateway:
    """
    Stand-in for an external processor.

    Waits a bounded random delay, then succeeds with probability
    ``success_rate``. ``rng`` and ``wait`` are injectable so tests can
    force either outcome without sleeping. ``wait`` returns True when the
    wait was cut short, which resolves the attempt as FAILED. Each charge
    waits on its own event, so ``cancel`` only affects charges already in
    flight.
    """

    def __init__(
        self,
        success_rate: float = 0.90,
        min_delay_seconds: float = 1.0,
        max_delay_seconds: float = 3.0,
        rng: Optional[random.Random] = None,
        wait: Optional[Callable[[float], bool]] = None,
    ):
        if not 0.0 <= success_rate <= 1.0:
            raise ValueError("success_rate must be within [0, 1]")
        if min_delay_seconds < 0 or max_delay_seconds < min_delay_seconds:
            raise ValueError("Invalid delay bounds")

        self.success_rate = success_rate
        self.min_delay_seconds = min_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self._rng = rng or random.Random()
        self._wait = wait
        self._lock = threading.Lock()
        self._in_flight: set[threading.Event] = set()

    def cancel(self) -> None:
        """Interrupts the waits of charges currently in flight."""
        with self._lock:
            for interrupted in self._in_flight:
                interrupted.set()

    def charge(
        self,
        payment_number: str,
        amount_cents: int,
        method: PaymentMethod,
    ) -> GatewayResult:
        delay = self._rng.uniform(self.min_delay_seconds, self.max_delay_seconds)
        logger.debug(
            "Gateway processing %s (%s cents via %s), delay %.2fs",
            payment_number,
            amount_cents,
            method.value,
            delay,
        )

        if self._pause(delay):
            logger.warning("Gateway wait interrupted for %s", payment_number)
            return GatewayResult(
                success=False,
                gateway_response="Payment interrupted via simulation",
                failure_reason=INTERRUPTED_FAILURE_REASON,
            )

        if self._rng.random() < self.success_rate:
            return GatewayResult(
                success=True,
                gateway_response="Payment processed successfully via simulation",
                transaction_id=f"TXN-SIM-{uuid4().hex[:8].upper()}",
            )

        return GatewayResult(
            success=False,
            gateway_response="Payment failed via simulation",
            failure_reason=SIMULATED_FAILURE_REASON,
        )

    def _pause(self, delay: float) -> bool:
        if self._wait is not None:
            return self._wait(delay)

        interrupted = threading.Event()
        with self._lock:
            self._in_flight.add(interrupted)
        try:
            return interrupted.wait(delay)
        finally:
            with self._lock:
                self._in_flight.discard(interrupted)
