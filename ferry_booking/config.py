# ferry_booking/config.py

import logging
import os
from dataclasses import dataclass
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass(frozen=True)
class WorkflowSettings:
    """Tunables for review deadlines and the simulated payment gateway."""

    review_window: timedelta = timedelta(minutes=30)
    payment_window: timedelta = timedelta(minutes=60)
    payment_success_rate: float = 0.90
    notification_success_rate: float = 0.95
    payment_min_delay_seconds: float = 1.0
    payment_max_delay_seconds: float = 3.0

    @classmethod
    def from_env(cls) -> "WorkflowSettings":
        return cls(
            review_window=timedelta(
                minutes=float(os.getenv("REVIEW_WINDOW_MINUTES", "30"))
            ),
            payment_window=timedelta(
                minutes=float(os.getenv("PAYMENT_WINDOW_MINUTES", "60"))
            ),
            payment_success_rate=float(os.getenv("PAYMENT_SUCCESS_RATE", "0.90")),
            notification_success_rate=float(
                os.getenv("NOTIFICATION_SUCCESS_RATE", "0.95")
            ),
            payment_min_delay_seconds=float(
                os.getenv("PAYMENT_MIN_DELAY_SECONDS", "1.0")
            ),
            payment_max_delay_seconds=float(
                os.getenv("PAYMENT_MAX_DELAY_SECONDS", "3.0")
            ),
        )


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format=LOG_FORMAT,
    )
