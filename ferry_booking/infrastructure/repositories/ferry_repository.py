# ferry_booking/infrastructure/repositories/ferry_repository.py

import zlib
from datetime import date

from sqlalchemy import select, text
from sqlalchemy.orm import Session

from ferry_booking.domain.enums import FerryStatus
from ferry_booking.infrastructure.db.models import Ferry


class FerryRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, ferry_id: str) -> Ferry | None:
        stmt = select(Ferry).where(Ferry.id == ferry_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_name(self, name: str) -> Ferry | None:
        stmt = select(Ferry).where(Ferry.name == name)
        return self.db.execute(stmt).scalar_one_or_none()

    def create_ferry(
        self,
        name: str,
        capacity_vehicles: int,
        capacity_passengers: int,
        status: FerryStatus = FerryStatus.ACTIVE,
    ) -> Ferry:
        ferry = Ferry(
            name=name,
            capacity_vehicles=capacity_vehicles,
            capacity_passengers=capacity_passengers,
            status=status,
        )
        self.db.add(ferry)
        return ferry

    def lock_sailing(self, ferry_id: str, day: date) -> None:
        """
        pg_advisory_xact_lock on the (ferry, day) key.
        Serializes admissions across processes until the transaction ends.
        Other backends rely on the in-process keyed lock alone.
        """
        if self.db.get_bind().dialect.name != "postgresql":
            return

        key = zlib.crc32(f"{ferry_id}:{day.isoformat()}".encode("utf-8"))
        self.db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": key})
