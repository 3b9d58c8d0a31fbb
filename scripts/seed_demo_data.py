from sqlalchemy.orm import Session

from ferry_booking.domain.enums import FerryStatus
from ferry_booking.infrastructure.db.models import Ferry
from ferry_booking.infrastructure.db.session import get_db_session
from ferry_booking.infrastructure.repositories.ferry_repository import FerryRepository
from ferry_booking.main import init_db


FERRY_DEFS = [
    {
        "name": "MV Island Star",
        "capacity_vehicles": 40,
        "capacity_passengers": 300,
        "status": FerryStatus.ACTIVE,
    },
    {
        "name": "MV Harbour Runner",
        "capacity_vehicles": 12,
        "capacity_passengers": 120,
        "status": FerryStatus.ACTIVE,
    },
    {
        "name": "MV Old Pelican",
        "capacity_vehicles": 8,
        "capacity_passengers": 60,
        "status": FerryStatus.MAINTENANCE,
    },
]


def seed_ferries(db: Session) -> list[Ferry]:
    repository = FerryRepository(db)
    ferries = []

    for item in FERRY_DEFS:
        existing = repository.get_by_name(item["name"])
        if existing:
            existing.capacity_vehicles = item["capacity_vehicles"]
            existing.capacity_passengers = item["capacity_passengers"]
            existing.status = item["status"]
            ferries.append(existing)
            continue

        ferries.append(repository.create_ferry(**item))

    db.flush()
    return ferries


def main() -> None:
    init_db()
    with get_db_session() as db:
        ferries = seed_ferries(db)
    print(f"Seed complete: {', '.join(f.name for f in ferries)}.")


if __name__ == "__main__":
    main()
