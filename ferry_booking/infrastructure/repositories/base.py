# ferry_booking/infrastructure/repositories/base.py

from sqlalchemy import update
from sqlalchemy.orm import Session


class StatusRepository:
    """
    Shared optimistic write for entities carrying a status column.
    """

    model = None

    def __init__(self, db: Session):
        self.db = db

    def compare_and_set_status(self, entity, expected, new_status, **values) -> bool:
        """
        UPDATE ... WHERE id = :id AND status = :expected

        Returns False when another writer moved the row first.
        The entity is refreshed either way so callers see the stored state.
        """
        stmt = (
            update(self.model)
            .where(self.model.id == entity.id)
            .where(self.model.status == expected)
            .values(status=new_status, **values)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.refresh(entity)
        return result.rowcount == 1
