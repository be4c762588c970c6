# src/infrastructure/repositories/hall_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import select

from src.infrastructure.db.models import Event, Hall


class HallRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, hall_id: str) -> Hall | None:
        stmt = select(Hall).where(Hall.id == hall_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_halls(self) -> list[Hall]:
        stmt = select(Hall).order_by(Hall.name)
        return list(self.db.execute(stmt).scalars().all())

    def create_hall(
        self,
        name: str,
        capacity: int,
        hall_type: str,
        hall_id: str | None = None,
    ) -> Hall:
        hall = Hall(name=name, capacity=capacity, type=hall_type)
        if hall_id:
            hall.id = hall_id
        self.db.add(hall)
        self.db.flush()
        return hall

    def is_in_use(self, hall_id: str) -> bool:
        stmt = select(Event.id).where(Event.hall_id == hall_id).limit(1)
        return self.db.execute(stmt).first() is not None

    def delete(self, hall: Hall) -> None:
        self.db.delete(hall)
        self.db.flush()
