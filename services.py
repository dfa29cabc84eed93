from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, contains_eager, joinedload

from config import Settings, get_settings
from models import Category, Movement, cents_to_decimal, decimal_to_cents
from schemas import CategoryIn, MovementIn, MovementOut, MovementPage, MovementSummary


logger = logging.getLogger(__name__)


class MovementsError(Exception):
    """Base class for failures surfaced to the transport layer.

    ``kind`` is one of NotFound, ValidationFailed, Conflict or Internal.
    """

    kind = "Internal"


class NotFoundError(MovementsError):
    kind = "NotFound"


class ValidationFailedError(MovementsError, ValueError):
    kind = "ValidationFailed"


class ConflictError(MovementsError):
    kind = "Conflict"


class InternalError(MovementsError):
    kind = "Internal"


def commit_or_raise(session: Session, conflict_message: Optional[str] = None) -> None:
    """Commit the session or roll it back and raise a typed error.

    Integrity violations become ConflictError when ``conflict_message`` is
    given; every other store failure becomes InternalError.
    """
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        if conflict_message is None:
            raise InternalError(f"Internal server error: {exc.orig}") from exc
        raise ConflictError(conflict_message) from exc
    except SQLAlchemyError as exc:
        session.rollback()
        raise InternalError(f"Internal server error: {exc}") from exc


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass
class MovementFilters:
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    category_id: Optional[int] = None

    def conditions(self) -> list:
        # Shared by listing and summary so both always see the same rows.
        clauses = []
        if self.start_date is not None:
            clauses.append(Movement.operation_date >= to_naive_utc(self.start_date))
        if self.end_date is not None:
            clauses.append(Movement.operation_date <= to_naive_utc(self.end_date))
        if self.category_id is not None:
            clauses.append(Movement.category_id == self.category_id)
        return clauses


NEWEST_FIRST = (Movement.operation_date.desc(), Movement.id.desc())

# largest value a signed 64-bit OFFSET/LIMIT accepts
MAX_SQL_INT = 2**63 - 1


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Category]:
        stmt = select(Category).order_by(Category.name, Category.id)
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category:
            raise NotFoundError(f"Category with ID {category_id} not found.")
        return category

    def exists(self, category_id: int) -> bool:
        stmt = select(Category.id).where(Category.id == category_id)
        return self.session.scalar(stmt) is not None

    def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        category = Category(name=name)
        self.session.add(category)
        commit_or_raise(
            self.session, f"Category with name '{name}' already exists."
        )
        self.session.refresh(category)
        logger.info(f"category_created: id={category.id}")
        return category

    def update(self, category_id: int, data: CategoryIn) -> Category:
        category = self.get(category_id)
        name = data.name.strip()
        category.name = name
        commit_or_raise(
            self.session, f"Category with name '{name}' already exists."
        )
        self.session.refresh(category)
        logger.info(f"category_renamed: id={category_id}")
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        if MovementService(self.session).exists_for_category(category_id):
            raise ConflictError(
                "Cannot delete category because it is associated with existing movements."
            )
        self.session.delete(category)
        # a movement inserted concurrently still trips the RESTRICT foreign key
        commit_or_raise(
            self.session,
            "Cannot delete category because it is associated with existing movements.",
        )
        logger.info(f"category_deleted: id={category_id}")


class MovementService:
    def __init__(self, session: Session, settings: Optional[Settings] = None) -> None:
        self.session = session
        self.settings = settings or get_settings()

    def _page_size(self, page_size: Optional[int]) -> int:
        if page_size is None:
            page_size = self.settings.default_page_size
        if page_size < 1:
            raise ValidationFailedError("pageSize must be at least 1.")
        if page_size > MAX_SQL_INT:
            raise ValidationFailedError(f"pageSize must be at most {MAX_SQL_INT}.")
        max_page_size = self.settings.max_page_size
        if max_page_size is not None:
            page_size = min(page_size, max_page_size)
        return page_size

    def list(
        self,
        filters: MovementFilters,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> MovementPage:
        if page < 1:
            raise ValidationFailedError("page must be at least 1.")
        page_size = self._page_size(page_size)
        if (page - 1) * page_size > MAX_SQL_INT:
            raise ValidationFailedError(
                f"page {page} is out of range for pageSize {page_size}."
            )
        conditions = filters.conditions()

        total_count = self.session.execute(
            select(func.count(Movement.id)).where(*conditions)
        ).scalar_one()

        stmt = (
            select(Movement)
            .options(joinedload(Movement.category))
            .where(*conditions)
            .order_by(*NEWEST_FIRST)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        movements = self.session.scalars(stmt).all()

        return MovementPage(
            total_count=total_count,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total_count / page_size),
            items=[MovementOut.model_validate(m) for m in movements],
        )

    def list_by_category_name(self, name: str) -> list[Movement]:
        stmt = (
            select(Movement)
            .join(Movement.category)
            .options(contains_eager(Movement.category))
            .where(func.lower(Category.name) == name.strip().lower())
            .order_by(*NEWEST_FIRST)
        )
        movements = self.session.scalars(stmt).all()
        if not movements:
            raise NotFoundError(f"No movements found for category: {name}")
        return movements

    def summary(self, filters: MovementFilters) -> MovementSummary:
        income = func.coalesce(
            func.sum(
                case((Movement.amount_cents > 0, Movement.amount_cents), else_=0)
            ),
            0,
        )
        expenses = func.coalesce(
            func.sum(
                case((Movement.amount_cents < 0, Movement.amount_cents), else_=0)
            ),
            0,
        )
        row = self.session.execute(
            select(
                func.count(Movement.id).label("total"),
                income.label("income"),
                expenses.label("expenses"),
            ).where(*filters.conditions())
        ).one()
        return MovementSummary(
            total_movements=int(row.total or 0),
            total_income=cents_to_decimal(int(row.income)),
            total_expenses=cents_to_decimal(abs(int(row.expenses))),
        )

    def get(self, movement_id: uuid.UUID) -> Movement:
        stmt = (
            select(Movement)
            .options(joinedload(Movement.category))
            .where(Movement.id == movement_id)
            .execution_options(populate_existing=True)
        )
        movement = self.session.scalar(stmt)
        if not movement:
            raise NotFoundError(f"Movement with Id {movement_id} not found.")
        return movement

    def exists_for_category(self, category_id: int) -> bool:
        stmt = select(Movement.id).where(Movement.category_id == category_id).limit(1)
        return self.session.scalar(stmt) is not None

    def _require_category(self, category_id: int) -> None:
        if not CategoryService(self.session).exists(category_id):
            raise ValidationFailedError(
                f"Category with ID {category_id} does not exist."
            )

    def create(self, data: MovementIn) -> Movement:
        if data.amount == 0:
            raise ValidationFailedError("Amount cannot be zero.")
        self._require_category(data.category_id)

        movement = Movement(
            id=uuid.uuid4(),
            operation_date=to_naive_utc(data.operation_date),
            value_date=to_naive_utc(data.value_date),
            amount_cents=decimal_to_cents(data.amount),
            description=data.description,
            category_id=data.category_id,
        )
        self.session.add(movement)
        commit_or_raise(self.session)
        logger.info(
            f"movement_created: id={movement.id} category_id={data.category_id}"
        )
        return self.get(movement.id)

    def update(self, movement_id: uuid.UUID, data: MovementIn) -> Movement:
        movement = self.get(movement_id)
        # an unchanged category is not re-checked
        if data.category_id != movement.category_id:
            self._require_category(data.category_id)

        movement.operation_date = to_naive_utc(data.operation_date)
        movement.value_date = to_naive_utc(data.value_date)
        movement.amount_cents = decimal_to_cents(data.amount)
        movement.description = data.description
        movement.category_id = data.category_id

        commit_or_raise(self.session)
        logger.info(f"movement_updated: id={movement_id}")
        return self.get(movement_id)

    def delete(self, movement_id: uuid.UUID) -> None:
        movement = self.get(movement_id)
        self.session.delete(movement)
        commit_or_raise(self.session)
        logger.info(f"movement_deleted: id={movement_id}")
