import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


CENTS = Decimal("100")


def decimal_to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * CENTS).to_integral_value())


def cents_to_decimal(cents: int) -> Decimal:
    return (Decimal(cents) / CENTS).quantize(Decimal("0.01"))


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    movements: Mapped[list["Movement"]] = relationship(
        "Movement", back_populates="category", passive_deletes="all"
    )


class Movement(Base):
    __tablename__ = "movements"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    operation_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    value_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False
    )

    category: Mapped["Category"] = relationship(
        "Category", back_populates="movements"
    )

    __table_args__ = (
        Index("ix_movements_category_id", "category_id"),
        Index("ix_movements_operation_date", "operation_date"),
    )

    @property
    def amount(self) -> Decimal:
        return cents_to_decimal(self.amount_cents)

    @amount.setter
    def amount(self, value: Decimal) -> None:
        self.amount_cents = decimal_to_cents(value)
