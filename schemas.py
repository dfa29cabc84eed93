import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class CategoryIn(_ApiModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)


class CategoryOut(_ApiModel):
    id: int
    name: str


class MovementIn(_ApiModel):
    operation_date: datetime
    value_date: datetime
    # zero is allowed here; creation rejects it, updates do not
    amount: Decimal = Field(..., max_digits=18, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=500)
    category_id: int


class MovementOut(_ApiModel):
    id: uuid.UUID
    operation_date: datetime
    value_date: datetime
    amount: Decimal
    description: str
    category_id: int
    category: CategoryOut


class MovementPage(_ApiModel):
    total_count: int
    page: int
    page_size: int
    total_pages: int
    items: list[MovementOut] = Field(default_factory=list)


class MovementSummary(_ApiModel):
    total_movements: int
    total_income: Decimal
    total_expenses: Decimal
