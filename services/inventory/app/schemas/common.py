from decimal import Decimal, ROUND_HALF_UP
from typing import Annotated

from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

CENTS = Decimal("0.01")


def to_money(value: Decimal) -> str:
    """Round to cents for presentation only; aggregation keeps full precision"""
    return str(Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP))


Money = Annotated[Decimal, PlainSerializer(to_money, return_type=str)]


class CamelRequest(BaseModel):
    """Request body accepting both camelCase and snake_case field names"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StoreRef(BaseModel):
    id: int
    name: str
