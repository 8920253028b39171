from pydantic import Field

from serenade.schemas.base import CamelModel


class GenerateRequest(CamelModel):
    order_id: str | None = Field(default=None)


class GenerateResponse(CamelModel):
    status: str
    remaining: int
    variant_id: str | None = None
    variant_number: int | None = None
    chained: bool = False
