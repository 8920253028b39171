from pydantic import Field

from serenade.schemas.base import CamelModel


class CheckoutRequest(CamelModel):
    customization_id: str = Field(min_length=1)


class BundleCheckoutRequest(CamelModel):
    tier_id: str = Field(min_length=1)


class TweakFields(CamelModel):
    special_memories: str = Field(default="", max_length=500)
    things_to_avoid: str = Field(default="", max_length=300)
    pronunciation: str = Field(default="", max_length=100)


class TweakCheckoutRequest(TweakFields):
    order_id: str = Field(min_length=1)


class UpsellCheckoutRequest(CamelModel):
    order_id: str = Field(min_length=1)


class TweakRequest(TweakFields):
    order_id: str = Field(min_length=1)


class CheckoutResponse(CamelModel):
    url: str
    order_id: str | None = None
    credit_redeemed: bool = False
