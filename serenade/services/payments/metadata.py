"""
Versioned schema for checkout session metadata.

Stripe metadata is a flat str -> str map. Everything the webhook needs to link a payment
to domain objects travels here, so it is written and read back through these models only.
"""
from typing import Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer

from serenade.models.order import (
    ORDER_TYPE_BASE,
    ORDER_TYPE_BUNDLE,
    ORDER_TYPE_TWEAK,
    ORDER_TYPE_UPSELL,
)
from serenade.services.errors import MetadataError

METADATA_VERSION = "1"
SUPPORTED_VERSIONS = frozenset({METADATA_VERSION})


class _Metadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    v: str = METADATA_VERSION
    user_id: str = Field(alias="userId", min_length=1)
    email: str = ""

    def to_stripe(self) -> dict[str, str]:
        data = self.model_dump(by_alias=True, exclude_none=True)
        return {k: str(v) for k, v in data.items()}


class BaseOrderMetadata(_Metadata):
    order_type: Literal["base"] = Field(default=ORDER_TYPE_BASE, alias="orderType")
    customization_id: str = Field(alias="customizationId", min_length=1)


class TweakOrderMetadata(_Metadata):
    order_type: Literal["tweak"] = Field(default=ORDER_TYPE_TWEAK, alias="orderType")
    customization_id: str = Field(alias="customizationId", min_length=1)
    original_order_id: str = Field(alias="originalOrderId", min_length=1)
    tweak_special_memories: str = Field(default="", alias="tweakSpecialMemories")
    tweak_things_to_avoid: str = Field(default="", alias="tweakThingsToAvoid")
    tweak_pronunciation: str = Field(default="", alias="tweakPronunciation")


class UpsellOrderMetadata(_Metadata):
    order_type: Literal["upsell"] = Field(default=ORDER_TYPE_UPSELL, alias="orderType")
    customization_id: str = Field(alias="customizationId", min_length=1)
    original_order_id: str = Field(alias="originalOrderId", min_length=1)
    variant_number: int = Field(default=4, alias="variantNumber", ge=1, le=4)

    @field_serializer("variant_number")
    def _serialize_variant_number(self, value: int) -> str:
        return str(value)


class BundleOrderMetadata(_Metadata):
    order_type: Literal["bundle"] = Field(default=ORDER_TYPE_BUNDLE, alias="orderType")
    bundle_tier: str = Field(alias="bundleTier", min_length=1)
    quantity: int = Field(ge=1)

    @field_serializer("quantity")
    def _serialize_quantity(self, value: int) -> str:
        return str(value)


CheckoutMetadata = Union[BaseOrderMetadata, TweakOrderMetadata, UpsellOrderMetadata, BundleOrderMetadata]

_MODELS: dict[str, type[_Metadata]] = {
    ORDER_TYPE_BASE: BaseOrderMetadata,
    ORDER_TYPE_TWEAK: TweakOrderMetadata,
    ORDER_TYPE_UPSELL: UpsellOrderMetadata,
    ORDER_TYPE_BUNDLE: BundleOrderMetadata,
}


def parse_checkout_metadata(raw: Mapping[str, Any] | None) -> CheckoutMetadata:
    """
    Validate metadata read back from a completed session.
    Missing "v" is read as version 1; missing "orderType" as a base order.
    Raises MetadataError on anything the webhook cannot act on.
    """
    if not raw:
        raise MetadataError("checkout metadata is empty")
    data = {k: v for k, v in dict(raw).items() if v is not None}
    version = str(data.get("v") or METADATA_VERSION)
    if version not in SUPPORTED_VERSIONS:
        raise MetadataError(f"unsupported metadata version: {version}")
    data["v"] = version

    order_type = data.get("orderType") or ORDER_TYPE_BASE
    model = _MODELS.get(order_type)
    if model is None:
        raise MetadataError(f"unknown orderType: {order_type}")
    data["orderType"] = order_type

    try:
        return model.model_validate(data)
    except ValidationError as e:
        missing = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        raise MetadataError(f"invalid {order_type} metadata: {', '.join(missing) or 'unknown field'}") from e
