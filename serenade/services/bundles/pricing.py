"""
Server-side price table (minor units, GBP) and pure validators.
Checkout always charges the amount from this table; the validators are a second check
that the amount about to be charged still matches it.
"""
from dataclasses import dataclass

BASE_PRICE = 799
UPSELL_PRICE = 99
TWEAK_PRICE = 99


@dataclass(frozen=True)
class BundleTier:
    id: str
    name: str
    quantity: int
    price: int
    popular: bool = False

    @property
    def per_song_price(self) -> int:
        return round(self.price / self.quantity)

    @property
    def savings(self) -> int:
        """Saving against buying the same number of songs one by one."""
        return BASE_PRICE * self.quantity - self.price


BUNDLE_TIERS: tuple[BundleTier, ...] = (
    BundleTier(id="3-pack", name="3 Songs", quantity=3, price=1999),
    BundleTier(id="5-pack", name="5 Songs", quantity=5, price=2999, popular=True),
    BundleTier(id="10-pack", name="10 Songs", quantity=10, price=4999),
)

_TIERS_BY_ID = {tier.id: tier for tier in BUNDLE_TIERS}


def get_bundle_tier(tier_id: str | None) -> BundleTier | None:
    if not tier_id:
        return None
    return _TIERS_BY_ID.get(tier_id)


def validate_tweak_price(amount: int) -> bool:
    return amount == TWEAK_PRICE


def validate_upsell_price(amount: int) -> bool:
    return amount == UPSELL_PRICE


def validate_bundle_price(tier_id: str, amount: int) -> bool:
    tier = get_bundle_tier(tier_id)
    if tier is None:
        return False
    return amount == tier.price
