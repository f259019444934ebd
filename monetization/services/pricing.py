from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from monetization.core.settings import S
from monetization.errors import InvalidAmount, UnknownMode

# (action, pack) -> (unit price in cents, credits granted)
PRICE_TABLE: Dict[Tuple[str, bool], Tuple[int, int]] = {
    ("tip", False): (200, 1),
    ("tip", True): (2000, 10),
    ("boost", False): (500, 1),
    ("boost", True): (5000, 10),
    ("spin", False): (100, 1),
    ("spin", True): (2000, 20),
    ("reaction", False): (100, 1),
    ("vote", False): (100, 1),
}

PRODUCT_NAMES = {
    "tip": "Creator tip",
    "boost": "Post boost",
    "spin": "Spinner spin",
    "reaction": "Paid reaction",
    "vote": "Paid vote",
}

# Support ledger kind recorded for each action
LEDGER_KIND = {
    "tip": "TIP",
    "boost": "BOOST",
    "spin": "SPIN",
    "reaction": "REACTION",
    "vote": "VOTE",
}


@dataclass(frozen=True)
class ModeInfo:
    mode: str
    action: str
    pack: bool
    amount_cents: int
    units: int

    @property
    def product_name(self) -> str:
        name = PRODUCT_NAMES[self.action]
        return f"{name} pack ({self.units})" if self.pack else name

    @property
    def ledger_kind(self) -> str:
        return LEDGER_KIND[self.action]


def parse_mode(mode: str) -> Tuple[str, bool]:
    raw = (mode or "").strip().lower()
    action, pack = (raw[: -len("-pack")], True) if raw.endswith("-pack") else (raw, False)
    if (action, pack) not in PRICE_TABLE:
        raise UnknownMode(f"Unknown checkout mode: {mode!r}")
    return action, pack


def resolve_mode(mode: str, amount_cents: Optional[int] = None) -> ModeInfo:
    """Price a checkout mode. Only a single tip may carry a client-chosen amount."""
    action, pack = parse_mode(mode)
    unit_amount, units = PRICE_TABLE[(action, pack)]
    if amount_cents is not None and action == "tip" and not pack:
        amount = int(amount_cents)
        if amount < S.custom_amount_min_cents or amount > S.custom_amount_max_cents:
            raise InvalidAmount(
                f"Tip amount must be between {S.custom_amount_min_cents} and {S.custom_amount_max_cents} cents",
            )
        unit_amount = amount
    return ModeInfo(mode=f"{action}-pack" if pack else action, action=action, pack=pack, amount_cents=unit_amount, units=units)


def split_gross(gross_cents: int) -> Tuple[int, int]:
    """Split gross into (creator_cents, platform_cents), rounding the creator share half-up."""
    gross = max(0, int(gross_cents))
    creator = (gross * S.creator_share_bps + 5000) // 10000
    return creator, gross - creator
