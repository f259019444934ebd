from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, conint
from pydantic.alias_generators import to_camel

# One wire schema: camelCase in both directions. Requests accept only the
# camelCase names; responses are built from service dicts by field name.
class WireReq(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel)

class WireOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class SpendReq(WireReq):
    email: Optional[str] = None
    kind: str

class BalanceOut(WireOut):
    email: str
    tips: int = 0
    boosts: int = 0
    spins: int = 0

class SpendResp(WireOut):
    balance: BalanceOut

class CheckoutReq(WireReq):
    mode: str
    creator_email: str
    viewer_email: Optional[str] = None
    target_id: Optional[str] = None
    source: Optional[str] = None
    return_path: Optional[str] = None
    # Honoured for single tips only, within the configured bounds.
    amount_cents: Optional[conint(gt=0)] = None

class CheckoutResp(WireOut):
    redirect_url: str
    session_id: str

class VerificationCheckoutReq(WireReq):
    tier: str = "blue"

class PaidReactionReq(WireReq):
    post_id: str
    reaction: str
    creator_email: str
    source: Optional[str] = None

class PaidVoteReq(WireReq):
    target_id: str
    creator_email: str
    source: Optional[str] = None

class LedgerEntryOut(WireOut):
    id: str
    creator_email: str
    viewer_email: str
    kind: str
    source: str
    target_id: str
    units: int
    currency: Optional[str] = None
    gross_cents: int = 0
    creator_cents: int = 0
    platform_cents: int = 0
    created_at: int
    duplicate: bool = False

class PaidActionResp(WireOut):
    entry: LedgerEntryOut
    balance: BalanceOut

class ReactionCountsOut(WireOut):
    target_id: str
    counts: Dict[str, int] = Field(default_factory=dict)
    legacy_count: int = 0

class VerificationOut(WireOut):
    email: str
    status: str
    tier: Optional[str] = None
    current_period_end: Optional[int] = None
    is_verified: bool = False

class PayoutStatusOut(WireOut):
    email: str
    account_id: Optional[str] = None
    status: str
    charges_enabled: bool = False
    payouts_enabled: bool = False

class ProfileOut(WireOut):
    email: str
    verification_status: str
    verification_tier: Optional[str] = None
    verification_current_period_end: Optional[int] = None
    payout_onboarding_status: str
    charges_enabled: bool = False
    payouts_enabled: bool = False
    created_at: int = 0
    updated_at: int = 0

class RedirectResp(WireOut):
    url: str

class EarningOut(WireOut):
    entry_id: str
    kind: Optional[str] = None
    gross_cents: int = 0
    creator_cents: int = 0
    currency: Optional[str] = None
    created_at: int = 0

class EarningsOut(WireOut):
    creator_email: str
    lifetime_earned_cents: int = 0
    available_cents: int = 0
    recent: List[EarningOut] = Field(default_factory=list)

class WebhookResp(WireOut):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")
    received: bool = True
