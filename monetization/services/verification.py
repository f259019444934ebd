from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from monetization.core.time import now_ts
from monetization.errors import TierDowngradeRejected
from monetization.services.audit import audit_event
from monetization.services.profiles import apply_snapshot, require_profile

log = logging.getLogger(__name__)

STATES = ("none", "pending", "active", "past_due", "canceled")
TIERS = ("blue", "gold")
VERIFIED_STATES = ("active", "past_due")

# Stripe subscription.status -> verification state
SUBSCRIPTION_STATUS_MAP = {
    "active": "active",
    "trialing": "active",
    "past_due": "past_due",
    "unpaid": "past_due",
    "canceled": "canceled",
    "incomplete_expired": "canceled",
    "incomplete": "pending",
    "paused": "pending",
}

SNAPSHOT_TS_ATTR = "verification_snapshot_ts"


def normalize_tier(tier: Optional[str]) -> str:
    return "gold" if (tier or "").strip().lower() == "gold" else "blue"


def status_from_subscription(status: Optional[str]) -> Optional[str]:
    return SUBSCRIPTION_STATUS_MAP.get((status or "").strip().lower())


def apply_subscription_snapshot(
    email: str,
    status: str,
    tier: Optional[str],
    *,
    period_end: Optional[int] = None,
    customer_id: Optional[str] = None,
    subscription_id: Optional[str] = None,
    snapshot_ts: int,
) -> bool:
    """Store the subscription state reported by the processor at ``snapshot_ts``.

    Snapshots older than the stored one are ignored (returns False). A
    canceled or none state always clears the tier. Cancellation wins a tie
    with any other snapshot from the same second, and a subscription seen as
    canceled never becomes active or past_due again.
    """
    if status not in STATES:
        raise ValueError(f"unknown verification state {status!r}")
    fields: Dict[str, Any] = {"verification_status": status}
    if status in ("none", "canceled"):
        fields["verification_tier"] = None
    elif tier:
        fields["verification_tier"] = normalize_tier(tier)
    if period_end is not None:
        fields["verification_current_period_end"] = int(period_end)
    if customer_id:
        fields["processor_customer_id"] = customer_id
    if subscription_id:
        fields["processor_subscription_id"] = subscription_id

    extra_condition = None
    tie_condition = None
    extra_values: Dict[str, Any] = {}
    if status != "canceled":
        tie_condition = "(attribute_not_exists(verification_status) OR verification_status <> :canceled)"
        extra_values[":canceled"] = "canceled"
        if subscription_id:
            extra_condition = "NOT (verification_status = :canceled AND processor_subscription_id = :sub)"
            extra_values[":sub"] = subscription_id

    applied = apply_snapshot(
        email,
        fields,
        ts_attr=SNAPSHOT_TS_ATTR,
        snapshot_ts=snapshot_ts,
        extra_condition=extra_condition,
        tie_condition=tie_condition,
        extra_values=extra_values,
    )
    if not applied:
        log.info("stale verification snapshot for %s ignored (ts=%s)", email, snapshot_ts)
    audit_event(
        "verification_snapshot",
        email,
        outcome="applied" if applied else "stale",
        status=status,
        tier=fields.get("verification_tier"),
        snapshot_ts=int(snapshot_ts),
    )
    return applied


def mark_checkout_started(
    email: str,
    tier: Optional[str],
    *,
    customer_id: Optional[str] = None,
    subscription_id: Optional[str] = None,
    snapshot_ts: int,
) -> bool:
    """Move to ``pending`` after a completed subscription checkout.

    Never overrides a creator who is already active or past_due; the invoice
    and subscription events own those states.
    """
    fields: Dict[str, Any] = {"verification_status": "pending", "verification_tier": normalize_tier(tier)}
    if customer_id:
        fields["processor_customer_id"] = customer_id
    if subscription_id:
        fields["processor_subscription_id"] = subscription_id
    applied = apply_snapshot(
        email,
        fields,
        ts_attr=SNAPSHOT_TS_ATTR,
        snapshot_ts=snapshot_ts,
        extra_condition="(attribute_not_exists(verification_status) OR (verification_status <> :active AND verification_status <> :past_due))",
        extra_values={":active": "active", ":past_due": "past_due"},
    )
    audit_event("verification_pending", email, outcome="applied" if applied else "skipped", tier=fields["verification_tier"])
    return applied


def _read_model(profile: Dict[str, Any], now: int) -> Dict[str, Any]:
    status = profile["verification_status"]
    tier = profile["verification_tier"]
    period_end = profile["verification_current_period_end"]
    if status == "canceled" and (period_end is None or period_end <= now):
        status, tier = "none", None
    return {
        "email": profile["email"],
        "status": status,
        "tier": tier if status != "canceled" else None,
        "current_period_end": period_end,
        "is_verified": status in VERIFIED_STATES,
    }


def get_verification(email: str) -> Dict[str, Any]:
    return _read_model(require_profile(email), now_ts())


def check_tier_change(profile: Dict[str, Any], requested_tier: Optional[str]) -> str:
    tier = normalize_tier(requested_tier)
    current = _read_model(profile, now_ts())
    if current["is_verified"] and current["tier"] == "gold" and tier == "blue":
        raise TierDowngradeRejected(
            "Gold verification cannot be downgraded to blue while the subscription is active",
            email=profile["email"],
        )
    return tier
