from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import stripe

from monetization.core.settings import S
from monetization.core.time import now_ts
from monetization.services.audit import audit_event
from monetization.services.processor import ensure_stripe_configured, processor_call
from monetization.services.profiles import apply_snapshot, claim_payout_account, require_profile

log = logging.getLogger(__name__)

SNAPSHOT_TS_ATTR = "payout_snapshot_ts"


def derive_status(account_id: Optional[str], charges_enabled: bool, payouts_enabled: bool) -> str:
    if not account_id:
        return "not_started"
    if charges_enabled and payouts_enabled:
        return "complete"
    return "pending"


def apply_account_snapshot(
    email: str,
    account_id: str,
    charges_enabled: bool,
    payouts_enabled: bool,
    *,
    snapshot_ts: int,
) -> bool:
    status = derive_status(account_id, charges_enabled, payouts_enabled)
    applied = apply_snapshot(
        email,
        {
            "payout_account_id": account_id,
            "charges_enabled": bool(charges_enabled),
            "payouts_enabled": bool(payouts_enabled),
            "payout_onboarding_status": status,
        },
        ts_attr=SNAPSHOT_TS_ATTR,
        snapshot_ts=snapshot_ts,
    )
    if not applied:
        log.info("stale payout snapshot for %s ignored (ts=%s)", email, snapshot_ts)
    audit_event(
        "payout_snapshot",
        email,
        outcome="applied" if applied else "stale",
        account_id=account_id,
        status=status,
    )
    return applied


def _status_out(profile: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "email": profile["email"],
        "account_id": profile["payout_account_id"],
        "status": derive_status(profile["payout_account_id"], profile["charges_enabled"], profile["payouts_enabled"]),
        "charges_enabled": profile["charges_enabled"],
        "payouts_enabled": profile["payouts_enabled"],
    }


def get_payout_status(email: str, *, refresh: bool = False) -> Dict[str, Any]:
    """Read the payout state; ``refresh`` polls the processor and stores the result as a snapshot."""
    profile = require_profile(email)
    account_id = profile["payout_account_id"]
    if refresh and account_id:
        ensure_stripe_configured()
        with processor_call("account retrieve"):
            account = stripe.Account.retrieve(account_id)
        apply_account_snapshot(
            email,
            account_id,
            bool(account.get("charges_enabled")),
            bool(account.get("payouts_enabled")),
            snapshot_ts=now_ts(),
        )
        profile = require_profile(email)
    return _status_out(profile)


def start_onboarding(email: str) -> Dict[str, Any]:
    profile = require_profile(email)
    ensure_stripe_configured()
    account_id = profile["payout_account_id"]
    if not account_id:
        with processor_call("account create"):
            account = stripe.Account.create(
                type="express",
                country=S.stripe_connect_country,
                email=email,
                capabilities={"transfers": {"requested": True}},
                metadata={"creator_email": email},
                idempotency_key=f"connect-account:{email}",
            )
        account_id = account["id"]
        if not claim_payout_account(email, account_id):
            # A concurrent request attached an account first.
            winner = require_profile(email)["payout_account_id"]
            log.warning("payout account %s for %s superseded by %s", account_id, email, winner)
            account_id = winner
        else:
            audit_event("payout_account_created", email, account_id=account_id)

    with processor_call("account link create"):
        link = stripe.AccountLink.create(
            account=account_id,
            type="account_onboarding",
            refresh_url=f"{S.public_base_url}/creator/payouts?stripe=refresh",
            return_url=f"{S.public_base_url}/creator/payouts?stripe=return",
        )
    return {"url": link["url"], "account_id": account_id}
