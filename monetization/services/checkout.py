from __future__ import annotations

import uuid
from typing import Any, Dict, Optional

import stripe

from monetization.core.normalize import safe_return_path
from monetization.core.settings import S
from monetization.errors import ActionDisabled, ActionLimitReached, MonetizationError, NoBillingAccount, NotConfigured
from monetization.metrics import record_checkout
from monetization.services import support_ledger
from monetization.services.audit import audit_event
from monetization.services.pricing import resolve_mode
from monetization.services.processor import ensure_stripe_configured, processor_call
from monetization.services.profiles import require_profile, set_processor_customer
from monetization.services.verification import check_tier_change


def _return_url(path: str, **params: str) -> str:
    sep = "&" if "?" in path else "?"
    query = "&".join(f"{k}={v}" for k, v in params.items())
    return f"{S.public_base_url}{path}{sep}{query}"


def build(
    mode: str,
    creator_email: str,
    viewer_email: str,
    target_id: Optional[str] = None,
    source: Optional[str] = None,
    return_path: Optional[str] = None,
    amount_cents: Optional[int] = None,
) -> Dict[str, str]:
    """Create a hosted payment session for a support action or credit pack.

    The amount comes from the price table (or the bounded custom tip amount)
    and everything the reconciler needs travels in the session metadata.
    Nothing is written locally; the ledger only changes once the processor
    confirms payment.
    """
    try:
        info = resolve_mode(mode, amount_cents)
        ensure_stripe_configured()

        src = support_ledger.normalize_source(source)
        kind = info.ledger_kind
        if info.pack:
            target = (target_id or "").strip()
        else:
            target = support_ledger.normalize_target(kind, target_id, creator_email)
            if kind == "REACTION" and not S.paid_reactions_enabled:
                raise ActionDisabled("Paid reactions are disabled")
            if kind == "VOTE" and not S.paid_votes_enabled:
                raise ActionDisabled("Paid votes are disabled")
            # Advisory only; the slot is claimed when the payment is reconciled.
            if support_ledger.cap_reached(kind, viewer_email, target):
                raise ActionLimitReached(f"{kind.title()} limit reached for this target", viewer=viewer_email)

        path = safe_return_path(return_path, S.default_return_path)
        payment_type = f"{info.mode}:{uuid.uuid4().hex}"
        metadata = {
            "purpose": "support",
            "mode": info.mode,
            "action": info.action,
            "pack": "1" if info.pack else "0",
            "units": str(info.units),
            "source": src,
            "target_id": target,
            "creator_email": creator_email,
            "viewer_email": viewer_email,
            "payment_type": payment_type,
        }

        with processor_call("checkout session create"):
            session = stripe.checkout.Session.create(
                mode="payment",
                success_url=_return_url(path, payment="success", mode=info.mode),
                cancel_url=_return_url(path, payment="cancelled", mode=info.mode),
                customer_email=viewer_email,
                client_reference_id=viewer_email,
                line_items=[
                    {
                        "quantity": 1,
                        "price_data": {
                            "currency": S.default_currency,
                            "unit_amount": info.amount_cents,
                            "product_data": {"name": info.product_name},
                        },
                    }
                ],
                metadata=metadata,
                payment_intent_data={"metadata": metadata},
                idempotency_key=payment_type,
            )
    except MonetizationError as exc:
        record_checkout((mode or "").strip().lower() or "unknown", exc.code)
        raise

    record_checkout(info.mode, "created")
    audit_event(
        "checkout_session_created",
        viewer_email,
        mode=info.mode,
        creator=creator_email,
        target_id=target,
        amount_cents=info.amount_cents,
        session_id=session["id"],
    )
    return {"session_id": session["id"], "url": session["url"]}


def _price_id_for(tier: str) -> str:
    price_id = S.stripe_gold_tick_price_id if tier == "gold" else S.stripe_blue_tick_price_id
    if not price_id:
        raise NotConfigured(f"No processor price configured for the {tier} tier")
    return price_id


def _customer_for(profile: Dict[str, Any]) -> str:
    if profile["processor_customer_id"]:
        return profile["processor_customer_id"]
    email = profile["email"]
    with processor_call("customer create"):
        customer = stripe.Customer.create(
            email=email,
            metadata={"creator_email": email},
            idempotency_key=f"creator-customer:{email}",
        )
    set_processor_customer(email, customer["id"])
    return customer["id"]


def build_verification(creator_email: str, tier: Optional[str]) -> Dict[str, str]:
    """Start a subscription checkout for a verification tier."""
    profile = require_profile(creator_email)
    tier = check_tier_change(profile, tier)
    price_id = _price_id_for(tier)
    ensure_stripe_configured()
    customer_id = _customer_for(profile)

    metadata = {"purpose": "verification", "tier": tier, "creator_email": creator_email}
    with processor_call("verification session create"):
        session = stripe.checkout.Session.create(
            mode="subscription",
            customer=customer_id,
            client_reference_id=creator_email,
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=f"{S.public_base_url}/creator/verification?verification=success",
            cancel_url=f"{S.public_base_url}/creator/verification?verification=cancelled",
            metadata=metadata,
            subscription_data={"metadata": metadata},
        )
    record_checkout(f"verification-{tier}", "created")
    audit_event("verification_checkout_created", creator_email, tier=tier, session_id=session["id"])
    return {"session_id": session["id"], "url": session["url"]}


def build_portal(creator_email: str) -> Dict[str, str]:
    """Open a billing-portal session where the creator manages or cancels verification."""
    profile = require_profile(creator_email)
    customer_id = profile["processor_customer_id"]
    if not customer_id:
        raise NoBillingAccount("No billing account yet; complete a verification checkout first", email=creator_email)
    ensure_stripe_configured()

    params: Dict[str, Any] = {"customer": customer_id, "return_url": f"{S.public_base_url}/creator"}
    if S.stripe_billing_portal_configuration_id:
        params["configuration"] = S.stripe_billing_portal_configuration_id
    with processor_call("billing portal session create"):
        session = stripe.billing_portal.Session.create(**params)
    audit_event("billing_portal_opened", creator_email, customer_id=customer_id)
    return {"url": session["url"]}
