"""Processor webhook reconciliation.

Events arrive at least once and in any order. Three guards make processing
effective exactly once:

* the event id is claimed before dispatch (and released if dispatch fails,
  so the processor's redelivery is processed again);
* every ledger mutation is keyed by the checkout session id;
* every profile mutation is a whole snapshot guarded by the event timestamp.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Optional

import stripe

from monetization.core.normalize import normalize_optional_email
from monetization.core.settings import S
from monetization.core.tables import T
from monetization.core.time import now_ts
from monetization.errors import ActionLimitReached, InvalidSignature, InvalidTarget, ProfileNotFound, UnknownMode
from monetization.metrics import record_webhook
from monetization.services import credits, payout, support_ledger, targets, verification
from monetization.services.ddb import ddb_del, ddb_put_new, with_ttl
from monetization.services.pricing import resolve_mode

log = logging.getLogger(__name__)

EVENT_PK = "STRIPE_EVENT"


def verify(raw_body: bytes, signature: Optional[str], secret: Optional[str]) -> Dict[str, Any]:
    if not secret:
        raise InvalidSignature("Webhook secret is not configured")
    if not signature:
        raise InvalidSignature("Missing Stripe-Signature header")
    try:
        payload = raw_body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidSignature("Webhook body is not valid UTF-8") from exc
    try:
        stripe.WebhookSignature.verify_header(payload, signature, secret, S.stripe_webhook_tolerance_seconds)
    except stripe.SignatureVerificationError as exc:
        raise InvalidSignature(f"Signature verification failed: {exc}") from exc
    try:
        event = json.loads(payload)
    except ValueError as exc:
        raise InvalidSignature("Webhook body is not valid JSON") from exc
    if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
        raise InvalidSignature("Webhook body is not an event")
    return event


def claim_event(event_id: str, event_type: str) -> bool:
    ts = now_ts()
    item = with_ttl(
        {"pk": EVENT_PK, "sk": event_id, "type": event_type, "ts": ts},
        ttl_epoch=ts + 60 * 60 * 24 * S.processed_event_ttl_days,
    )
    return ddb_put_new(T.webhook_events, item)


def release_event(event_id: str) -> None:
    ddb_del(T.webhook_events, EVENT_PK, event_id)


def handle(raw_body: bytes, signature: Optional[str]) -> Dict[str, Any]:
    event = verify(raw_body, signature, S.stripe_webhook_secret)
    event_id, event_type = event["id"], event["type"]

    if not claim_event(event_id, event_type):
        record_webhook(event_type, "duplicate")
        return {"received": True, "deduped": True}

    try:
        outcome = dispatch(event)
    except Exception:
        log.error("webhook %s (%s) failed; releasing claim for redelivery", event_id, event_type, exc_info=True)
        release_event(event_id)
        record_webhook(event_type, "error")
        raise

    record_webhook(event_type, outcome)
    return {"received": True, "outcome": outcome}


def _obj(event: Dict[str, Any]) -> Dict[str, Any]:
    return ((event.get("data") or {}).get("object")) or {}


def _created(event: Dict[str, Any]) -> int:
    return int(event.get("created") or now_ts())


def _on_checkout_completed(event: Dict[str, Any]) -> str:
    session = _obj(event)
    meta = session.get("metadata") or {}
    purpose = meta.get("purpose")

    if purpose == "verification":
        email = normalize_optional_email(meta.get("creator_email"))
        if not email:
            log.warning("verification checkout %s has no creator_email", session.get("id"))
            return "skipped"
        applied = verification.mark_checkout_started(
            email,
            meta.get("tier"),
            customer_id=session.get("customer"),
            subscription_id=session.get("subscription"),
            snapshot_ts=_created(event),
        )
        return "applied" if applied else "stale"

    if purpose != "support":
        return "ignored"
    if session.get("payment_status") != "paid":
        return "unpaid"

    session_id = session["id"]
    viewer = normalize_optional_email(meta.get("viewer_email") or (session.get("customer_details") or {}).get("email"))
    if not viewer:
        log.warning("support checkout %s has no viewer email", session_id)
        return "skipped"
    try:
        info = resolve_mode(meta.get("mode", ""))
    except UnknownMode:
        log.warning("support checkout %s has unknown mode %r", session_id, meta.get("mode"))
        return "skipped"

    if info.pack:
        credits.grant(viewer, info.action, info.units, dedupe_key=session_id)
        return "granted"

    creator = normalize_optional_email(meta.get("creator_email"))
    if not creator:
        log.warning("support checkout %s has no creator_email", session_id)
        return "skipped"
    try:
        entry = support_ledger.record_paid_action(
            creator,
            viewer,
            info.ledger_kind,
            meta.get("source"),
            meta.get("target_id"),
            1,
            gross_cents=int(session.get("amount_total") or info.amount_cents),
            currency=session.get("currency") or S.default_currency,
            payment_ref=session_id,
        )
    except ActionLimitReached:
        # One tip credit funds one reaction or vote.
        credits.grant(viewer, "tip", 1, dedupe_key=session_id)
        log.warning("paid %s from %s over cap; session %s converted to a tip credit", info.action, viewer, session_id)
        return "credited"
    except InvalidTarget:
        log.warning("support checkout %s has invalid target %r", session_id, meta.get("target_id"))
        return "skipped"

    if info.ledger_kind in targets.COUNTER_FIELDS:
        targets.increment(entry["target_id"], info.ledger_kind, dedupe_key=session_id)
    return "recorded"


def _invoice_subscription_meta(invoice: Dict[str, Any]) -> Dict[str, Any]:
    details = invoice.get("subscription_details") or ((invoice.get("parent") or {}).get("subscription_details")) or {}
    return details.get("metadata") or {}


def _invoice_period_end(invoice: Dict[str, Any]) -> Optional[int]:
    lines = ((invoice.get("lines") or {}).get("data")) or []
    for line in lines:
        end = (line.get("period") or {}).get("end")
        if end:
            return int(end)
    return None


def _on_invoice(event: Dict[str, Any], status: str) -> str:
    invoice = _obj(event)
    meta = _invoice_subscription_meta(invoice)
    email = normalize_optional_email(meta.get("creator_email"))
    if not email:
        log.warning("invoice %s has no creator_email in subscription metadata", invoice.get("id"))
        return "skipped"
    subscription = invoice.get("subscription")
    if isinstance(subscription, dict):
        subscription = subscription.get("id")
    applied = verification.apply_subscription_snapshot(
        email,
        status,
        meta.get("tier"),
        period_end=_invoice_period_end(invoice) if status == "active" else None,
        customer_id=invoice.get("customer"),
        subscription_id=subscription,
        snapshot_ts=_created(event),
    )
    return "applied" if applied else "stale"


def _subscription_period_end(sub: Dict[str, Any]) -> Optional[int]:
    end = sub.get("current_period_end")
    if not end:
        items = ((sub.get("items") or {}).get("data")) or []
        end = items[0].get("current_period_end") if items else None
    return int(end) if end else None


def _on_subscription(event: Dict[str, Any]) -> str:
    sub = _obj(event)
    meta = sub.get("metadata") or {}
    email = normalize_optional_email(meta.get("creator_email"))
    if not email:
        log.warning("subscription %s has no creator_email", sub.get("id"))
        return "skipped"
    if event["type"] == "customer.subscription.deleted":
        status = "canceled"
    else:
        status = verification.status_from_subscription(sub.get("status"))
    if not status:
        log.warning("subscription %s has unmapped status %r", sub.get("id"), sub.get("status"))
        return "skipped"
    applied = verification.apply_subscription_snapshot(
        email,
        status,
        meta.get("tier"),
        period_end=_subscription_period_end(sub),
        customer_id=sub.get("customer"),
        subscription_id=sub.get("id"),
        snapshot_ts=_created(event),
    )
    return "applied" if applied else "stale"


def _on_account_updated(event: Dict[str, Any]) -> str:
    account = _obj(event)
    email = normalize_optional_email((account.get("metadata") or {}).get("creator_email") or account.get("email"))
    if not email:
        log.warning("account %s has no creator email", account.get("id"))
        return "skipped"
    applied = payout.apply_account_snapshot(
        email,
        account["id"],
        bool(account.get("charges_enabled")),
        bool(account.get("payouts_enabled")),
        snapshot_ts=_created(event),
    )
    return "applied" if applied else "stale"


HANDLERS: Dict[str, Callable[[Dict[str, Any]], str]] = {
    "checkout.session.completed": _on_checkout_completed,
    "checkout.session.async_payment_succeeded": _on_checkout_completed,
    "invoice.paid": lambda e: _on_invoice(e, "active"),
    "invoice.payment_succeeded": lambda e: _on_invoice(e, "active"),
    "invoice.payment_failed": lambda e: _on_invoice(e, "past_due"),
    "customer.subscription.created": _on_subscription,
    "customer.subscription.updated": _on_subscription,
    "customer.subscription.deleted": _on_subscription,
    "account.updated": _on_account_updated,
}


def dispatch(event: Dict[str, Any]) -> str:
    """Apply one verified event and return a short outcome label."""
    handler = HANDLERS.get(event.get("type", ""))
    if handler is None:
        return "ignored"
    try:
        return handler(event)
    except ProfileNotFound as exc:
        log.warning("%s for unknown creator profile: %s", event["type"], exc)
        return "skipped"
