from __future__ import annotations

from typing import Any, Dict

from botocore.exceptions import ClientError

from monetization.core.tables import T
from monetization.core.time import now_ts
from monetization.errors import InsufficientCredit, UnknownMode
from monetization.metrics import record_grant, record_spend
from monetization.services.audit import audit_event
from monetization.services.ddb import ddb_get, increment_fields, is_conditional_failure, put_new_with_increment, user_pk

CREDITS_SK = "CREDITS"

# Spend kind -> balance attribute. Reactions and votes are paid with tip credits.
CREDIT_FIELDS = {
    "tip": "tips",
    "boost": "boosts",
    "spin": "spins",
    "reaction": "tips",
    "vote": "tips",
}
GRANT_KINDS = ("tip", "boost", "spin")


def _credit_field(kind: str) -> str:
    field = CREDIT_FIELDS.get((kind or "").strip().lower())
    if not field:
        raise UnknownMode(f"Unknown credit kind: {kind!r}")
    return field


def _balance_out(email: str, item: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "email": email,
        "tips": int(item.get("tips", 0) or 0),
        "boosts": int(item.get("boosts", 0) or 0),
        "spins": int(item.get("spins", 0) or 0),
    }


def get_balance(email: str) -> Dict[str, Any]:
    item = ddb_get(T.credits, user_pk(email), CREDITS_SK) or {}
    return _balance_out(email, item)


def spend(email: str, kind: str) -> Dict[str, Any]:
    """Consume one credit of ``kind`` with a single conditional decrement.

    Raises InsufficientCredit when the counter is missing or already zero; the
    balance is never read before the write.
    """
    field = _credit_field(kind)
    try:
        resp = T.credits.update_item(
            Key={"pk": user_pk(email), "sk": CREDITS_SK},
            UpdateExpression="SET #f = #f - :one, #u = :t",
            ConditionExpression="#f > :zero",
            ExpressionAttributeNames={"#f": field, "#u": "updated_at"},
            ExpressionAttributeValues={":one": 1, ":zero": 0, ":t": now_ts()},
            ReturnValues="ALL_NEW",
        )
    except ClientError as exc:
        if is_conditional_failure(exc):
            record_spend(kind, "insufficient")
            raise InsufficientCredit(f"No {field} credits available", email=email, kind=kind) from exc
        raise
    record_spend(kind, "success")
    audit_event("credit_spend", email, kind=kind, field=field)
    return _balance_out(email, (resp or {}).get("Attributes") or {})


def refund(email: str, kind: str) -> Dict[str, Any]:
    """Return a credit taken by ``spend`` when the funded action could not be recorded."""
    field = _credit_field(kind)
    item = increment_fields(T.credits, user_pk(email), CREDITS_SK, {field: 1}, ts=now_ts())
    audit_event("credit_refund", email, kind=kind, field=field)
    return _balance_out(email, item)


def grant(email: str, kind: str, amount: int, *, dedupe_key: str) -> Dict[str, Any]:
    """Add ``amount`` credits of ``kind``; repeated calls with one ``dedupe_key`` grant once.

    The grant marker and the balance increment commit together, so a failed
    call leaves no marker behind and the redelivered event grants in full.
    """
    if kind not in GRANT_KINDS:
        raise UnknownMode(f"Credits cannot be granted for {kind!r}")
    if amount <= 0:
        raise ValueError("grant amount must be positive")
    field = _credit_field(kind)
    pk = user_pk(email)
    ts = now_ts()

    marker = {"pk": pk, "sk": f"GRANT#{dedupe_key}", "kind": kind, "amount": int(amount), "created_at": ts}
    if not put_new_with_increment(T.credits, marker, CREDITS_SK, {field: int(amount)}, ts=ts):
        audit_event("credit_grant", email, outcome="duplicate", kind=kind, dedupe_key=dedupe_key)
        return get_balance(email)

    record_grant(kind, int(amount))
    audit_event("credit_grant", email, kind=kind, amount=int(amount), dedupe_key=dedupe_key)
    return get_balance(email)
