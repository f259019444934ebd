from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

from monetization.core.normalize import split_target
from monetization.core.settings import S
from monetization.core.tables import T
from monetization.core.time import now_ts
from monetization.errors import ActionDisabled, ActionLimitReached, InsufficientCredit, InvalidTarget, UnknownMode
from monetization.metrics import record_ledger_entry
from monetization.services import credits
from monetization.services.audit import audit_event
from monetization.services.ddb import (
    creator_pk,
    ddb_del,
    ddb_get,
    ddb_put_new,
    ddb_query_pk,
    failed_conditions,
    transact_write,
    tx_increment,
    tx_put_new,
)
from monetization.services.pricing import LEDGER_KIND, split_gross

log = logging.getLogger(__name__)

KINDS = ("REACTION", "VOTE", "TIP", "BOOST", "SPIN")
SOURCES = ("FEED", "LIVE")
ALLOWED_REACTIONS = ("🔥", "❤️", "👏", "😂", "😮")

EARNINGS_SK = "EARNINGS"


def ulidish() -> str:
    return f"{int(now_ts() * 1000)}_{secrets.token_hex(8)}"


def normalize_kind(kind: str) -> str:
    k = (kind or "").strip().upper()
    if k not in KINDS:
        raise UnknownMode(f"Unknown support kind: {kind!r}")
    return k


def normalize_source(source: Optional[str]) -> str:
    s = (source or "").strip().upper()
    return s if s in SOURCES else "FEED"


def normalize_target(kind: str, target_id: Optional[str], creator_email: str) -> str:
    target = (target_id or "").strip()
    if kind == "REACTION":
        base, emoji = split_target(target)
        if not base or emoji not in ALLOWED_REACTIONS:
            raise InvalidTarget("Reactions need a target of the form <post>::<emoji> with an allowed emoji")
        return target
    if kind in ("VOTE", "BOOST") and not target:
        raise InvalidTarget(f"{kind.lower()} requires a target")
    return target or f"creator:{creator_email}"


def cap_for(kind: str) -> Optional[int]:
    if kind == "REACTION":
        return S.max_reactions_per_target
    if kind == "VOTE":
        return S.max_votes_per_target
    return None


def _entry_pk(target_id: str) -> str:
    base, _ = split_target(target_id)
    return f"TARGET#{base}"


def _cap_pk(kind: str, viewer_email: str, target_id: str) -> str:
    # Reactions are capped per post across every emoji; votes per exact target.
    cap_target = split_target(target_id)[0] if kind == "REACTION" else target_id
    return f"CAP#{kind}#{viewer_email}#{cap_target}"


def claim_slot(kind: str, viewer_email: str, target_id: str, payment_ref: Optional[str] = None) -> Optional[str]:
    """Reserve one of the ``cap`` sequence numbers for (viewer, target).

    Each slot is a unique key written with ``attribute_not_exists``; a conflict
    means another request won that sequence number and the next one is tried.
    A slot already held by ``payment_ref`` is reused. Returns None for uncapped
    kinds.
    """
    cap = cap_for(kind)
    if cap is None:
        return None
    pk = _cap_pk(kind, viewer_email, target_id)
    slots = ddb_query_pk(T.support_ledger, pk, sk_prefix="SLOT#")
    if payment_ref:
        for it in slots:
            if it.get("payment_ref") == payment_ref:
                return it["sk"]
    taken = {it["sk"] for it in slots}
    for n in range(cap):
        sk = f"SLOT#{n:04d}"
        if sk in taken:
            continue
        item = {"pk": pk, "sk": sk, "viewer_email": viewer_email, "target_id": target_id, "created_at": now_ts()}
        if payment_ref:
            item["payment_ref"] = payment_ref
        if ddb_put_new(T.support_ledger, item):
            return sk
    raise ActionLimitReached(f"{kind.title()} limit of {cap} reached for this target", viewer=viewer_email, target=target_id)


def cap_reached(kind: str, viewer_email: str, target_id: str) -> bool:
    cap = cap_for(kind)
    if cap is None:
        return False
    return len(ddb_query_pk(T.support_ledger, _cap_pk(kind, viewer_email, target_id), sk_prefix="SLOT#")) >= cap


def release_slot(kind: str, viewer_email: str, target_id: str, slot: Optional[str]) -> None:
    if slot:
        ddb_del(T.support_ledger, _cap_pk(kind, viewer_email, target_id), slot)


def _entry_out(item: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": item["entry_id"],
        "creator_email": item["creator_email"],
        "viewer_email": item["viewer_email"],
        "kind": item["kind"],
        "source": item["source"],
        "target_id": item["target_id"],
        "units": int(item.get("units", 1)),
        "currency": item.get("currency"),
        "gross_cents": int(item.get("gross_cents", 0)),
        "creator_cents": int(item.get("creator_cents", 0)),
        "platform_cents": int(item.get("platform_cents", 0)),
        "created_at": int(item.get("created_at", 0)),
    }


class EntryNotWritten(Exception):
    """The ledger entry write failed; nothing was appended."""


def _append_entry(
    creator_email: str,
    viewer_email: str,
    kind: str,
    source: str,
    target_id: str,
    units: int,
    *,
    gross_cents: int,
    currency: str,
    payment_ref: Optional[str],
    slot: Optional[str],
) -> Dict[str, Any]:
    ts = now_ts()
    entry_id = payment_ref or ulidish()
    creator_cents, platform_cents = split_gross(gross_cents)
    item = {
        "pk": _entry_pk(target_id),
        "sk": f"ENTRY#{entry_id}",
        "entry_id": entry_id,
        "creator_email": creator_email,
        "viewer_email": viewer_email,
        "kind": kind,
        "source": source,
        "target_id": target_id,
        "units": int(units),
        "currency": currency.upper(),
        "gross_cents": int(gross_cents),
        "creator_cents": creator_cents,
        "platform_cents": platform_cents,
        "created_at": ts,
    }
    if slot:
        item["cap_slot"] = slot
    writes = [tx_put_new(T.support_ledger, item)]
    if gross_cents > 0:
        writes.extend(_earning_writes(item))
    try:
        transact_write(T.support_ledger, writes)
    except ClientError as exc:
        if 0 not in failed_conditions(exc):
            release_slot(kind, viewer_email, target_id, slot)
            raise EntryNotWritten(str(exc)) from exc
        existing = ddb_get(T.support_ledger, item["pk"], item["sk"]) or item
        if existing.get("cap_slot") != slot:
            release_slot(kind, viewer_email, target_id, slot)
        out = _entry_out(existing)
        out["duplicate"] = True
        return out

    record_ledger_entry(kind, source)
    audit_event(
        "support_ledger_append",
        viewer_email,
        creator=creator_email,
        kind=kind,
        source=source,
        target_id=target_id,
        units=int(units),
        gross_cents=int(gross_cents),
        entry_id=entry_id,
    )
    out = _entry_out(item)
    out["duplicate"] = False
    return out


def _earning_writes(item: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Transaction items crediting the creator share of a paid entry, once per entry."""
    pk = creator_pk(item["creator_email"])
    earning = {
        "pk": pk,
        "sk": f"EARNING#{item['entry_id']}",
        "entry_id": item["entry_id"],
        "kind": item["kind"],
        "gross_cents": int(item["gross_cents"]),
        "creator_cents": int(item["creator_cents"]),
        "currency": item["currency"],
        "created_at": int(item["created_at"]),
    }
    cents = int(item["creator_cents"])
    return [
        tx_put_new(T.support_ledger, earning),
        tx_increment(
            T.support_ledger,
            pk,
            EARNINGS_SK,
            {"lifetime_earned_cents": cents, "available_cents": cents},
            ts=int(item["created_at"]),
        ),
    ]


def record_paid_action(
    creator_email: str,
    viewer_email: str,
    kind: str,
    source: Optional[str],
    target_id: Optional[str],
    units: int = 1,
    *,
    gross_cents: int = 0,
    currency: Optional[str] = None,
    payment_ref: Optional[str] = None,
) -> Dict[str, Any]:
    """Append one immutable ledger entry for a funded action.

    ``payment_ref`` (the checkout session id for processor-funded actions) makes
    the append idempotent: a second call returns the first entry with
    ``duplicate=True``. Capped kinds raise ActionLimitReached once the viewer
    has used every slot for the target.
    """
    kind = normalize_kind(kind)
    source = normalize_source(source)
    target = normalize_target(kind, target_id, creator_email)
    currency = currency or S.default_currency

    if payment_ref:
        existing = ddb_get(T.support_ledger, _entry_pk(target), f"ENTRY#{payment_ref}")
        if existing:
            out = _entry_out(existing)
            out["duplicate"] = True
            return out

    slot = claim_slot(kind, viewer_email, target, payment_ref)
    return _append_entry(
        creator_email,
        viewer_email,
        kind,
        source,
        target,
        units,
        gross_cents=gross_cents,
        currency=currency,
        payment_ref=payment_ref,
        slot=slot,
    )


def spend_and_record(
    viewer_email: str,
    action: str,
    creator_email: str,
    source: Optional[str],
    target_id: Optional[str],
) -> Dict[str, Any]:
    """Fund one action from the viewer's credits and log it.

    The cap slot is claimed before the credit is spent; a failed spend releases
    the slot and writes nothing.
    """
    action = (action or "").strip().lower()
    if action not in LEDGER_KIND:
        raise UnknownMode(f"Unknown support action: {action!r}")
    if action == "reaction" and not S.paid_reactions_enabled:
        raise ActionDisabled("Paid reactions are disabled")
    if action == "vote" and not S.paid_votes_enabled:
        raise ActionDisabled("Paid votes are disabled")

    kind = LEDGER_KIND[action]
    source = normalize_source(source)
    target = normalize_target(kind, target_id, creator_email)

    slot = claim_slot(kind, viewer_email, target)
    try:
        balance = credits.spend(viewer_email, action)
    except (InsufficientCredit, ClientError):
        release_slot(kind, viewer_email, target, slot)
        raise

    try:
        entry = _append_entry(
            creator_email,
            viewer_email,
            kind,
            source,
            target,
            1,
            gross_cents=0,
            currency=S.default_currency,
            payment_ref=None,
            slot=slot,
        )
    except EntryNotWritten:
        log.error("ledger append failed after credit spend; refunding %s", viewer_email, exc_info=True)
        credits.refund(viewer_email, action)
        raise
    return {"entry": entry, "balance": balance}


def aggregate(target_id: str) -> Dict[str, Any]:
    """Count REACTION entries of a post by emoji; rows without a known emoji are legacy."""
    base, _ = split_target(target_id)
    counts = {emoji: 0 for emoji in ALLOWED_REACTIONS}
    legacy = 0
    for item in ddb_query_pk(T.support_ledger, f"TARGET#{base}", sk_prefix="ENTRY#"):
        if item.get("kind") != "REACTION":
            continue
        _, emoji = split_target(str(item.get("target_id") or ""))
        if emoji in counts:
            counts[emoji] += int(item.get("units", 1))
        else:
            legacy += int(item.get("units", 1))
    return {"target_id": base, "counts": counts, "legacy_count": legacy}


def list_entries(target_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    items = ddb_query_pk(T.support_ledger, _entry_pk(target_id), sk_prefix="ENTRY#")
    items.sort(key=lambda x: int(x.get("created_at", 0)), reverse=True)
    return [_entry_out(it) for it in items[: max(1, min(limit, 200))]]


def creator_earnings(creator_email: str, limit: int = 20) -> Dict[str, Any]:
    pk = creator_pk(creator_email)
    balance = ddb_get(T.support_ledger, pk, EARNINGS_SK) or {}
    recent = ddb_query_pk(T.support_ledger, pk, sk_prefix="EARNING#")
    recent.sort(key=lambda x: int(x.get("created_at", 0)), reverse=True)
    return {
        "creator_email": creator_email,
        "lifetime_earned_cents": int(balance.get("lifetime_earned_cents", 0)),
        "available_cents": int(balance.get("available_cents", 0)),
        "recent": [
            {
                "entry_id": it["entry_id"],
                "kind": it.get("kind"),
                "gross_cents": int(it.get("gross_cents", 0)),
                "creator_cents": int(it.get("creator_cents", 0)),
                "currency": it.get("currency"),
                "created_at": int(it.get("created_at", 0)),
            }
            for it in recent[:limit]
        ],
    }
