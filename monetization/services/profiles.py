from __future__ import annotations

from typing import Any, Dict, Optional

from botocore.exceptions import ClientError

from monetization.core.tables import T
from monetization.core.time import now_ts
from monetization.errors import ProfileNotFound
from monetization.services.audit import audit_event
from monetization.services.ddb import creator_pk, ddb_get, ddb_put_new, ddb_update, is_conditional_failure

PROFILE_SK = "PROFILE"


def _profile_out(item: Dict[str, Any]) -> Dict[str, Any]:
    period_end = item.get("verification_current_period_end")
    return {
        "email": item["email"],
        "verification_status": item.get("verification_status", "none"),
        "verification_tier": item.get("verification_tier"),
        "verification_current_period_end": int(period_end) if period_end is not None else None,
        "processor_customer_id": item.get("processor_customer_id"),
        "processor_subscription_id": item.get("processor_subscription_id"),
        "payout_account_id": item.get("payout_account_id"),
        "payout_onboarding_status": item.get("payout_onboarding_status", "not_started"),
        "charges_enabled": bool(item.get("charges_enabled", False)),
        "payouts_enabled": bool(item.get("payouts_enabled", False)),
        "created_at": int(item.get("created_at") or 0),
        "updated_at": int(item.get("updated_at") or 0),
    }


def get_profile(email: str) -> Optional[Dict[str, Any]]:
    item = ddb_get(T.profiles, creator_pk(email), PROFILE_SK)
    return _profile_out(item) if item else None


def require_profile(email: str) -> Dict[str, Any]:
    profile = get_profile(email)
    if not profile:
        raise ProfileNotFound(f"No creator profile for {email}", email=email)
    return profile


def activate_creator(email: str) -> Dict[str, Any]:
    ts = now_ts()
    created = ddb_put_new(
        T.profiles,
        {
            "pk": creator_pk(email),
            "sk": PROFILE_SK,
            "email": email,
            "verification_status": "none",
            "verification_tier": None,
            "payout_onboarding_status": "not_started",
            "charges_enabled": False,
            "payouts_enabled": False,
            "created_at": ts,
            "updated_at": ts,
        },
    )
    if created:
        audit_event("creator_activated", email)
    return require_profile(email)


def apply_snapshot(
    email: str,
    fields: Dict[str, Any],
    *,
    ts_attr: str,
    snapshot_ts: int,
    extra_condition: Optional[str] = None,
    tie_condition: Optional[str] = None,
    extra_values: Optional[Dict[str, Any]] = None,
) -> bool:
    """Overwrite ``fields`` with a processor snapshot unless a newer one is stored.

    The write is conditional on ``ts_attr`` being absent or older than
    ``snapshot_ts``. A snapshot from the same second applies only when
    ``tie_condition`` holds (always, when it is None). Returns False when the
    snapshot is stale or fails ``extra_condition``. Raises ProfileNotFound when
    the profile is missing.
    """
    names: Dict[str, str] = {"#ts": ts_attr, "#u": "updated_at"}
    values: Dict[str, Any] = {":ts": int(snapshot_ts), ":now": now_ts()}
    sets = ["#ts = :ts", "#u = :now"]
    for i, (key, value) in enumerate(fields.items(), start=1):
        names[f"#f{i}"] = key
        values[f":v{i}"] = value
        sets.append(f"#f{i} = :v{i}")
    if tie_condition:
        fresh = f"attribute_not_exists(#ts) OR #ts < :ts OR (#ts = :ts AND {tie_condition})"
    else:
        fresh = "attribute_not_exists(#ts) OR #ts <= :ts"
    condition = f"attribute_exists(pk) AND ({fresh})"
    if extra_condition:
        condition = f"{condition} AND {extra_condition}"
    values.update(extra_values or {})
    try:
        ddb_update(
            T.profiles,
            creator_pk(email),
            PROFILE_SK,
            "SET " + ", ".join(sets),
            values,
            names=names,
            condition_expression=condition,
        )
        return True
    except ClientError as exc:
        if not is_conditional_failure(exc):
            raise
    require_profile(email)
    return False


def set_processor_customer(email: str, customer_id: str) -> None:
    ddb_update(
        T.profiles,
        creator_pk(email),
        PROFILE_SK,
        "SET processor_customer_id = :c, updated_at = :now",
        {":c": customer_id, ":now": now_ts()},
        condition_expression="attribute_exists(pk)",
    )


def claim_payout_account(email: str, account_id: str) -> bool:
    """Attach ``account_id`` unless the profile already has a payout account."""
    try:
        ddb_update(
            T.profiles,
            creator_pk(email),
            PROFILE_SK,
            "SET payout_account_id = :a, payout_onboarding_status = :p, updated_at = :now",
            {":a": account_id, ":p": "pending", ":now": now_ts()},
            condition_expression="attribute_exists(pk) AND attribute_not_exists(payout_account_id)",
        )
        return True
    except ClientError as exc:
        if is_conditional_failure(exc):
            return False
        raise
