from __future__ import annotations

from typing import Any, Dict

from monetization.core.normalize import split_target
from monetization.core.tables import T
from monetization.core.time import now_ts
from monetization.services.ddb import ddb_get, put_new_with_increment

COUNTERS_SK = "COUNTERS"
COUNTER_FIELDS = {"BOOST": "boosts", "SPIN": "spins"}


def _target_pk(target_id: str) -> str:
    return f"TARGET#{split_target(target_id)[0]}"


def increment(target_id: str, kind: str, *, dedupe_key: str) -> bool:
    """Bump the boost/spin counter of a target once per ``dedupe_key``."""
    field = COUNTER_FIELDS[kind]
    pk = _target_pk(target_id)
    ts = now_ts()
    marker = {"pk": pk, "sk": f"APPLIED#{dedupe_key}", "kind": kind, "created_at": ts}
    return put_new_with_increment(T.targets, marker, COUNTERS_SK, {field: 1}, ts=ts)


def get_counters(target_id: str) -> Dict[str, Any]:
    item = ddb_get(T.targets, _target_pk(target_id), COUNTERS_SK) or {}
    return {
        "target_id": split_target(target_id)[0],
        "boosts": int(item.get("boosts", 0)),
        "spins": int(item.get("spins", 0)),
    }
