from __future__ import annotations

import json
from typing import Any, Optional

from monetization.core.settings import S
from monetization.core.time import now_ts


def audit_event(event: str, email: Optional[str], **fields: Any) -> None:
    """Print one compact JSON audit line for a money or account-state change."""
    if not S.audit_log_enabled:
        return
    payload = {
        "ts": now_ts(),
        "event": event,
        "email": email or "",
        "outcome": str(fields.pop("outcome", "success")),
    }
    for key, value in fields.items():
        if value is None:
            continue
        payload[key] = value
    print(json.dumps(payload, separators=(",", ":"), sort_keys=True, default=str))
