from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .aws import ddb
from .settings import S

@dataclass(frozen=True)
class Tables:
    credits: Any
    support_ledger: Any
    profiles: Any
    targets: Any
    webhook_events: Any

T = Tables(
    credits=ddb.Table(S.credits_table_name),
    support_ledger=ddb.Table(S.support_ledger_table_name),
    profiles=ddb.Table(S.profiles_table_name),
    targets=ddb.Table(S.targets_table_name),
    webhook_events=ddb.Table(S.webhook_events_table_name),
)
