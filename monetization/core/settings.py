from __future__ import annotations

import os
from dataclasses import dataclass


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default) not in ("0", "false", "False")


@dataclass(frozen=True)
class Settings:
    # AWS
    aws_region: str = os.environ.get("AWS_REGION", "us-east-1")

    # Cognito (optional wiring; identity is pluggable)
    cognito_user_pool_id: str = os.environ.get("COGNITO_USER_POOL_ID", "")
    cognito_region: str = os.environ.get("COGNITO_REGION", "")
    cognito_app_client_id: str = os.environ.get("COGNITO_APP_CLIENT_ID", "")
    cognito_expected_token_use: str = os.environ.get("COGNITO_EXPECTED_TOKEN_USE", "id")

    # DynamoDB tables
    credits_table_name: str = os.environ.get("CREDITS_TABLE_NAME", "credits")
    support_ledger_table_name: str = os.environ.get("SUPPORT_LEDGER_TABLE_NAME", "support_ledger")
    profiles_table_name: str = os.environ.get("PROFILES_TABLE_NAME", "creator_profiles")
    targets_table_name: str = os.environ.get("TARGETS_TABLE_NAME", "targets")
    webhook_events_table_name: str = os.environ.get("WEBHOOK_EVENTS_TABLE_NAME", "webhook_events")

    # TTL
    ddb_ttl_attr: str = os.environ.get("DDB_TTL_ATTR", "ttl_epoch")
    processed_event_ttl_days: int = int(os.environ.get("PROCESSED_EVENT_TTL_DAYS", "30"))

    audit_log_enabled: bool = _flag("AUDIT_LOG_ENABLED", "1")
    metrics_enabled: bool = _flag("METRICS_ENABLED", "1")

    # Stripe
    stripe_secret_key: str = os.environ.get("STRIPE_SECRET_KEY", "")
    stripe_webhook_secret: str = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    stripe_webhook_tolerance_seconds: int = int(os.environ.get("STRIPE_WEBHOOK_TOLERANCE_SECONDS", "300"))
    stripe_blue_tick_price_id: str = os.environ.get("STRIPE_BLUE_TICK_PRICE_ID", "")
    stripe_gold_tick_price_id: str = os.environ.get("STRIPE_GOLD_TICK_PRICE_ID", "")
    stripe_connect_country: str = os.environ.get("STRIPE_CONNECT_COUNTRY", "AU")
    stripe_billing_portal_configuration_id: str = os.environ.get("STRIPE_BILLING_PORTAL_CONFIGURATION_ID", "")

    public_base_url: str = os.environ.get("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")
    default_return_path: str = os.environ.get("DEFAULT_RETURN_PATH", "/public-feed")
    default_currency: str = os.environ.get("DEFAULT_CURRENCY", "aud").lower()

    # Revenue split, in basis points of gross
    creator_share_bps: int = int(os.environ.get("CREATOR_SHARE_BPS", "4500"))

    # Client-chosen tip amounts
    custom_amount_min_cents: int = int(os.environ.get("CUSTOM_AMOUNT_MIN_CENTS", "100"))
    custom_amount_max_cents: int = int(os.environ.get("CUSTOM_AMOUNT_MAX_CENTS", "50000"))

    # Per-viewer caps
    max_reactions_per_target: int = int(os.environ.get("MAX_REACTIONS_PER_TARGET", "10"))
    max_votes_per_target: int = int(os.environ.get("MAX_VOTES_PER_TARGET", "20"))

    paid_reactions_enabled: bool = _flag("PAID_REACTIONS_ENABLED", "1")
    paid_votes_enabled: bool = _flag("PAID_VOTES_ENABLED", "1")


S = Settings()
