from __future__ import annotations

from typing import Any, Dict


class MonetizationError(Exception):
    status_code = 400
    code = "monetization_error"

    def __init__(self, message: str = "", **context: Any) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "detail": self.message}


class InvalidSignature(MonetizationError):
    status_code = 400
    code = "invalid_signature"


class InsufficientCredit(MonetizationError):
    status_code = 400
    code = "insufficient_credit"


class UnknownMode(MonetizationError):
    status_code = 400
    code = "unknown_mode"


class InvalidAmount(MonetizationError):
    status_code = 400
    code = "invalid_amount"


class InvalidTarget(MonetizationError):
    status_code = 400
    code = "invalid_target"


class ActionLimitReached(MonetizationError):
    status_code = 400
    code = "action_limit_reached"


class NoBillingAccount(MonetizationError):
    status_code = 400
    code = "no_billing_account"


class ActionDisabled(MonetizationError):
    status_code = 403
    code = "action_disabled"


class ProfileNotFound(MonetizationError):
    status_code = 404
    code = "profile_not_found"


class TierDowngradeRejected(MonetizationError):
    status_code = 409
    code = "tier_downgrade_rejected"


class NotConfigured(MonetizationError):
    status_code = 501
    code = "not_configured"


class DownstreamUnavailable(MonetizationError):
    """The payment processor failed or timed out; safe for the caller to retry."""

    status_code = 503
    code = "downstream_unavailable"
    retryable = True
