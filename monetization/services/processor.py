from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

import stripe

from monetization.core.settings import S
from monetization.errors import DownstreamUnavailable, NotConfigured

log = logging.getLogger(__name__)


def ensure_stripe_configured() -> None:
    if not S.stripe_secret_key:
        raise NotConfigured("Stripe is not configured")
    stripe.api_key = S.stripe_secret_key


@contextmanager
def processor_call(operation: str) -> Iterator[None]:
    """Translate any Stripe API failure inside the block into DownstreamUnavailable."""
    try:
        yield
    except stripe.StripeError as exc:
        log.warning("stripe %s failed: %s", operation, exc)
        raise DownstreamUnavailable(f"Payment processor error during {operation}; please retry") from exc
