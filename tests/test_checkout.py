from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import stripe

from monetization.errors import (
    ActionLimitReached,
    DownstreamUnavailable,
    InvalidAmount,
    InvalidTarget,
    NoBillingAccount,
    NotConfigured,
    ProfileNotFound,
    TierDowngradeRejected,
    UnknownMode,
)
from monetization.services import checkout, profiles, support_ledger

CREATOR = "creator@example.com"
FAN = "fan@example.com"


@pytest.fixture
def fake_stripe(monkeypatch, settings):
    settings(
        stripe_secret_key="sk_test_123",
        public_base_url="https://app.example",
        stripe_blue_tick_price_id="price_blue",
        stripe_gold_tick_price_id="price_gold",
    )
    fake = MagicMock()
    fake.checkout.Session.create.return_value = {"id": "cs_test_1", "url": "https://checkout.stripe.test/cs_test_1"}
    fake.Customer.create.return_value = {"id": "cus_1"}
    monkeypatch.setattr(checkout, "stripe", fake)
    return fake


def session_kwargs(fake):
    return fake.checkout.Session.create.call_args.kwargs


def test_server_decides_amount_and_sends_reconciler_metadata(tables, fake_stripe):
    out = checkout.build("boost", CREATOR, FAN, target_id="post-1", source="feed", return_path="/live/abc")
    assert out == {"session_id": "cs_test_1", "url": "https://checkout.stripe.test/cs_test_1"}

    kwargs = session_kwargs(fake_stripe)
    price = kwargs["line_items"][0]["price_data"]
    assert price["unit_amount"] == 500
    assert price["currency"] == "aud"
    meta = kwargs["metadata"]
    assert meta["purpose"] == "support"
    assert meta["mode"] == "boost"
    assert meta["pack"] == "0"
    assert meta["target_id"] == "post-1"
    assert meta["creator_email"] == CREATOR
    assert meta["viewer_email"] == FAN
    assert meta["source"] == "FEED"
    assert meta["payment_type"].startswith("boost:")
    assert kwargs["idempotency_key"] == meta["payment_type"]
    assert kwargs["success_url"] == "https://app.example/live/abc?payment=success&mode=boost"
    assert kwargs["cancel_url"] == "https://app.example/live/abc?payment=cancelled&mode=boost"
    # Nothing local is written until the processor confirms payment.
    assert all(not t.items for t in tables.values())


def test_pack_metadata_carries_units(tables, fake_stripe):
    checkout.build("tip-pack", CREATOR, FAN)
    kwargs = session_kwargs(fake_stripe)
    assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 2000
    assert kwargs["metadata"]["pack"] == "1"
    assert kwargs["metadata"]["units"] == "10"


def test_unsafe_return_path_falls_back_to_feed(tables, fake_stripe):
    checkout.build("spin", CREATOR, FAN, return_path="https://evil.example/")
    assert session_kwargs(fake_stripe)["success_url"].startswith("https://app.example/public-feed?payment=success")


def test_custom_tip_amount_is_bounded(tables, fake_stripe):
    checkout.build("tip", CREATOR, FAN, amount_cents=1500)
    assert session_kwargs(fake_stripe)["line_items"][0]["price_data"]["unit_amount"] == 1500
    with pytest.raises(InvalidAmount):
        checkout.build("tip", CREATOR, FAN, amount_cents=10_000_000)


def test_client_amount_ignored_for_boost(tables, fake_stripe):
    checkout.build("boost", CREATOR, FAN, target_id="post-1", amount_cents=1)
    assert session_kwargs(fake_stripe)["line_items"][0]["price_data"]["unit_amount"] == 500


def test_unknown_mode(tables, fake_stripe):
    with pytest.raises(UnknownMode):
        checkout.build("superlike", CREATOR, FAN)
    fake_stripe.checkout.Session.create.assert_not_called()


def test_reaction_needs_allowed_emoji(tables, fake_stripe):
    with pytest.raises(InvalidTarget):
        checkout.build("reaction", CREATOR, FAN, target_id="post-1")


def test_reaction_cap_precheck(tables, fake_stripe, settings):
    settings(max_reactions_per_target=1)
    support_ledger.record_paid_action(CREATOR, FAN, "REACTION", "FEED", "post-1::🔥")
    with pytest.raises(ActionLimitReached):
        checkout.build("reaction", CREATOR, FAN, target_id="post-1::👏")
    fake_stripe.checkout.Session.create.assert_not_called()


def test_processor_timeout_is_downstream_unavailable(tables, fake_stripe):
    fake_stripe.checkout.Session.create.side_effect = stripe.APIConnectionError("timed out")
    with pytest.raises(DownstreamUnavailable) as exc:
        checkout.build("tip", CREATOR, FAN)
    assert exc.value.retryable is True
    assert all(not t.items for t in tables.values())


def test_missing_secret_is_not_configured(tables, fake_stripe, settings):
    settings(stripe_secret_key="")
    with pytest.raises(NotConfigured):
        checkout.build("tip", CREATOR, FAN)


def test_verification_checkout_requires_profile(tables, fake_stripe):
    with pytest.raises(ProfileNotFound):
        checkout.build_verification(CREATOR, "blue")


def test_verification_checkout_creates_and_stores_customer(tables, fake_stripe):
    profiles.activate_creator(CREATOR)
    checkout.build_verification(CREATOR, "gold")

    kwargs = session_kwargs(fake_stripe)
    assert kwargs["mode"] == "subscription"
    assert kwargs["customer"] == "cus_1"
    assert kwargs["line_items"] == [{"price": "price_gold", "quantity": 1}]
    expected = {"purpose": "verification", "tier": "gold", "creator_email": CREATOR}
    assert kwargs["metadata"] == expected
    assert kwargs["subscription_data"] == {"metadata": expected}
    assert profiles.get_profile(CREATOR)["processor_customer_id"] == "cus_1"

    checkout.build_verification(CREATOR, "gold")
    assert fake_stripe.Customer.create.call_count == 1


def test_gold_to_blue_downgrade_rejected(tables, fake_stripe):
    profiles.activate_creator(CREATOR)
    item = tables["profiles"].items[("CREATOR#" + CREATOR, "PROFILE")]
    item.update(verification_status="active", verification_tier="gold")
    with pytest.raises(TierDowngradeRejected):
        checkout.build_verification(CREATOR, "blue")
    fake_stripe.checkout.Session.create.assert_not_called()


def test_billing_portal_uses_stored_customer(tables, fake_stripe, settings):
    settings(stripe_billing_portal_configuration_id="bpc_1")
    fake_stripe.billing_portal.Session.create.return_value = {"id": "bps_1", "url": "https://billing.stripe.test/p/1"}
    profiles.activate_creator(CREATOR)
    profiles.set_processor_customer(CREATOR, "cus_9")

    assert checkout.build_portal(CREATOR) == {"url": "https://billing.stripe.test/p/1"}
    fake_stripe.billing_portal.Session.create.assert_called_once_with(
        customer="cus_9",
        return_url="https://app.example/creator",
        configuration="bpc_1",
    )


def test_billing_portal_without_customer(tables, fake_stripe):
    with pytest.raises(ProfileNotFound):
        checkout.build_portal(CREATOR)
    profiles.activate_creator(CREATOR)
    with pytest.raises(NoBillingAccount):
        checkout.build_portal(CREATOR)
    fake_stripe.billing_portal.Session.create.assert_not_called()


def test_billing_portal_processor_failure(tables, fake_stripe):
    fake_stripe.billing_portal.Session.create.side_effect = stripe.APIConnectionError("timed out")
    profiles.activate_creator(CREATOR)
    profiles.set_processor_customer(CREATOR, "cus_9")
    with pytest.raises(DownstreamUnavailable):
        checkout.build_portal(CREATOR)
