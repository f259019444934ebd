from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import stripe

from monetization.errors import DownstreamUnavailable, ProfileNotFound
from monetization.services import payout, profiles

CREATOR = "creator@example.com"


@pytest.fixture
def creator(tables):
    return profiles.activate_creator(CREATOR)


@pytest.fixture
def fake_stripe(monkeypatch, settings):
    settings(stripe_secret_key="sk_test_123", public_base_url="https://app.example", stripe_connect_country="AU")
    fake = MagicMock()
    fake.Account.create.return_value = {"id": "acct_1"}
    fake.AccountLink.create.return_value = {"url": "https://connect.stripe.test/onboard"}
    monkeypatch.setattr(payout, "stripe", fake)
    return fake


def test_derive_status():
    assert payout.derive_status(None, True, True) == "not_started"
    assert payout.derive_status("acct_1", True, False) == "pending"
    assert payout.derive_status("acct_1", False, True) == "pending"
    assert payout.derive_status("acct_1", True, True) == "complete"


def test_snapshot_complete_requires_both_flags(creator):
    payout.apply_account_snapshot(CREATOR, "acct_1", True, False, snapshot_ts=100)
    assert payout.get_payout_status(CREATOR)["status"] == "pending"
    payout.apply_account_snapshot(CREATOR, "acct_1", True, True, snapshot_ts=200)
    assert payout.get_payout_status(CREATOR)["status"] == "complete"


def test_out_of_order_snapshot_does_not_regress(creator):
    payout.apply_account_snapshot(CREATOR, "acct_1", True, True, snapshot_ts=200)
    assert not payout.apply_account_snapshot(CREATOR, "acct_1", False, False, snapshot_ts=100)
    status = payout.get_payout_status(CREATOR)
    assert status["status"] == "complete"
    assert status["charges_enabled"] is True


def test_unknown_creator(tables):
    with pytest.raises(ProfileNotFound):
        payout.apply_account_snapshot(CREATOR, "acct_1", True, True, snapshot_ts=1)


def test_start_onboarding_creates_express_account_once(creator, fake_stripe):
    out = payout.start_onboarding(CREATOR)
    assert out == {"url": "https://connect.stripe.test/onboard", "account_id": "acct_1"}
    kwargs = fake_stripe.Account.create.call_args.kwargs
    assert kwargs["type"] == "express"
    assert kwargs["country"] == "AU"
    assert kwargs["metadata"] == {"creator_email": CREATOR}
    assert profiles.get_profile(CREATOR)["payout_onboarding_status"] == "pending"

    payout.start_onboarding(CREATOR)
    assert fake_stripe.Account.create.call_count == 1
    assert fake_stripe.AccountLink.create.call_args.kwargs["account"] == "acct_1"


def test_onboarding_processor_error(creator, fake_stripe):
    fake_stripe.Account.create.side_effect = stripe.APIConnectionError("down")
    with pytest.raises(DownstreamUnavailable):
        payout.start_onboarding(CREATOR)
    assert profiles.get_profile(CREATOR)["payout_account_id"] is None


def test_refresh_polls_processor_with_snapshot_semantics(creator, fake_stripe):
    payout.start_onboarding(CREATOR)
    fake_stripe.Account.retrieve.return_value = {"id": "acct_1", "charges_enabled": True, "payouts_enabled": True}
    status = payout.get_payout_status(CREATOR, refresh=True)
    assert status["status"] == "complete"
    fake_stripe.Account.retrieve.assert_called_once_with("acct_1")


def test_refresh_without_account_skips_processor(creator, fake_stripe):
    assert payout.get_payout_status(CREATOR, refresh=True)["status"] == "not_started"
    fake_stripe.Account.retrieve.assert_not_called()
