from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from monetization.errors import InsufficientCredit, UnknownMode
from monetization.services import credits

FAN = "fan@example.com"


def seed(tables, **fields):
    tables["credits"].items[("USER#" + FAN, "CREDITS")] = {"pk": "USER#" + FAN, "sk": "CREDITS", **fields}


def test_balance_defaults_to_zero(tables):
    assert credits.get_balance(FAN) == {"email": FAN, "tips": 0, "boosts": 0, "spins": 0}


def test_spend_decrements_one_credit(tables):
    seed(tables, tips=2, boosts=1, spins=0)
    balance = credits.spend(FAN, "tip")
    assert balance["tips"] == 1
    assert balance["boosts"] == 1


def test_spend_without_credit_raises_and_leaves_no_row(tables):
    with pytest.raises(InsufficientCredit):
        credits.spend(FAN, "boost")
    assert tables["credits"].items == {}


def test_spend_at_zero_never_goes_negative(tables):
    seed(tables, spins=0)
    with pytest.raises(InsufficientCredit):
        credits.spend(FAN, "spin")
    assert credits.get_balance(FAN)["spins"] == 0


def test_reactions_and_votes_use_tip_credits(tables):
    seed(tables, tips=2)
    credits.spend(FAN, "reaction")
    assert credits.spend(FAN, "vote")["tips"] == 0


def test_unknown_kind(tables):
    with pytest.raises(UnknownMode):
        credits.spend(FAN, "superlike")


def test_concurrent_spends_never_overdraw(tables):
    seed(tables, tips=5)

    def attempt(_):
        try:
            credits.spend(FAN, "tip")
            return True
        except InsufficientCredit:
            return False

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(attempt, range(20)))

    assert results.count(True) == 5
    assert credits.get_balance(FAN)["tips"] == 0


def test_grant_is_idempotent_per_dedupe_key(tables):
    first = credits.grant(FAN, "tip", 10, dedupe_key="cs_test_1")
    second = credits.grant(FAN, "tip", 10, dedupe_key="cs_test_1")
    assert first["tips"] == 10
    assert second["tips"] == 10
    assert credits.grant(FAN, "spin", 20, dedupe_key="cs_test_2")["spins"] == 20


def test_grant_rejects_action_only_kinds(tables):
    with pytest.raises(UnknownMode):
        credits.grant(FAN, "vote", 1, dedupe_key="cs_x")


def test_grant_leaves_no_marker_when_the_write_fails(tables):
    client = tables["credits"].meta.client
    client.fail_next(EndpointConnectionError(endpoint_url="https://dynamodb.local"))
    with pytest.raises(EndpointConnectionError):
        credits.grant(FAN, "tip", 10, dedupe_key="cs_1")
    assert ("USER#" + FAN, "GRANT#cs_1") not in tables["credits"].items

    assert credits.grant(FAN, "tip", 10, dedupe_key="cs_1")["tips"] == 10
    assert credits.grant(FAN, "tip", 10, dedupe_key="cs_1")["tips"] == 10


def test_grant_throttled_write_can_be_retried(tables):
    client = tables["credits"].meta.client
    client.fail_next(ClientError({"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow down"}}, "TransactWriteItems"))
    with pytest.raises(ClientError):
        credits.grant(FAN, "boost", 10, dedupe_key="cs_retry")
    assert credits.grant(FAN, "boost", 10, dedupe_key="cs_retry")["boosts"] == 10


def test_refund_restores_credit(tables):
    seed(tables, tips=1)
    credits.spend(FAN, "tip")
    assert credits.refund(FAN, "tip")["tips"] == 1
