import threading

import pytest

from bootstrap import seed_rewards
from errors import Conflict, InsufficientBalance, InvalidInput, NotFound, RewardInactive, RewardNotFound
from extensions import db
from ledger import credit, reconcile, unit_of_work
from models_ledger import LedgerEntry
from models_rewards import Redemption, Reward, RewardCategory
from rewards import available_rewards, generate_code, redeem, user_redemptions


def _reward(name="$5 Steam Wallet Code", cost=500, category=RewardCategory.STEAM_WALLET, active=True):
    reward = Reward(name=name, description="", points_cost=cost, category=category, face_value=5, is_active=active)
    db.session.add(reward)
    db.session.commit()
    return reward


def _fund(handle, amount):
    with unit_of_work(handle):
        credit(handle, amount, "Test funding")


def test_redeem_debits_and_issues_code(app):
    reward = _reward()
    _fund("player-1", 600)

    result = redeem("player-1", reward.id)

    assert result["code"].startswith("STEAMWALLET-")
    assert len(result["code"]) == len("STEAMWALLET-") + 12
    assert reconcile("player-1") == (100, 100)
    redemption = Redemption.query.one()
    assert redemption.points_spent == 500
    assert redemption.reward_name == "$5 Steam Wallet Code"
    assert redemption.status == "delivered"
    debit_entry = LedgerEntry.query.filter(LedgerEntry.amount < 0).one()
    assert debit_entry.amount == -500
    assert debit_entry.reason == "Redeemed: $5 Steam Wallet Code"


def test_insufficient_balance_leaves_everything_unchanged(app):
    reward = _reward()
    _fund("player-1", 499)

    with pytest.raises(InsufficientBalance) as exc:
        redeem("player-1", reward.id)

    assert exc.value.status_code == 402
    assert reconcile("player-1") == (499, 499)
    assert Redemption.query.count() == 0
    assert LedgerEntry.query.count() == 1


def test_unknown_reward(app):
    _fund("player-1", 1000)

    with pytest.raises(RewardNotFound) as exc:
        redeem("player-1", 999)

    assert isinstance(exc.value, NotFound)
    assert reconcile("player-1") == (1000, 1000)


def test_inactive_reward(app):
    reward = _reward(active=False)
    _fund("player-1", 1000)

    with pytest.raises(RewardInactive):
        redeem("player-1", reward.id)

    assert Redemption.query.count() == 0
    assert reconcile("player-1") == (1000, 1000)


def test_reward_id_must_be_integer(app):
    with pytest.raises(InvalidInput):
        redeem("player-1", "abc")


def test_code_prefix_per_category(app):
    reward = _reward(name="$10 Amazon Gift Card", cost=950, category=RewardCategory.AMAZON)
    assert generate_code(reward).startswith("AMAZON-")
    assert generate_code(reward) != generate_code(reward)


def test_catalog_lists_active_rewards_cheapest_first(app):
    seed_rewards()
    Reward.query.filter_by(name="$5 Steam Wallet Code").one().is_active = False
    db.session.commit()

    rewards = available_rewards()
    assert len(rewards) == 6
    assert rewards[0].points_cost == 950
    assert all(r.is_active for r in rewards)


def test_user_redemptions_newest_first(app):
    first = _reward()
    second = _reward(name="$10 Amazon Gift Card", cost=950, category=RewardCategory.AMAZON)
    _fund("player-1", 2000)
    redeem("player-1", first.id)
    redeem("player-1", second.id)

    names = [r.reward_name for r in user_redemptions("player-1")]
    assert names == ["$10 Amazon Gift Card", "$5 Steam Wallet Code"]
    assert user_redemptions("player-2") == []


def test_simultaneous_redemptions_debit_once(file_app):
    app = file_app
    with app.app_context():
        reward_id = _reward().id
        _fund("player-1", 600)

    outcomes = []
    barrier = threading.Barrier(4)

    def worker():
        with app.app_context():
            barrier.wait()
            try:
                redeem("player-1", reward_id)
                outcomes.append("ok")
            except (InsufficientBalance, Conflict):
                outcomes.append("rejected")

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["ok", "rejected", "rejected", "rejected"]
    with app.app_context():
        assert reconcile("player-1") == (100, 100)
        assert Redemption.query.count() == 1
