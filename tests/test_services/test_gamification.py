"""Tests for badges, rewards, dashboard stats and the leaderboard."""

from decimal import Decimal

import pytest

from ecowheels.errors import AuthorizationError, NotFoundError
from ecowheels.models.order import OrderStatus
from ecowheels.services.gamification import GamificationService
from ecowheels.state.documents import DRIVERS, EARNINGS, RATINGS


@pytest.fixture
def gamification(store) -> GamificationService:
    return GamificationService(store)


@pytest.fixture
def deliver(put_order):
    """Store ``count`` completed orders for a driver."""

    async def _deliver(driver_id: str, count: int) -> None:
        for _ in range(count):
            await put_order(status=OrderStatus.COMPLETED, driver_id=driver_id)

    return _deliver


@pytest.mark.asyncio
async def test_badges_follow_completed_deliveries(
    gamification, deliver, driver_session, put_order
) -> None:
    await deliver(driver_session.uid, 12)
    await put_order(status=OrderStatus.ACCEPTED, driver_id=driver_session.uid)

    stats = await gamification.driver_stats(driver_session)

    assert stats.completed_deliveries == 12
    earned = {badge.id: badge.earned for badge in stats.badges}
    assert earned == {"rookie-rider": True, "delivery-pro": False, "eco-champion": False}
    assert not any(reward.eligible for reward in stats.rewards)


@pytest.mark.asyncio
async def test_green_bonus_needs_deliveries_and_green_score(
    gamification, deliver, driver_session, store
) -> None:
    await deliver(driver_session.uid, 25)
    await store.update(DRIVERS, driver_session.uid, {"green_score": 60})

    rewards = {r.id: r for r in (await gamification.driver_stats(driver_session)).rewards}
    assert not rewards["green-bonus"].eligible

    await store.update(DRIVERS, driver_session.uid, {"green_score": 80})

    rewards = {r.id: r for r in (await gamification.driver_stats(driver_session)).rewards}
    assert rewards["green-bonus"].eligible
    assert not rewards["peak-hour-bonus"].eligible


@pytest.mark.asyncio
async def test_claim_reward(gamification, deliver, driver_session, store) -> None:
    await deliver(driver_session.uid, 25)
    await store.update(DRIVERS, driver_session.uid, {"green_score": 90})

    driver = await gamification.claim_reward(driver_session, "green-bonus")
    again = await gamification.claim_reward(driver_session, "green-bonus")

    assert driver.available_rewards == ["green-bonus"]
    assert again.available_rewards == ["green-bonus"]
    stats = await gamification.driver_stats(driver_session)
    assert {r.id: r.claimed for r in stats.rewards}["green-bonus"]


@pytest.mark.asyncio
async def test_claim_reward_rejects_ineligible_and_unknown(
    gamification, deliver, driver_session, store
) -> None:
    await deliver(driver_session.uid, 3)

    with pytest.raises(AuthorizationError):
        await gamification.claim_reward(driver_session, "peak-hour-bonus")
    with pytest.raises(NotFoundError):
        await gamification.claim_reward(driver_session, "free-lunch")

    assert (await store.get(DRIVERS, driver_session.uid))["available_rewards"] == []


@pytest.mark.asyncio
async def test_dashboard_stats(gamification, deliver, driver_session, store) -> None:
    await deliver(driver_session.uid, 2)
    uid = driver_session.uid
    for order_id, amount in [("o1", "12.50"), ("o2", "7.25")]:
        entry = {"id": order_id, "driver_id": uid, "order_id": order_id, "amount": amount}
        await store.set(EARNINGS, order_id, entry)
    for rating_id, rating in [("r1", 5), ("r2", 4), ("r3", 4)]:
        await store.set(RATINGS, rating_id, {"id": rating_id, "driver_id": uid, "rating": rating})

    stats = await gamification.dashboard_stats(driver_session)

    assert stats.completed_deliveries == 2
    assert stats.total_earnings == Decimal("19.75")
    assert stats.average_rating == 4.3


@pytest.mark.asyncio
async def test_dashboard_without_ratings(gamification, driver_session) -> None:
    stats = await gamification.dashboard_stats(driver_session)

    assert stats.average_rating == 0.0
    assert stats.completed_deliveries == 0


@pytest.mark.asyncio
async def test_leaderboard_ranks_by_completed_deliveries(
    gamification, deliver, driver_session, other_session
) -> None:
    await deliver(driver_session.uid, 2)
    await deliver(other_session.uid, 5)
    await deliver("retired-driver", 1)

    board = await gamification.leaderboard(size=2)

    assert [(e.rank, e.driver_id, e.completed_deliveries) for e in board] == [
        (1, other_session.uid, 5),
        (2, driver_session.uid, 2),
    ]
    assert board[0].full_name == "Liam Oconnor"
