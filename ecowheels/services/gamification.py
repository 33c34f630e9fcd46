"""Badges, rewards, dashboard stats and the leaderboard."""

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from ecowheels.auth.session import DriverSession
from ecowheels.errors import AuthorizationError, NotFoundError
from ecowheels.models.driver import Driver
from ecowheels.models.gamification import (
    Badge,
    DashboardStats,
    DriverStats,
    LeaderboardEntry,
    Reward,
)
from ecowheels.models.order import OrderStatus
from ecowheels.state.documents import (
    DRIVERS,
    EARNINGS,
    ORDERS,
    RATINGS,
    DocumentStore,
    Query,
    WritePlan,
)
from ecowheels.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class BadgeRule:
    id: str
    name: str
    milestone: int


@dataclass(frozen=True)
class RewardRule:
    id: str
    name: str
    description: str
    required_deliveries: int
    required_green_score: int | None = None

    def is_met(self, completed_deliveries: int, green_score: int) -> bool:
        if completed_deliveries < self.required_deliveries:
            return False
        return self.required_green_score is None or green_score >= self.required_green_score


BADGES = [
    BadgeRule("rookie-rider", "Rookie Rider", 10),
    BadgeRule("delivery-pro", "Delivery Pro", 50),
    BadgeRule("eco-champion", "Eco Champion", 100),
]

REWARDS = {
    "green-bonus": RewardRule(
        "green-bonus",
        "Green Vehicle Bonus",
        "Extra $50 for using eco-friendly transport",
        required_deliveries=25,
        required_green_score=75,
    ),
    "peak-hour-bonus": RewardRule(
        "peak-hour-bonus",
        "Peak Hour Master",
        "Additional 15% on peak hour deliveries",
        required_deliveries=50,
    ),
}


class GamificationService:
    """Derives driver progress from completed orders and the earnings ledger."""

    def __init__(self, store: DocumentStore):
        self.store = store
        self.settings = store.settings

    async def _driver(self, uid: str) -> Driver:
        data = await self.store.get(DRIVERS, uid)
        if data is None:
            raise NotFoundError("Driver profile not found")
        return Driver.model_validate(data)

    async def completed_deliveries(self, uid: str) -> int:
        query = (
            Query(ORDERS)
            .where("driver_id", "==", uid)
            .where("status", "==", OrderStatus.COMPLETED)
        )
        return len(await self.store.query(query))

    async def total_earnings(self, uid: str) -> Decimal:
        entries = await self.store.query(Query(EARNINGS).where("driver_id", "==", uid))
        return sum((Decimal(str(doc["amount"])) for doc in entries), Decimal("0"))

    async def driver_stats(self, session: DriverSession) -> DriverStats:
        session.require_active()
        driver = await self._driver(session.uid)
        completed = await self.completed_deliveries(session.uid)

        return DriverStats(
            completed_deliveries=completed,
            total_earnings=await self.total_earnings(session.uid),
            green_score=driver.green_score,
            badges=[
                Badge(
                    id=rule.id,
                    name=rule.name,
                    milestone=rule.milestone,
                    earned=completed >= rule.milestone,
                )
                for rule in BADGES
            ],
            rewards=[
                Reward(
                    id=rule.id,
                    name=rule.name,
                    description=rule.description,
                    required_deliveries=rule.required_deliveries,
                    required_green_score=rule.required_green_score,
                    eligible=rule.is_met(completed, driver.green_score),
                    claimed=rule.id in driver.available_rewards,
                )
                for rule in REWARDS.values()
            ],
        )

    async def dashboard_stats(self, session: DriverSession) -> DashboardStats:
        session.require_active()
        driver = await self._driver(session.uid)

        ratings = await self.store.query(Query(RATINGS).where("driver_id", "==", session.uid))
        values = [float(doc["rating"]) for doc in ratings if doc.get("rating") is not None]
        average = round(sum(values) / len(values), 1) if values else 0.0

        return DashboardStats(
            completed_deliveries=await self.completed_deliveries(session.uid),
            total_earnings=await self.total_earnings(session.uid),
            average_rating=average,
            green_score=driver.green_score,
        )

    async def leaderboard(self, size: int | None = None) -> list[LeaderboardEntry]:
        """Top drivers by completed deliveries."""
        size = size or self.settings.leaderboard_size
        completed = await self.store.query(
            Query(ORDERS).where("status", "==", OrderStatus.COMPLETED)
        )
        counts = Counter(doc["driver_id"] for doc in completed if doc.get("driver_id"))
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:size]

        entries = []
        for rank, (driver_id, count) in enumerate(ranked, start=1):
            data = await self.store.get(DRIVERS, driver_id)
            entries.append(
                LeaderboardEntry(
                    rank=rank,
                    driver_id=driver_id,
                    full_name=data.get("full_name") if data else None,
                    completed_deliveries=count,
                )
            )
        return entries

    async def claim_reward(self, session: DriverSession, reward_id: str) -> Driver:
        """Add a reward to the driver's claimed rewards; claiming twice is a no-op."""
        session.require_active()
        rule = REWARDS.get(reward_id)
        if rule is None:
            raise NotFoundError(f"Unknown reward: {reward_id}")

        completed = await self.completed_deliveries(session.uid)

        def plan(current: dict[str, Any] | None) -> WritePlan:
            if current is None:
                raise NotFoundError("Driver profile not found")
            driver = Driver.model_validate(current)
            if rule.id in driver.available_rewards:
                return WritePlan(updates={})
            if not rule.is_met(completed, driver.green_score):
                raise AuthorizationError(f"Not yet eligible for {rule.name}")
            return WritePlan(
                updates={
                    "available_rewards": driver.available_rewards + [rule.id],
                    "updated_at": datetime.now(timezone.utc),
                }
            )

        result = await self.store.transact(DRIVERS, session.uid, plan)
        logger.info("reward_claimed", driver_id=session.uid, reward_id=rule.id)
        return Driver.model_validate(result.document)
