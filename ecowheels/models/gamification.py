"""Badge, reward and stats models."""

from decimal import Decimal

from pydantic import BaseModel, Field


class Badge(BaseModel):
    id: str
    name: str
    milestone: int = Field(description="Completed deliveries required")
    earned: bool = False


class Reward(BaseModel):
    id: str
    name: str
    description: str
    required_deliveries: int
    required_green_score: int | None = None
    eligible: bool = False
    claimed: bool = False


class DriverStats(BaseModel):
    """Progress shown on the rewards page."""

    completed_deliveries: int
    total_earnings: Decimal
    green_score: int
    badges: list[Badge]
    rewards: list[Reward]


class DashboardStats(BaseModel):
    completed_deliveries: int
    total_earnings: Decimal
    average_rating: float
    green_score: int


class LeaderboardEntry(BaseModel):
    rank: int
    driver_id: str
    full_name: str | None = None
    completed_deliveries: int
