"""Earnings and payout records."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field


class EarningsType(str, Enum):
    BASE = "base"
    DISTANCE = "distance"
    PEAK = "peak"
    TIP = "tip"


class PayoutStatus(str, Enum):
    PENDING = "Pending"
    COMPLETED = "Completed"
    FAILED = "Failed"


class EarningsEntry(BaseModel):
    """Append-only ledger line written when an order is completed."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    driver_id: str
    order_id: str
    order_code: str | None = None
    amount: Decimal = Field(ge=0)
    date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    type: EarningsType = EarningsType.BASE


class Payout(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    driver_id: str
    amount: Decimal = Field(gt=0)
    date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: PayoutStatus = PayoutStatus.PENDING


class EarningsBreakdownItem(BaseModel):
    type: EarningsType
    name: str
    value: Decimal


class MonthlyEarnings(BaseModel):
    month: str
    earnings: Decimal


class EarningsSummary(BaseModel):
    """Aggregated view of a driver's ledger."""

    total_earnings: Decimal
    weekly_earnings: Decimal
    available_balance: Decimal
    tips: Decimal
    breakdown: list[EarningsBreakdownItem]
    monthly: list[MonthlyEarnings]
