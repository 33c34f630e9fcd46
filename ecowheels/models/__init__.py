"""Data models for the driver backend."""

from ecowheels.models.decline import DeclineReason, DeclineRecord
from ecowheels.models.driver import (
    DocumentRef,
    DocumentType,
    Driver,
    DriverDocuments,
    DriverStatus,
    ProfileCompletion,
    ProfileUpdate,
)
from ecowheels.models.gamification import (
    Badge,
    DashboardStats,
    DriverStats,
    LeaderboardEntry,
    Reward,
)
from ecowheels.models.ledger import (
    EarningsEntry,
    EarningsSummary,
    EarningsType,
    Payout,
    PayoutStatus,
)
from ecowheels.models.order import (
    ACTIVE_STATUSES,
    ASSIGNED_STATUSES,
    Address,
    Order,
    OrderStatus,
)
from ecowheels.models.support import (
    EmergencyAlert,
    EmergencyContact,
    GeoPoint,
    IncidentReport,
    IncidentStatus,
    IncidentType,
)

__all__ = [
    # Order
    "Address",
    "Order",
    "OrderStatus",
    "ASSIGNED_STATUSES",
    "ACTIVE_STATUSES",
    # Driver
    "Driver",
    "DriverDocuments",
    "DriverStatus",
    "DocumentRef",
    "DocumentType",
    "ProfileCompletion",
    "ProfileUpdate",
    # Decline
    "DeclineReason",
    "DeclineRecord",
    # Ledger
    "EarningsEntry",
    "EarningsSummary",
    "EarningsType",
    "Payout",
    "PayoutStatus",
    # Gamification
    "Badge",
    "DashboardStats",
    "DriverStats",
    "LeaderboardEntry",
    "Reward",
    # Support
    "EmergencyAlert",
    "EmergencyContact",
    "GeoPoint",
    "IncidentReport",
    "IncidentStatus",
    "IncidentType",
]
