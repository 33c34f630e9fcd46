"""Driver-facing services built on the document store."""

from ecowheels.services.earnings import EarningsService
from ecowheels.services.gamification import GamificationService
from ecowheels.services.profile import ProfileService
from ecowheels.services.support import SupportService

__all__ = ["EarningsService", "GamificationService", "ProfileService", "SupportService"]
