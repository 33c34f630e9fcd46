"""Persistence layer."""

from ecowheels.state.documents import DocumentStore, Query, Subscription
from ecowheels.state.manager import StateManager, get_state_manager

__all__ = ["StateManager", "DocumentStore", "Query", "Subscription", "get_state_manager"]
