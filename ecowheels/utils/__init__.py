"""Utility modules."""

from ecowheels.utils.logging import setup_logging
from ecowheels.utils.tracing import WorkflowTracer

__all__ = ["setup_logging", "WorkflowTracer"]
