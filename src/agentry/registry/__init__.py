"""
Agent registry.

The reconciler holds the pure install/update/enable/disable/remove/sync
transitions; AgentRegistry wraps them with manifest loading and saving.
"""

from agentry.registry.batch import BatchResult, ItemOutcome, Status
from agentry.registry.materializer import Materializer
from agentry.registry.reconciler import SyncMode, SyncResult, Transition
from agentry.registry.service import (
    AgentListing,
    AgentRegistry,
    SyncReport,
    ValidationReport,
)

__all__ = [
    # Service
    "AgentRegistry",
    "AgentListing",
    "SyncReport",
    "ValidationReport",
    # Reconciler
    "SyncMode",
    "SyncResult",
    "Transition",
    # Support
    "BatchResult",
    "ItemOutcome",
    "Materializer",
    "Status",
]
