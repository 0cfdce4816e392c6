"""
Quarter Planner - Storage

Persistence collaborators behind the planning engine:
- InMemoryPlanningStore: in-process store backing the API and tests
- HttpPlanningStore: client for the planning HTTP API
"""

from .base import PlanningStore
from .memory import InMemoryPlanningStore
from .remote import HttpPlanningStore, error_for_response

__all__ = [
    "PlanningStore",
    "InMemoryPlanningStore",
    "HttpPlanningStore",
    "error_for_response",
]
