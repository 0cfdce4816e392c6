"""
Quarter Planner

Quarterly allocation and scoring engine for product roadmaps: quarter
exclusivity for epics, effort star ratings, RICE scores, publish workflow
and member availability checks.
"""

__version__ = "1.0.0"

from .errors import (
    Outcome,
    Result,
    PlanningError,
    ValidationError,
    ConflictError,
    ConfigurationMissing,
    NotFoundError,
    TransportError,
)

from .models import (
    Epic,
    EffortEntry,
    EffortUnit,
    CapacityPlan,
    EffortRatingConfig,
    RoadmapItem,
    RoadmapStatus,
    PublishSummary,
    Team,
    TeamMember,
    UserStory,
    ResourceAssignment,
    current_quarter,
    format_quarter,
    quarter_start,
    quarter_end,
)

from .rating import EffortRatingClassifier, classify
from .scoring import PriorityScorer, rice_score
from .availability import AvailabilityConflictChecker, ranges_overlap
from .registry import QuarterAssignments, QuarterAssignmentRegistry
from .publish import PublishWorkflow, RoadmapState
from .capacity import CapacityAggregator, CapacitySaveReport
from .roadmap import RoadmapPlanner
from .resources import ResourceOverview, ResourcePlanner
from .session import PlanningContext, PlanningSession, ProductCache

__all__ = [
    # Version
    "__version__",

    # Errors and results
    "Outcome",
    "Result",
    "PlanningError",
    "ValidationError",
    "ConflictError",
    "ConfigurationMissing",
    "NotFoundError",
    "TransportError",

    # Models
    "Epic",
    "EffortEntry",
    "EffortUnit",
    "CapacityPlan",
    "EffortRatingConfig",
    "RoadmapItem",
    "RoadmapStatus",
    "PublishSummary",
    "Team",
    "TeamMember",
    "UserStory",
    "ResourceAssignment",
    "current_quarter",
    "format_quarter",
    "quarter_start",
    "quarter_end",

    # Engine
    "EffortRatingClassifier",
    "classify",
    "PriorityScorer",
    "rice_score",
    "AvailabilityConflictChecker",
    "ranges_overlap",
    "QuarterAssignments",
    "QuarterAssignmentRegistry",
    "PublishWorkflow",
    "RoadmapState",
    "CapacityAggregator",
    "CapacitySaveReport",
    "RoadmapPlanner",
    "ResourcePlanner",
    "ResourceOverview",

    # Session
    "PlanningContext",
    "PlanningSession",
    "ProductCache",
]
