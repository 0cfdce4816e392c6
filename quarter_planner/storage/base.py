"""
Planning storage interface.

Every engine component talks to persistence through this interface.
Writes that touch quarter exclusivity or member availability must run
their checks in the same critical section as the write. Mutating calls
take an idempotency key; a repeated key returns the first successful result
without applying the change again.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional

from ..models import (
    CapacityPlan,
    EffortRatingConfig,
    Epic,
    PublishSummary,
    ResourceAssignment,
    RoadmapItem,
    Team,
    TeamMember,
    UserStory,
)


class PlanningStore(ABC):
    """Abstract base class for planning storage collaborators."""

    # Backlog

    @abstractmethod
    async def list_epics(self, product_id: int) -> list[Epic]:
        pass

    @abstractmethod
    async def save_epic(self, product_id: int, epic: Epic, idempotency_key: Optional[str] = None) -> Epic:
        pass

    @abstractmethod
    async def list_user_stories(self, product_id: int, epic_id: str) -> list[UserStory]:
        pass

    # Capacity

    @abstractmethod
    async def get_capacity_plan(self, product_id: int, year: int, quarter: int) -> CapacityPlan:
        """Stored plan, or an empty plan when the quarter has none."""
        pass

    @abstractmethod
    async def save_capacity_plan(self, plan: CapacityPlan, idempotency_key: Optional[str] = None) -> CapacityPlan:
        """Replace the quarter's plan wholesale."""
        pass

    @abstractmethod
    async def list_rating_configs(self, product_id: int) -> list[EffortRatingConfig]:
        pass

    @abstractmethod
    async def save_rating_config(
        self,
        config: EffortRatingConfig,
        idempotency_key: Optional[str] = None
    ) -> EffortRatingConfig:
        pass

    # Roadmap

    @abstractmethod
    async def list_roadmap_items(self, product_id: int, year: int, quarter: int) -> list[RoadmapItem]:
        pass

    @abstractmethod
    async def list_published_items(self, product_id: int, year: Optional[int] = None) -> list[RoadmapItem]:
        pass

    @abstractmethod
    async def assigned_epic_ids(self, product_id: int, exclude_year: int, exclude_quarter: int) -> set[str]:
        pass

    @abstractmethod
    async def replace_roadmap_items(
        self,
        product_id: int,
        year: int,
        quarter: int,
        items: list[RoadmapItem],
        idempotency_key: Optional[str] = None
    ) -> list[RoadmapItem]:
        """
        Make ``items`` the quarter's full item set.

        Raises ConflictError, leaving everything unchanged, when any epic
        is held by another quarter at commit time. Existing items keep
        their published flag.
        """
        pass

    @abstractmethod
    async def assign_epics(
        self,
        product_id: int,
        year: int,
        quarter: int,
        drafts: list[RoadmapItem],
        idempotency_key: Optional[str] = None
    ) -> list[RoadmapItem]:
        """
        Make the drafts' epics exactly the quarter's selection.

        Epics already in the quarter keep their stored item as it is at
        commit time and their draft is ignored. Other drafts are stored as
        new unpublished items. Conflicts behave as in replace_roadmap_items.
        """
        pass

    @abstractmethod
    async def update_roadmap_field(
        self,
        product_id: int,
        year: int,
        quarter: int,
        epic_id: str,
        field: str,
        value: int,
        idempotency_key: Optional[str] = None
    ) -> RoadmapItem:
        """Write one rating field and rescore. NotFoundError if no item."""
        pass

    @abstractmethod
    async def publish_quarter(
        self,
        product_id: int,
        year: int,
        quarter: int,
        epic_ids: Optional[list[str]] = None,
        idempotency_key: Optional[str] = None
    ) -> PublishSummary:
        pass

    # Resource planning

    @abstractmethod
    async def list_teams(self, product_id: int) -> list[Team]:
        pass

    @abstractmethod
    async def create_team(
        self,
        product_id: int,
        name: str,
        description: str = "",
        idempotency_key: Optional[str] = None
    ) -> Team:
        pass

    @abstractmethod
    async def delete_team(self, product_id: int, team_id: int, idempotency_key: Optional[str] = None) -> None:
        pass

    @abstractmethod
    async def list_members(self, product_id: int, team_id: Optional[int] = None) -> list[TeamMember]:
        pass

    @abstractmethod
    async def add_member(
        self,
        product_id: int,
        team_id: int,
        member_name: str,
        role: Optional[str] = None,
        email: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> TeamMember:
        pass

    @abstractmethod
    async def delete_member(self, product_id: int, member_id: int, idempotency_key: Optional[str] = None) -> None:
        pass

    @abstractmethod
    async def list_assignments(self, product_id: int) -> list[ResourceAssignment]:
        pass

    @abstractmethod
    async def create_assignment(
        self,
        product_id: int,
        user_story_id: int,
        member_id: int,
        start: date,
        end: date,
        idempotency_key: Optional[str] = None
    ) -> ResourceAssignment:
        """Raises ValidationError for start > end, ConflictError on overlap."""
        pass

    @abstractmethod
    async def delete_assignment(
        self,
        product_id: int,
        assignment_id: int,
        idempotency_key: Optional[str] = None
    ) -> None:
        pass
