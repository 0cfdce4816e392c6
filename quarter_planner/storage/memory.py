"""
In-memory planning store.

Backs the HTTP API and the tests. A single lock guards every read and
write, so exclusivity and availability checks always see the state they
commit against. Successful writes are remembered per idempotency key.
"""

import copy
import itertools
import logging
import threading
from collections import OrderedDict
from dataclasses import replace
from datetime import date
from typing import Any, Callable, Optional

from ..availability import AvailabilityConflictChecker, validate_range
from ..errors import NotFoundError, ValidationError
from ..models import (
    RATING_FIELDS,
    CapacityPlan,
    EffortRatingConfig,
    EffortUnit,
    Epic,
    PublishSummary,
    ResourceAssignment,
    RoadmapItem,
    Team,
    TeamMember,
    UserStory,
    validate_quarter,
    validate_rating,
)
from ..publish import publish_items
from ..registry import QuarterAssignments
from ..scoring import PriorityScorer
from .base import PlanningStore

logger = logging.getLogger(__name__)


class InMemoryPlanningStore(PlanningStore):
    """
    Thread-safe in-process store.

    Usage:
        store = InMemoryPlanningStore(default_rating_configs=config.default_rating_configs)
        store.add_epic(1, Epic(epic_id="E1", name="Checkout revamp"))
    """

    def __init__(
        self,
        default_rating_configs: Optional[dict[EffortUnit, dict]] = None,
        max_receipts: int = 1024
    ):
        self.default_rating_configs = default_rating_configs or {}
        self.scorer = PriorityScorer()
        self.checker = AvailabilityConflictChecker()

        self._lock = threading.RLock()
        self._ids = itertools.count(1)
        self.max_receipts = max_receipts
        self._receipts: OrderedDict[tuple[str, str], Any] = OrderedDict()

        self._epics: dict[int, dict[str, Epic]] = {}
        self._stories: dict[int, dict[int, UserStory]] = {}
        self._plans: dict[tuple[int, int, int], CapacityPlan] = {}
        self._configs: dict[tuple[int, EffortUnit], EffortRatingConfig] = {}
        self._seeded: set[int] = set()
        # One item per epic across every quarter
        self._roadmap: dict[int, dict[str, RoadmapItem]] = {}
        self._teams: dict[int, dict[int, Team]] = {}
        self._members: dict[int, dict[int, TeamMember]] = {}
        self._assignments: dict[int, dict[int, ResourceAssignment]] = {}

    def _once(self, operation: str, idempotency_key: Optional[str], apply: Callable[[], Any]) -> Any:
        """Run ``apply`` under the lock unless this key already succeeded."""
        with self._lock:
            receipt = (operation, idempotency_key)
            if idempotency_key and receipt in self._receipts:
                logger.debug("Replaying %s for key %s", operation, idempotency_key)
                self._receipts.move_to_end(receipt)
                return copy.deepcopy(self._receipts[receipt])
            value = apply()
            if idempotency_key:
                self._receipts[receipt] = copy.deepcopy(value)
                # Only the most recent keys can be replayed
                while len(self._receipts) > self.max_receipts:
                    self._receipts.popitem(last=False)
            return copy.deepcopy(value)

    def _read(self, read: Callable[[], Any]) -> Any:
        with self._lock:
            return copy.deepcopy(read())

    # Seeding helpers

    def add_epic(self, product_id: int, epic: Epic) -> Epic:
        epic.validate()
        with self._lock:
            self._epics.setdefault(product_id, {})[epic.epic_id] = copy.deepcopy(epic)
        return epic

    def add_user_story(self, product_id: int, story: UserStory) -> UserStory:
        with self._lock:
            self._stories.setdefault(product_id, {})[story.id] = copy.deepcopy(story)
        return story

    # Backlog

    async def list_epics(self, product_id: int) -> list[Epic]:
        return self._read(lambda: list(self._epics.get(product_id, {}).values()))

    async def save_epic(self, product_id: int, epic: Epic, idempotency_key: Optional[str] = None) -> Epic:
        def apply():
            return self.add_epic(product_id, epic)
        return self._once(f"save_epic:{product_id}", idempotency_key, apply)

    async def list_user_stories(self, product_id: int, epic_id: str) -> list[UserStory]:
        return self._read(lambda: [
            s for s in self._stories.get(product_id, {}).values() if s.epic_id == epic_id
        ])

    # Capacity

    async def get_capacity_plan(self, product_id: int, year: int, quarter: int) -> CapacityPlan:
        validate_quarter(year, quarter)
        return self._read(lambda: self._plans.get(
            (product_id, year, quarter),
            CapacityPlan(product_id=product_id, year=year, quarter=quarter),
        ))

    async def save_capacity_plan(self, plan: CapacityPlan, idempotency_key: Optional[str] = None) -> CapacityPlan:
        def apply():
            plan.validate()
            self._plans[(plan.product_id, plan.year, plan.quarter)] = copy.deepcopy(plan)
            return plan
        return self._once(f"save_capacity_plan:{plan.product_id}", idempotency_key, apply)

    def _ensure_configs(self, product_id: int) -> None:
        if product_id in self._seeded:
            return
        self._seeded.add(product_id)
        for unit, bands in self.default_rating_configs.items():
            self._configs.setdefault(
                (product_id, unit),
                EffortRatingConfig.from_bands(product_id, unit, bands),
            )

    async def list_rating_configs(self, product_id: int) -> list[EffortRatingConfig]:
        def read():
            self._ensure_configs(product_id)
            return [c for (pid, _), c in sorted(self._configs.items(), key=lambda kv: kv[0][1].value) if pid == product_id]
        return self._read(read)

    async def save_rating_config(
        self,
        config: EffortRatingConfig,
        idempotency_key: Optional[str] = None
    ) -> EffortRatingConfig:
        def apply():
            self._ensure_configs(config.product_id)
            self._configs[(config.product_id, config.unit_type)] = copy.deepcopy(config)
            return config
        return self._once(f"save_rating_config:{config.product_id}", idempotency_key, apply)

    # Roadmap

    def _quarter_items(self, product_id: int, year: int, quarter: int) -> list[RoadmapItem]:
        return [
            item for item in self._roadmap.get(product_id, {}).values()
            if (item.year, item.quarter) == (year, quarter)
        ]

    async def list_roadmap_items(self, product_id: int, year: int, quarter: int) -> list[RoadmapItem]:
        validate_quarter(year, quarter)
        return self._read(lambda: self._quarter_items(product_id, year, quarter))

    async def list_published_items(self, product_id: int, year: Optional[int] = None) -> list[RoadmapItem]:
        return self._read(lambda: [
            item for item in self._roadmap.get(product_id, {}).values()
            if item.published and (year is None or item.year == year)
        ])

    async def assigned_epic_ids(self, product_id: int, exclude_year: int, exclude_quarter: int) -> set[str]:
        return self._read(lambda: QuarterAssignments.from_items(
            self._roadmap.get(product_id, {}).values()
        ).assigned_elsewhere(exclude_year, exclude_quarter))

    async def replace_roadmap_items(
        self,
        product_id: int,
        year: int,
        quarter: int,
        items: list[RoadmapItem],
        idempotency_key: Optional[str] = None
    ) -> list[RoadmapItem]:
        def apply():
            epic_ids = self._selection(year, quarter, items)
            for item in items:
                item.validate()

            roadmap = self._roadmap.setdefault(product_id, {})
            # Raises ConflictError before anything is written
            QuarterAssignments.from_items(roadmap.values()).replace(year, quarter, epic_ids)

            for item in self._quarter_items(product_id, year, quarter):
                if item.epic_id not in epic_ids:
                    del roadmap[item.epic_id]

            stored = []
            for item in items:
                existing = roadmap.get(item.epic_id)
                item = self.scorer.rescore(replace(
                    item,
                    product_id=product_id,
                    year=year,
                    quarter=quarter,
                    published=existing.published if existing else False,
                ))
                roadmap[item.epic_id] = item
                stored.append(item)
            return stored

        return self._once(f"replace_roadmap_items:{product_id}", idempotency_key, apply)

    async def assign_epics(
        self,
        product_id: int,
        year: int,
        quarter: int,
        drafts: list[RoadmapItem],
        idempotency_key: Optional[str] = None
    ) -> list[RoadmapItem]:
        def apply():
            epic_ids = self._selection(year, quarter, drafts)
            retained = {item.epic_id: item for item in self._quarter_items(product_id, year, quarter)}
            for draft in drafts:
                if draft.epic_id not in retained:
                    draft.validate()

            roadmap = self._roadmap.setdefault(product_id, {})
            QuarterAssignments.from_items(roadmap.values()).replace(year, quarter, epic_ids)

            for epic_id in set(retained) - set(epic_ids):
                del roadmap[epic_id]

            stored = []
            for draft in drafts:
                item = retained.get(draft.epic_id)
                if item is None:
                    item = self.scorer.rescore(replace(
                        draft, product_id=product_id, year=year, quarter=quarter, published=False
                    ))
                    roadmap[item.epic_id] = item
                stored.append(item)
            return stored

        return self._once(f"assign_epics:{product_id}", idempotency_key, apply)

    @staticmethod
    def _selection(year: int, quarter: int, items: list[RoadmapItem]) -> list[str]:
        validate_quarter(year, quarter)
        epic_ids = [item.epic_id for item in items]
        if len(set(epic_ids)) != len(epic_ids):
            raise ValidationError("Each epic may appear only once in a quarter")
        return epic_ids

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
        def apply():
            if field not in RATING_FIELDS:
                raise ValidationError(f"Unknown rating field {field!r}", {"field": field})
            validate_rating(field, value)

            roadmap = self._roadmap.get(product_id, {})
            item = roadmap.get(epic_id)
            if item is None or (item.year, item.quarter) != (year, quarter):
                raise NotFoundError(
                    f"Epic {epic_id} has no roadmap item in Q{quarter} {year}",
                    {"epicId": epic_id, "year": year, "quarter": quarter},
                )
            item = self.scorer.rescore(replace(item, **{field: value}))
            roadmap[epic_id] = item
            return item

        return self._once(f"update_roadmap_field:{product_id}", idempotency_key, apply)

    async def publish_quarter(
        self,
        product_id: int,
        year: int,
        quarter: int,
        epic_ids: Optional[list[str]] = None,
        idempotency_key: Optional[str] = None
    ) -> PublishSummary:
        def apply():
            validate_quarter(year, quarter)
            items = self._quarter_items(product_id, year, quarter)
            published, summary = publish_items(year, quarter, items, epic_ids)
            roadmap = self._roadmap.setdefault(product_id, {})
            for item in published:
                roadmap[item.epic_id] = item
            return summary

        return self._once(f"publish_quarter:{product_id}", idempotency_key, apply)

    # Resource planning

    async def list_teams(self, product_id: int) -> list[Team]:
        return self._read(lambda: list(self._teams.get(product_id, {}).values()))

    async def create_team(
        self,
        product_id: int,
        name: str,
        description: str = "",
        idempotency_key: Optional[str] = None
    ) -> Team:
        def apply():
            if not name or not name.strip():
                raise ValidationError("Team name is required", {"field": "name"})
            team = Team(id=next(self._ids), product_id=product_id, name=name.strip(), description=description)
            self._teams.setdefault(product_id, {})[team.id] = team
            return team
        return self._once(f"create_team:{product_id}", idempotency_key, apply)

    def _drop_member(self, product_id: int, member_id: int) -> None:
        self._members.get(product_id, {}).pop(member_id, None)
        assignments = self._assignments.get(product_id, {})
        for assignment_id in [a.id for a in assignments.values() if a.member_id == member_id]:
            del assignments[assignment_id]

    async def delete_team(self, product_id: int, team_id: int, idempotency_key: Optional[str] = None) -> None:
        def apply():
            teams = self._teams.get(product_id, {})
            if team_id not in teams:
                raise NotFoundError(f"Team {team_id} not found", {"teamId": team_id})
            del teams[team_id]
            for member in list(self._members.get(product_id, {}).values()):
                if member.team_id == team_id:
                    self._drop_member(product_id, member.id)
        return self._once(f"delete_team:{product_id}", idempotency_key, apply)

    async def list_members(self, product_id: int, team_id: Optional[int] = None) -> list[TeamMember]:
        return self._read(lambda: [
            m for m in self._members.get(product_id, {}).values()
            if team_id is None or m.team_id == team_id
        ])

    async def add_member(
        self,
        product_id: int,
        team_id: int,
        member_name: str,
        role: Optional[str] = None,
        email: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> TeamMember:
        def apply():
            if not member_name or not member_name.strip():
                raise ValidationError("Member name is required", {"field": "memberName"})
            if team_id not in self._teams.get(product_id, {}):
                raise NotFoundError(f"Team {team_id} not found", {"teamId": team_id})
            member = TeamMember(
                id=next(self._ids), team_id=team_id, member_name=member_name.strip(), role=role, email=email
            )
            self._members.setdefault(product_id, {})[member.id] = member
            return member
        return self._once(f"add_member:{product_id}", idempotency_key, apply)

    async def delete_member(self, product_id: int, member_id: int, idempotency_key: Optional[str] = None) -> None:
        def apply():
            if member_id not in self._members.get(product_id, {}):
                raise NotFoundError(f"Member {member_id} not found", {"memberId": member_id})
            self._drop_member(product_id, member_id)
        return self._once(f"delete_member:{product_id}", idempotency_key, apply)

    async def list_assignments(self, product_id: int) -> list[ResourceAssignment]:
        return self._read(lambda: list(self._assignments.get(product_id, {}).values()))

    async def create_assignment(
        self,
        product_id: int,
        user_story_id: int,
        member_id: int,
        start: date,
        end: date,
        idempotency_key: Optional[str] = None
    ) -> ResourceAssignment:
        def apply():
            validate_range(start, end)
            if user_story_id not in self._stories.get(product_id, {}):
                raise NotFoundError(f"User story {user_story_id} not found", {"userStoryId": user_story_id})
            if member_id not in self._members.get(product_id, {}):
                raise NotFoundError(f"Member {member_id} not found", {"memberId": member_id})

            assignments = self._assignments.setdefault(product_id, {})
            self.checker.check(member_id, start, end, assignments.values())

            assignment = ResourceAssignment(
                id=next(self._ids),
                user_story_id=user_story_id,
                member_id=member_id,
                start_date=start,
                end_date=end,
                product_id=product_id,
            )
            assignments[assignment.id] = assignment
            return assignment
        return self._once(f"create_assignment:{product_id}", idempotency_key, apply)

    async def delete_assignment(
        self,
        product_id: int,
        assignment_id: int,
        idempotency_key: Optional[str] = None
    ) -> None:
        def apply():
            assignments = self._assignments.get(product_id, {})
            if assignment_id not in assignments:
                raise NotFoundError(f"Assignment {assignment_id} not found", {"assignmentId": assignment_id})
            del assignments[assignment_id]
        return self._once(f"delete_assignment:{product_id}", idempotency_key, apply)
