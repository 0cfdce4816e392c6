"""
Resource Planner

Teams, team members and member-to-story assignments. Availability is
pre-checked here to give quick feedback; storage re-checks it when the
assignment is committed.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Optional

from .availability import AvailabilityConflictChecker
from .errors import PlanningError, Result, ValidationError, to_result
from .models import ResourceAssignment, Team, TeamMember

logger = logging.getLogger(__name__)


def _require_name(value: Optional[str], label: str) -> str:
    if not value or not value.strip():
        raise ValidationError(f"{label} is required", {"field": label})
    return value.strip()

DEADLINE_WINDOW_DAYS = 30
MAX_DEADLINES = 10


class UtilizationLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class TeamUtilization:
    """Assignments per member of one team, as a percentage."""
    team: Team
    member_count: int = 0
    active_assignments: int = 0

    @property
    def utilization(self) -> float:
        if not self.member_count:
            return 0
        return self.active_assignments * 100 / self.member_count

    @property
    def level(self) -> UtilizationLevel:
        if self.utilization > 80:
            return UtilizationLevel.HIGH
        elif self.utilization > 50:
            return UtilizationLevel.MEDIUM
        return UtilizationLevel.LOW

    def to_dict(self) -> dict:
        return {
            "team": self.team.to_dict(),
            "memberCount": self.member_count,
            "activeAssignments": self.active_assignments,
            "utilization": round(self.utilization, 1),
            "level": self.level.value,
        }


@dataclass
class MemberWorkload:
    """Assignment counts for one member relative to a reference day."""
    member: TeamMember
    total_assignments: int = 0
    current_assignments: int = 0
    upcoming_assignments: int = 0

    def to_dict(self) -> dict:
        return {
            "member": self.member.to_dict(),
            "totalAssignments": self.total_assignments,
            "currentAssignments": self.current_assignments,
            "upcomingAssignments": self.upcoming_assignments,
        }


@dataclass
class ResourceOverview:
    """Team utilization, member workload and upcoming deadlines for a product."""
    as_of: date
    teams: list[TeamUtilization] = field(default_factory=list)
    members: list[MemberWorkload] = field(default_factory=list)
    assignment_count: int = 0
    deadlines: list[ResourceAssignment] = field(default_factory=list)

    @property
    def member_count(self) -> int:
        return len(self.members)

    def to_dict(self) -> dict:
        return {
            "asOf": self.as_of.isoformat(),
            "summary": {
                "teams": len(self.teams),
                "members": self.member_count,
                "assignments": self.assignment_count,
                "upcomingDeadlines": len(self.deadlines),
            },
            "teams": [t.to_dict() for t in self.teams],
            "members": [m.to_dict() for m in self.members],
            "deadlines": [a.to_dict() for a in self.deadlines],
        }


def build_overview(
    teams: list[Team],
    members: list[TeamMember],
    assignments: list[ResourceAssignment],
    today: date
) -> ResourceOverview:
    """Summarize current staffing as of ``today``."""
    by_member: dict[int, list[ResourceAssignment]] = {}
    for assignment in assignments:
        by_member.setdefault(assignment.member_id, []).append(assignment)

    utilization = []
    for team in teams:
        team_members = [m for m in members if m.team_id == team.id]
        utilization.append(TeamUtilization(
            team=team,
            member_count=len(team_members),
            active_assignments=sum(len(by_member.get(m.id, [])) for m in team_members),
        ))

    workload = []
    for member in members:
        booked = by_member.get(member.id, [])
        workload.append(MemberWorkload(
            member=member,
            total_assignments=len(booked),
            current_assignments=len([a for a in booked if a.overlaps(today, today)]),
            upcoming_assignments=len([a for a in booked if a.start_date > today]),
        ))

    horizon = today + timedelta(days=DEADLINE_WINDOW_DAYS)
    deadlines = sorted(
        (a for a in assignments if today <= a.end_date <= horizon),
        key=lambda a: (a.end_date, a.id),
    )[:MAX_DEADLINES]

    return ResourceOverview(
        as_of=today,
        teams=utilization,
        members=workload,
        assignment_count=len(assignments),
        deadlines=deadlines,
    )


class ResourcePlanner:
    """
    Team and assignment operations for one product.

    Usage:
        planner = ResourcePlanner(store)
        team = (await planner.create_team(ctx, "Platform")).value
        await planner.add_member(ctx, team.id, "Alice", role="Backend")
    """

    def __init__(self, store, checker: Optional[AvailabilityConflictChecker] = None):
        self.store = store
        self.checker = checker or AvailabilityConflictChecker()

    # Teams

    async def create_team(
        self,
        ctx,
        name: str,
        description: str = "",
        idempotency_key: Optional[str] = None
    ) -> Result:
        try:
            name = _require_name(name, "Team name")
        except ValidationError as e:
            return Result.from_error(e)
        return await to_result(
            self.store.create_team(ctx.product_id, name, description or "", idempotency_key or ctx.new_key()),
            f"create team {name}",
        )

    async def list_teams(self, ctx) -> Result:
        return await to_result(self.store.list_teams(ctx.product_id), "list teams")

    async def delete_team(self, ctx, team_id: int, idempotency_key: Optional[str] = None) -> Result:
        """Removes the team with its members and their assignments."""
        return await to_result(
            self.store.delete_team(ctx.product_id, team_id, idempotency_key or ctx.new_key()),
            f"delete team {team_id}",
        )

    # Members

    async def add_member(
        self,
        ctx,
        team_id: int,
        member_name: str,
        role: Optional[str] = None,
        email: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> Result:
        try:
            member_name = _require_name(member_name, "Member name")
        except ValidationError as e:
            return Result.from_error(e)
        return await to_result(
            self.store.add_member(
                ctx.product_id, team_id, member_name, role, email, idempotency_key or ctx.new_key()
            ),
            f"add member {member_name}",
        )

    async def list_members(self, ctx, team_id: Optional[int] = None) -> Result:
        return await to_result(self.store.list_members(ctx.product_id, team_id), "list members")

    async def delete_member(self, ctx, member_id: int, idempotency_key: Optional[str] = None) -> Result:
        return await to_result(
            self.store.delete_member(ctx.product_id, member_id, idempotency_key or ctx.new_key()),
            f"delete member {member_id}",
        )

    async def available_members(self, ctx, start: date, end: date) -> Result:
        """
        Members free for the whole inclusive range.

        Advisory only: the list can go stale before an assignment is made.
        """
        members = await to_result(self.store.list_members(ctx.product_id), "list members")
        if not members.ok:
            return members
        assignments = await to_result(self.store.list_assignments(ctx.product_id), "list assignments")
        if not assignments.ok:
            return assignments
        try:
            return Result.success(
                self.checker.available_members(members.value, start, end, assignments.value)
            )
        except ValidationError as e:
            return Result.from_error(e)

    # Stories and assignments

    async def list_user_stories(self, ctx, epic_id: str) -> Result:
        return await to_result(
            self.store.list_user_stories(ctx.product_id, epic_id),
            f"list user stories of {epic_id}",
        )

    async def create_assignment(
        self,
        ctx,
        user_story_id: int,
        member_id: int,
        start: date,
        end: date,
        idempotency_key: Optional[str] = None
    ) -> Result:
        """
        Assign a member to a story for [start, end].

        Returns:
            VALIDATION_ERROR for an inverted range, CONFLICT when the member
            is already booked in the range, else the stored assignment
        """
        idempotency_key = idempotency_key or ctx.new_key()

        existing = await to_result(self.store.list_assignments(ctx.product_id), "list assignments")
        if not existing.ok:
            return existing
        try:
            self.checker.check(member_id, start, end, existing.value)
        except PlanningError as e:
            logger.info("Assignment for member %s rejected: %s", member_id, e.message)
            return Result.from_error(e)

        # Storage repeats the overlap check inside its own commit
        return await to_result(
            self.store.create_assignment(
                ctx.product_id, user_story_id, member_id, start, end, idempotency_key
            ),
            f"assign member {member_id}",
        )

    async def list_assignments(self, ctx, epic_id: Optional[str] = None) -> Result:
        """All assignments, or those on stories of one epic."""
        assignments = await to_result(self.store.list_assignments(ctx.product_id), "list assignments")
        if not assignments.ok or epic_id is None:
            return assignments

        stories = await self.list_user_stories(ctx, epic_id)
        if not stories.ok:
            return stories
        story_ids = {s.id for s in stories.value}
        return Result.success([a for a in assignments.value if a.user_story_id in story_ids])

    async def delete_assignment(self, ctx, assignment_id: int, idempotency_key: Optional[str] = None) -> Result:
        return await to_result(
            self.store.delete_assignment(ctx.product_id, assignment_id, idempotency_key or ctx.new_key()),
            f"delete assignment {assignment_id}",
        )

    # Overview

    async def overview(self, ctx, today: Optional[date] = None) -> Result:
        """
        Team utilization, member workload and deadlines in the next 30 days.

        Args:
            today: Reference day for current and upcoming counts (default: today)

        Returns:
            Result whose value is a ResourceOverview
        """
        teams = await self.list_teams(ctx)
        if not teams.ok:
            return teams
        members = await self.list_members(ctx)
        if not members.ok:
            return members
        assignments = await self.list_assignments(ctx)
        if not assignments.ok:
            return assignments

        overview = build_overview(teams.value, members.value, assignments.value, today or date.today())
        logger.debug(
            "Overview for product %s: %d teams, %d members, %d deadlines",
            ctx.product_id, len(overview.teams), overview.member_count, len(overview.deadlines),
        )
        return Result.success(overview)
