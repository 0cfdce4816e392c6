"""
Availability Conflict Checker

Decides whether a team member is free for an inclusive date range given
their existing assignments. Used to prune candidate lists in the client
and enforced again by storage when an assignment is committed.
"""

from datetime import date
from typing import Iterable

from .errors import ConflictError, ValidationError
from .models import ResourceAssignment, TeamMember


def ranges_overlap(start1: date, end1: date, start2: date, end2: date) -> bool:
    """Inclusive ranges [start1, end1] and [start2, end2] share at least one day."""
    return start1 <= end2 and start2 <= end1


def validate_range(start: date, end: date) -> None:
    if start > end:
        raise ValidationError(
            f"Start date {start.isoformat()} is after end date {end.isoformat()}",
            {"startDate": start.isoformat(), "endDate": end.isoformat()},
        )


class AvailabilityConflictChecker:
    """
    Overlap checks for member assignments.

    Usage:
        checker = AvailabilityConflictChecker()
        if checker.is_available(member_id, start, end, assignments):
            ...
    """

    def conflicts(
        self,
        member_id: int,
        start: date,
        end: date,
        existing: Iterable[ResourceAssignment]
    ) -> list[ResourceAssignment]:
        """Existing assignments of ``member_id`` that overlap [start, end]."""
        validate_range(start, end)
        return [
            a for a in existing
            if a.member_id == member_id and a.overlaps(start, end)
        ]

    def is_available(
        self,
        member_id: int,
        start: date,
        end: date,
        existing: Iterable[ResourceAssignment]
    ) -> bool:
        return not self.conflicts(member_id, start, end, existing)

    def check(
        self,
        member_id: int,
        start: date,
        end: date,
        existing: Iterable[ResourceAssignment]
    ) -> None:
        """Raise ValidationError for an inverted range, ConflictError on overlap."""
        clashes = self.conflicts(member_id, start, end, existing)
        if clashes:
            raise ConflictError(
                f"Member {member_id} is already assigned between {start.isoformat()} and {end.isoformat()}",
                {"memberId": member_id, "conflictingAssignmentIds": [a.id for a in clashes]},
            )

    def available_members(
        self,
        members: Iterable[TeamMember],
        start: date,
        end: date,
        assignments: Iterable[ResourceAssignment]
    ) -> list[TeamMember]:
        """Members with no assignment overlapping [start, end]."""
        validate_range(start, end)
        assignments = list(assignments)
        busy = {a.member_id for a in assignments if a.overlaps(start, end)}
        return [m for m in members if m.id not in busy]
