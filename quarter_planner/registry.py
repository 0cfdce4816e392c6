"""
Quarter Assignment Registry

Keeps every epic in at most one (year, quarter) across the planning
horizon. ``QuarterAssignments`` is the index storage checks and updates
under its write lock; ``QuarterAssignmentRegistry`` is what a planning
session calls.
"""

import logging
from typing import Iterable, Optional

from .errors import ConflictError, NotFoundError, Result, ValidationError, to_result
from .models import RoadmapItem, format_quarter, validate_quarter

logger = logging.getLogger(__name__)

QuarterKey = tuple[int, int]


class QuarterAssignments:
    """Index of epic id -> (year, quarter)."""

    def __init__(self, mapping: Optional[dict[str, QuarterKey]] = None):
        self._mapping: dict[str, QuarterKey] = dict(mapping or {})

    @classmethod
    def from_items(cls, items: Iterable[RoadmapItem]) -> "QuarterAssignments":
        """Published and draft items both count."""
        return cls({item.epic_id: (item.year, item.quarter) for item in items})

    def __len__(self) -> int:
        return len(self._mapping)

    def __contains__(self, epic_id: str) -> bool:
        return epic_id in self._mapping

    def quarter_of(self, epic_id: str) -> Optional[QuarterKey]:
        return self._mapping.get(epic_id)

    def epics_in(self, year: int, quarter: int) -> set[str]:
        return {e for e, key in self._mapping.items() if key == (year, quarter)}

    def assigned_elsewhere(self, exclude_year: int, exclude_quarter: int) -> set[str]:
        """Epics mapped to any quarter other than the excluded one."""
        return {e for e, key in self._mapping.items() if key != (exclude_year, exclude_quarter)}

    def conflicts(self, year: int, quarter: int, epic_ids: Iterable[str]) -> dict[str, QuarterKey]:
        """Requested epics that already belong to a different quarter."""
        found = {}
        for epic_id in epic_ids:
            key = self._mapping.get(epic_id)
            if key is not None and key != (year, quarter):
                found[epic_id] = key
        return found

    def replace(self, year: int, quarter: int, epic_ids: Iterable[str]) -> None:
        """
        Make ``epic_ids`` exactly the set assigned to (year, quarter).

        All-or-nothing: on conflict nothing changes and ConflictError is raised.
        """
        epic_ids = set(epic_ids)
        clashes = self.conflicts(year, quarter, epic_ids)
        if clashes:
            labels = ", ".join(
                f"{epic_id} ({format_quarter(*key)})" for epic_id, key in sorted(clashes.items())
            )
            raise ConflictError(
                f"Epics already assigned to another quarter: {labels}",
                {
                    "year": year,
                    "quarter": quarter,
                    "conflicts": {e: {"year": k[0], "quarter": k[1]} for e, k in clashes.items()},
                },
            )

        for epic_id in self.epics_in(year, quarter) - epic_ids:
            del self._mapping[epic_id]
        for epic_id in epic_ids:
            self._mapping[epic_id] = (year, quarter)


class QuarterAssignmentRegistry:
    """
    Session-facing view of quarter exclusivity.

    The conflict check runs inside storage's commit, so two sessions
    racing to claim the same epic end with one success and one conflict.

    Usage:
        registry = QuarterAssignmentRegistry(store)
        taken = await registry.list_assigned_elsewhere(ctx, 2025, 2)
        result = await registry.apply(ctx, 2025, 2, {"E1", "E4"})
    """

    def __init__(self, store):
        self.store = store

    async def list_assigned_elsewhere(self, ctx, exclude_year: int, exclude_quarter: int) -> Result:
        """Epic ids held by quarters other than the excluded one."""
        return await to_result(
            self.store.assigned_epic_ids(ctx.product_id, exclude_year, exclude_quarter),
            "list assigned epics",
        )

    async def apply(
        self,
        ctx,
        year: int,
        quarter: int,
        epic_ids: Iterable[str],
        idempotency_key: Optional[str] = None
    ) -> Result:
        """
        Replace the quarter's epic selection with exactly ``epic_ids``.

        Retained epics keep their roadmap item; new ones get a draft item;
        epics left out are freed for any quarter.

        Returns:
            Result whose value is the quarter's stored items on success
        """
        try:
            validate_quarter(year, quarter)
        except ValidationError as e:
            return Result.from_error(e)

        return await to_result(
            self._apply(ctx, year, quarter, set(epic_ids), idempotency_key or ctx.new_key()),
            f"apply {format_quarter(year, quarter)}",
        )

    async def _apply(self, ctx, year, quarter, epic_ids, idempotency_key):
        backlog = {e.epic_id: e for e in await self.store.list_epics(ctx.product_id)}

        current = {}
        if epic_ids - set(backlog):
            current = {
                item.epic_id: item
                for item in await self.store.list_roadmap_items(ctx.product_id, year, quarter)
            }

        # Storage keeps the stored item for epics already in the quarter
        drafts = []
        for epic_id in sorted(epic_ids):
            if epic_id in backlog:
                drafts.append(RoadmapItem.for_epic(ctx.product_id, year, quarter, backlog[epic_id]))
            elif epic_id in current:
                drafts.append(current[epic_id])
            else:
                raise NotFoundError(f"Epic {epic_id} is not in the backlog", {"epicId": epic_id})

        stored = await self.store.assign_epics(
            ctx.product_id, year, quarter, drafts, idempotency_key
        )
        logger.info(
            "%s now holds %d epics for product %s",
            format_quarter(year, quarter), len(stored), ctx.product_id,
        )
        return stored
