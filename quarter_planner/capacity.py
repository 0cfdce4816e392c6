"""
Capacity Aggregator

Sums capacity-plan effort per epic and per team, and runs the save
pipeline: save the plan, classify each epic's total, then push each
rating to the quarter's roadmap item. Pushes fan out with bounded
concurrency and fail independently.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Optional

from .errors import PlanningError, Result, to_result
from .models import CapacityPlan, format_quarter, validate_quarter
from .rating import EffortRatingClassifier

logger = logging.getLogger(__name__)


@dataclass
class CapacitySaveReport:
    """Outcome of a capacity plan save and its rating fan-out."""
    save: Result
    totals: dict[str, float] = field(default_factory=dict)
    ratings: dict[str, Result] = field(default_factory=dict)

    @property
    def saved(self) -> bool:
        return self.save.ok

    @property
    def pushed(self) -> list[str]:
        return [epic_id for epic_id, r in self.ratings.items() if r.ok]

    @property
    def failed(self) -> dict[str, Result]:
        return {epic_id: r for epic_id, r in self.ratings.items() if not r.ok}

    @property
    def ok(self) -> bool:
        return self.saved and not self.failed

    def to_dict(self) -> dict:
        return {
            "save": self.save.to_dict(),
            "totals": self.totals,
            "ratings": {
                epic_id: {
                    **r.to_dict(),
                    "effortRating": r.value.effort_rating if r.ok else None,
                }
                for epic_id, r in self.ratings.items()
            },
        }


class CapacityAggregator:
    """
    Capacity totals and the save -> classify -> push pipeline.

    Usage:
        aggregator = CapacityAggregator(store, fanout_limit=4)
        report = await aggregator.save(ctx, plan)
        for epic_id, result in report.failed.items():
            print(epic_id, result.outcome.value)
    """

    def __init__(self, store, fanout_limit: int = 4):
        self.store = store
        self.fanout_limit = max(1, fanout_limit)

    # Totals

    @staticmethod
    def total_for_epic(plan: CapacityPlan, epic_id: str) -> float:
        """Sum over every team; teams without an entry add zero."""
        return sum(e.effort_amount for e in plan.entries if e.epic_id == epic_id)

    @staticmethod
    def total_for_team(plan: CapacityPlan, team_id: int) -> float:
        return sum(e.effort_amount for e in plan.entries if e.team_id == team_id)

    @staticmethod
    def grand_total(plan: CapacityPlan) -> float:
        return sum(e.effort_amount for e in plan.entries)

    def epic_totals(self, plan: CapacityPlan) -> dict[str, float]:
        return {epic_id: self.total_for_epic(plan, epic_id) for epic_id in plan.epic_ids}

    def team_totals(self, plan: CapacityPlan, team_ids: list[int]) -> dict[int, float]:
        return {team_id: self.total_for_team(plan, team_id) for team_id in team_ids}

    # Pipeline

    async def load(self, ctx, year: int, quarter: int) -> Result:
        """Stored plan, or an empty SPRINTS plan when none has been saved."""
        return await to_result(
            self.store.get_capacity_plan(ctx.product_id, year, quarter),
            f"load capacity plan {format_quarter(year, quarter)}",
        )

    async def save(self, ctx, plan: CapacityPlan, idempotency_key: Optional[str] = None) -> CapacitySaveReport:
        """
        Save the plan, then recompute and push every epic's effort rating.

        Ratings are only pushed after the save is acknowledged. A failed
        push is reported for its epic and does not stop the others.
        """
        idempotency_key = idempotency_key or ctx.new_key()
        try:
            validate_quarter(plan.year, plan.quarter)
            plan.validate()
        except PlanningError as e:
            logger.warning("Rejected capacity plan %s: %s", format_quarter(plan.year, plan.quarter), e.message)
            return CapacitySaveReport(save=Result.from_error(e))

        plan = replace(plan, product_id=ctx.product_id)
        saved = await to_result(
            self.store.save_capacity_plan(plan, idempotency_key),
            f"save capacity plan {format_quarter(plan.year, plan.quarter)}",
        )
        report = CapacitySaveReport(save=saved)
        if not saved.ok:
            return report

        plan = saved.value
        report.totals = self.epic_totals(plan)
        report.ratings = await self.push_ratings(ctx, plan, report.totals, idempotency_key)
        return report

    async def push_ratings(
        self,
        ctx,
        plan: CapacityPlan,
        totals: dict[str, float],
        idempotency_key: str
    ) -> dict[str, Result]:
        """Classify each total and write it to the matching roadmap item."""
        configs = await to_result(
            self.store.list_rating_configs(ctx.product_id),
            "load effort rating configs",
        )
        if not configs.ok:
            return {epic_id: configs for epic_id in totals}

        classifier = EffortRatingClassifier(configs.value)
        semaphore = asyncio.Semaphore(self.fanout_limit)

        async def push(epic_id: str, total: float) -> Result:
            rating = classifier.rate(total, plan.effort_unit)
            if not rating.ok:
                return rating
            async with semaphore:
                return await to_result(
                    self.store.update_roadmap_field(
                        ctx.product_id,
                        plan.year,
                        plan.quarter,
                        epic_id,
                        "effort_rating",
                        rating.value,
                        f"{idempotency_key}:{epic_id}",
                    ),
                    f"push effort rating for {epic_id}",
                )

        epic_ids = list(totals)
        results = await asyncio.gather(*(push(e, totals[e]) for e in epic_ids))
        outcome = dict(zip(epic_ids, results))

        pushed = sum(1 for r in results if r.ok)
        logger.info(
            "Auto-filled effort ratings for %d of %d epics in %s (%s)",
            pushed, len(epic_ids), format_quarter(plan.year, plan.quarter), plan.effort_unit.value,
        )
        return outcome


def summarize_plan(plan: CapacityPlan, team_ids: list[int]) -> dict:
    """Grid totals as shown on the capacity screen."""
    aggregator = CapacityAggregator(store=None)
    return {
        "unit": plan.effort_unit.value.lower(),
        "epics": aggregator.epic_totals(plan),
        "teams": aggregator.team_totals(plan, team_ids),
        "total": aggregator.grand_total(plan),
    }
