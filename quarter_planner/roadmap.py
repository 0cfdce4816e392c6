"""
Roadmap Planner

Reads and edits the roadmap items of a quarter: bulk edit-mode saves,
single rating-field auto-saves, and the published view consumed
downstream.
"""

import logging
from dataclasses import replace
from typing import Optional

from .errors import Result, ValidationError, to_result
from .models import (
    RATING_FIELDS,
    RoadmapItem,
    format_quarter,
    quarter_end,
    quarter_start,
    validate_quarter,
    validate_rating,
)
from .scoring import PriorityScorer

logger = logging.getLogger(__name__)


class RoadmapPlanner:
    """
    Quarter roadmap operations.

    Usage:
        planner = RoadmapPlanner(store)
        result = await planner.update_rating_field(ctx, 2025, 1, "E1", "reach", 4)
    """

    def __init__(self, store, scorer: Optional[PriorityScorer] = None):
        self.store = store
        self.scorer = scorer or PriorityScorer()

    async def load(self, ctx, year: int, quarter: int) -> Result:
        return await to_result(
            self.store.list_roadmap_items(ctx.product_id, year, quarter),
            f"load {format_quarter(year, quarter)}",
        )

    def prepare_items(self, ctx, year: int, quarter: int, items: list[RoadmapItem]) -> list[RoadmapItem]:
        """
        Normalize edited items before a bulk save.

        Missing dates fall back to the quarter's bounds and scores are
        recomputed. Raises ValidationError on bad input.
        """
        validate_quarter(year, quarter)
        prepared = []
        seen = set()
        for item in items:
            if item.epic_id in seen:
                raise ValidationError(f"Epic {item.epic_id} appears twice", {"epicId": item.epic_id})
            seen.add(item.epic_id)

            item = replace(
                item,
                product_id=ctx.product_id,
                year=year,
                quarter=quarter,
                start_date=item.start_date or quarter_start(year, quarter),
                end_date=item.end_date or quarter_end(year, quarter),
            )
            item.validate()
            prepared.append(self.scorer.rescore(item))
        return prepared

    async def save_items(
        self,
        ctx,
        year: int,
        quarter: int,
        items: list[RoadmapItem],
        idempotency_key: Optional[str] = None
    ) -> Result:
        """
        Edit-mode save of a quarter's full item set.

        Goes through the same exclusivity check as a selection change.
        Storage keeps each existing item's published flag.
        """
        try:
            prepared = self.prepare_items(ctx, year, quarter, items)
        except ValidationError as e:
            logger.warning("Rejected save of %s: %s", format_quarter(year, quarter), e.message)
            return Result.from_error(e)

        return await to_result(
            self.store.replace_roadmap_items(
                ctx.product_id, year, quarter, prepared, idempotency_key or ctx.new_key()
            ),
            f"save {format_quarter(year, quarter)}",
        )

    async def update_rating_field(
        self,
        ctx,
        year: int,
        quarter: int,
        epic_id: str,
        field: str,
        value: int,
        idempotency_key: Optional[str] = None
    ) -> Result:
        """Write one of reach/impact/confidence/effort_rating; storage rescores."""
        try:
            validate_quarter(year, quarter)
            if field not in RATING_FIELDS:
                raise ValidationError(f"Unknown rating field {field!r}", {"field": field})
            validate_rating(field, value)
        except ValidationError as e:
            return Result.from_error(e)

        return await to_result(
            self.store.update_roadmap_field(
                ctx.product_id, year, quarter, epic_id, field, value,
                idempotency_key or ctx.new_key(),
            ),
            f"update {field} of {epic_id}",
        )

    async def published_items(self, ctx, year: Optional[int] = None) -> Result:
        """Published items ordered by quarter, then RICE score descending."""
        result = await to_result(
            self.store.list_published_items(ctx.product_id, year),
            "load published roadmap",
        )
        if result.ok:
            result.value = self.scorer.order_by_quarter(result.value)
        return result
