"""
Publish Workflow

Roadmap items are Draft until their quarter is published, then Published.
Publishing marks every item in the quarter regardless of its status label
and removes nothing. Publishing twice is a no-op success.
"""

import logging
from dataclasses import replace
from typing import Iterable, Optional
from enum import Enum

from .errors import ConflictError, Outcome, Result, ValidationError, to_result
from .models import PublishSummary, RoadmapItem, format_quarter, validate_quarter

logger = logging.getLogger(__name__)


class RoadmapState(Enum):
    """Lifecycle state of a roadmap item."""
    DRAFT = "draft"
    PUBLISHED = "published"


def state_of(item: RoadmapItem) -> RoadmapState:
    return RoadmapState.PUBLISHED if item.published else RoadmapState.DRAFT


def publish_items(
    year: int,
    quarter: int,
    items: list[RoadmapItem],
    epic_ids: Optional[Iterable[str]] = None
) -> tuple[list[RoadmapItem], PublishSummary]:
    """
    Publish a quarter's item set.

    Args:
        year: Quarter year
        quarter: Quarter number
        items: Every item currently in the quarter
        epic_ids: Epic ids the caller saw when it asked to publish. When
            given, they must all still be in the quarter.

    Returns:
        The published items and a summary of what changed
    """
    present = {item.epic_id for item in items}
    if epic_ids is not None:
        stale = sorted(set(epic_ids) - present)
        if stale:
            raise ConflictError(
                f"Epics no longer in {format_quarter(year, quarter)}: {', '.join(stale)}",
                {"year": year, "quarter": quarter, "missing": stale},
            )

    summary = PublishSummary(year=year, quarter=quarter, total_items=len(items))
    published = []
    for item in items:
        if not item.published:
            summary.newly_published += 1
            item = replace(item, published=True)
        published.append(item)
    return published, summary


class PublishWorkflow:
    """
    Drives the Draft -> Published transition for a quarter.

    Usage:
        workflow = PublishWorkflow(store)
        result = await workflow.publish(ctx, 2025, 1)
        if result.outcome == Outcome.NOTHING_TO_PUBLISH:
            ...
    """

    def __init__(self, store):
        self.store = store

    async def publish(
        self,
        ctx,
        year: int,
        quarter: int,
        epic_ids: Optional[Iterable[str]] = None,
        idempotency_key: Optional[str] = None
    ) -> Result:
        """
        Publish every item in the quarter.

        Returns:
            SUCCESS with a PublishSummary, NOTHING_TO_PUBLISH when the quarter
            is empty, CONFLICT when ``epic_ids`` is stale
        """
        try:
            validate_quarter(year, quarter)
        except ValidationError as e:
            return Result.from_error(e)

        label = format_quarter(year, quarter)
        result = await to_result(
            self.store.publish_quarter(
                ctx.product_id,
                year,
                quarter,
                list(epic_ids) if epic_ids is not None else None,
                idempotency_key or ctx.new_key(),
            ),
            f"publish {label}",
        )
        if not result.ok:
            return result

        summary: PublishSummary = result.value
        if summary.nothing_to_publish:
            return Result(Outcome.NOTHING_TO_PUBLISH, value=summary, message=f"No items to publish in {label}")

        logger.info(
            "Published %s for product %s: %d items, %d newly published",
            label, ctx.product_id, summary.total_items, summary.newly_published,
        )
        return Result.success(summary, message=f"Successfully published {label} roadmap")

    async def quarter_state(self, ctx, year: int, quarter: int) -> Result:
        """
        PUBLISHED when every item is published, DRAFT otherwise.

        An empty quarter has no state; the value is None.
        """
        result = await to_result(
            self.store.list_roadmap_items(ctx.product_id, year, quarter),
            f"load {format_quarter(year, quarter)}",
        )
        if not result.ok:
            return result

        items = result.value
        if not items:
            return Result.success(None)
        if all(item.published for item in items):
            return Result.success(RoadmapState.PUBLISHED)
        return Result.success(RoadmapState.DRAFT)
