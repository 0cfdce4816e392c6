"""
Tests for the publish workflow.
"""

import asyncio

import pytest

from quarter_planner.errors import ConflictError, Outcome
from quarter_planner.models import RoadmapItem, RoadmapStatus
from quarter_planner.publish import PublishWorkflow, RoadmapState, publish_items, state_of
from quarter_planner.registry import QuarterAssignmentRegistry
from quarter_planner.roadmap import RoadmapPlanner


def draft(epic_id, status=RoadmapStatus.PROPOSED, published=False) -> RoadmapItem:
    return RoadmapItem(product_id=1, year=2025, quarter=1, epic_id=epic_id, status=status, published=published)


def seed_quarter(store, ctx, epic_ids, year=2025, quarter=1):
    registry = QuarterAssignmentRegistry(store)
    result = asyncio.run(registry.apply(ctx, year, quarter, epic_ids))
    assert result.ok
    return result.value


class TestPublishItems:
    """Tests for the pure publish step."""

    def test_publishes_every_status(self):
        """Status labels do not gate publication."""
        items = [
            draft("E1", RoadmapStatus.PROPOSED),
            draft("E2", RoadmapStatus.DONE),
            draft("E3", RoadmapStatus.IN_PROGRESS),
        ]
        published, summary = publish_items(2025, 1, items)
        assert all(i.published for i in published)
        assert summary.total_items == 3
        assert summary.newly_published == 3

    def test_already_published_not_counted(self):
        published, summary = publish_items(2025, 1, [draft("E1", published=True), draft("E2")])
        assert summary.newly_published == 1
        assert [state_of(i) for i in published] == [RoadmapState.PUBLISHED, RoadmapState.PUBLISHED]

    def test_inputs_untouched(self):
        items = [draft("E1")]
        publish_items(2025, 1, items)
        assert items[0].published is False

    def test_stale_selection_conflicts(self):
        """Publishing a selection that lost an epic is rejected."""
        with pytest.raises(ConflictError) as exc_info:
            publish_items(2025, 1, [draft("E1")], epic_ids=["E1", "E2"])
        assert exc_info.value.details["missing"] == ["E2"]

    def test_empty_quarter(self):
        _, summary = publish_items(2025, 1, [])
        assert summary.nothing_to_publish


class TestPublishWorkflow:
    """Tests for publishing through storage."""

    def test_nothing_to_publish(self, store, ctx):
        """Empty quarter: distinct outcome, nothing changes."""
        result = asyncio.run(PublishWorkflow(store).publish(ctx, 2025, 4))
        assert result.outcome == Outcome.NOTHING_TO_PUBLISH
        assert result.value.total_items == 0
        assert asyncio.run(store.list_published_items(1)) == []

    def test_publish_marks_all_items(self, store, ctx):
        seed_quarter(store, ctx, {"E1", "E2"})
        result = asyncio.run(PublishWorkflow(store).publish(ctx, 2025, 1))

        assert result.ok
        assert result.value.newly_published == 2
        items = asyncio.run(store.list_roadmap_items(1, 2025, 1))
        assert all(i.published for i in items)

    def test_publish_twice_is_noop(self, store, ctx):
        """A second publish succeeds and changes nothing."""
        seed_quarter(store, ctx, {"E1"})
        workflow = PublishWorkflow(store)
        asyncio.run(workflow.publish(ctx, 2025, 1))
        before = asyncio.run(store.list_roadmap_items(1, 2025, 1))

        again = asyncio.run(workflow.publish(ctx, 2025, 1))
        after = asyncio.run(store.list_roadmap_items(1, 2025, 1))

        assert again.ok
        assert again.value.newly_published == 0
        assert after == before

    def test_stale_epic_list_conflicts(self, store, ctx):
        """Another editor removed an epic after this session loaded the quarter."""
        seed_quarter(store, ctx, {"E1", "E2"})
        seed_quarter(store, ctx, {"E1"})

        result = asyncio.run(PublishWorkflow(store).publish(ctx, 2025, 1, epic_ids=["E1", "E2"]))
        assert result.outcome == Outcome.CONFLICT
        assert result.retryable
        items = asyncio.run(store.list_roadmap_items(1, 2025, 1))
        assert not any(i.published for i in items)

    def test_edits_after_publish_stay_published(self, store, ctx):
        """Rating edits and new selections keep existing items published."""
        seed_quarter(store, ctx, {"E1"})
        asyncio.run(PublishWorkflow(store).publish(ctx, 2025, 1))

        planner = RoadmapPlanner(store)
        asyncio.run(planner.update_rating_field(ctx, 2025, 1, "E1", "impact", 4))
        seed_quarter(store, ctx, {"E1", "E2"})

        items = {i.epic_id: i for i in asyncio.run(store.list_roadmap_items(1, 2025, 1))}
        assert items["E1"].published is True
        assert items["E1"].impact == 4
        assert items["E2"].published is False

    def test_quarter_state(self, store, ctx):
        workflow = PublishWorkflow(store)
        assert asyncio.run(workflow.quarter_state(ctx, 2025, 1)).value is None

        seed_quarter(store, ctx, {"E1"})
        assert asyncio.run(workflow.quarter_state(ctx, 2025, 1)).value == RoadmapState.DRAFT

        asyncio.run(workflow.publish(ctx, 2025, 1))
        assert asyncio.run(workflow.quarter_state(ctx, 2025, 1)).value == RoadmapState.PUBLISHED

        seed_quarter(store, ctx, {"E1", "E3"})
        assert asyncio.run(workflow.quarter_state(ctx, 2025, 1)).value == RoadmapState.DRAFT

    def test_invalid_quarter(self, store, ctx):
        result = asyncio.run(PublishWorkflow(store).publish(ctx, 2025, 0))
        assert result.outcome == Outcome.VALIDATION_ERROR

    def test_replayed_key_returns_first_summary(self, store, ctx):
        seed_quarter(store, ctx, {"E1"})
        workflow = PublishWorkflow(store)
        first = asyncio.run(workflow.publish(ctx, 2025, 1, idempotency_key="pub-1"))
        replay = asyncio.run(workflow.publish(ctx, 2025, 1, idempotency_key="pub-1"))
        assert first.value == replay.value
        assert replay.value.newly_published == 1
