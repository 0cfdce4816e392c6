"""
Shared fixtures for the planning engine tests.
"""

import asyncio

import pytest

from quarter_planner.models import EffortRatingConfig, EffortUnit, Epic, UserStory
from quarter_planner.session import PlanningContext
from quarter_planner.storage import InMemoryPlanningStore

PRODUCT_ID = 1


def sprint_config(product_id: int = PRODUCT_ID) -> EffortRatingConfig:
    """Contiguous SPRINTS bands: <=2 | 3-5 | 6-8 | 9-12 | >=13."""
    return EffortRatingConfig(
        product_id=product_id,
        unit_type=EffortUnit.SPRINTS,
        star1_max=2,
        star2_min=3,
        star2_max=5,
        star3_min=6,
        star3_max=8,
        star4_min=9,
        star4_max=12,
        star5_min=13,
    )


@pytest.fixture
def store():
    """Store with five backlog epics, two stories and a SPRINTS config."""
    store = InMemoryPlanningStore()
    for n in range(1, 6):
        store.add_epic(PRODUCT_ID, Epic(epic_id=f"E{n}", name=f"Epic {n}", description=f"Epic number {n}"))
    store.add_user_story(PRODUCT_ID, UserStory(id=101, title="Login form", epic_id="E1", story_points=3))
    store.add_user_story(PRODUCT_ID, UserStory(id=102, title="Audit log", epic_id="E2", story_points=5))
    asyncio.run(store.save_rating_config(sprint_config()))
    return store


@pytest.fixture
def ctx():
    return PlanningContext(product_id=PRODUCT_ID, actor="tester")
