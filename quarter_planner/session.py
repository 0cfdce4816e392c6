"""
Planning Session

An explicit context for one editor working on one product: the engine
components bound to a store, a read-through cache of product reference
data, and the local view of each quarter the editor has loaded.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Any, Awaitable, Callable, Iterable, Optional

from .capacity import CapacityAggregator, CapacitySaveReport
from .errors import Result, to_result
from .models import CapacityPlan, EffortRatingConfig, RoadmapItem
from .publish import PublishWorkflow
from .registry import QuarterAssignmentRegistry
from .resources import ResourcePlanner
from .roadmap import RoadmapPlanner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanningContext:
    """Who is calling the engine and for which product."""
    product_id: int
    actor: Optional[str] = None

    def new_key(self) -> str:
        """Fresh idempotency key for a new submission."""
        return uuid.uuid4().hex


class ProductCache:
    """Read-through cache of reference data keyed by product id."""

    def __init__(self):
        self._entries: dict[int, dict[str, Any]] = {}

    async def get(self, product_id: int, name: str, loader: Callable[[], Awaitable[Result]]) -> Result:
        """Cached value, or load it; failed loads are not cached."""
        entries = self._entries.setdefault(product_id, {})
        if name in entries:
            return Result.success(entries[name])
        result = await loader()
        if result.ok:
            entries[name] = result.value
        return result

    def invalidate(self, product_id: Optional[int] = None, name: Optional[str] = None) -> None:
        """Drop one entry, one product, or everything."""
        if product_id is None:
            self._entries.clear()
        elif name is None:
            self._entries.pop(product_id, None)
        else:
            self._entries.get(product_id, {}).pop(name, None)


class PlanningSession:
    """
    One editor's planning session.

    Writes go to the store first; the local quarter view is only replaced
    once the store acknowledges, so a rejected write leaves the view as it
    was.

    Usage:
        session = PlanningSession(store, product_id=1)
        await session.load_quarter(2025, 1)
        result = await session.select_epics(2025, 1, {"E1", "E2"})
        if result.outcome == Outcome.CONFLICT:
            await session.load_quarter(2025, 1)
    """

    def __init__(
        self,
        store,
        product_id: int,
        actor: Optional[str] = None,
        fanout_limit: int = 4,
        cache: Optional[ProductCache] = None
    ):
        self.store = store
        self.context = PlanningContext(product_id=product_id, actor=actor)
        self.cache = cache or ProductCache()

        self.registry = QuarterAssignmentRegistry(store)
        self.roadmap = RoadmapPlanner(store)
        self.publisher = PublishWorkflow(store)
        self.capacity = CapacityAggregator(store, fanout_limit=fanout_limit)
        self.resources = ResourcePlanner(store)

        self._views: dict[tuple[int, int], list[RoadmapItem]] = {}
        self._field_locks: dict[tuple[int, int, str, str], asyncio.Lock] = {}
        self._lock_users: dict[tuple[int, int, str, str], int] = {}

    @property
    def product_id(self) -> int:
        return self.context.product_id

    # Reference data

    async def epics(self) -> Result:
        return await self.cache.get(
            self.product_id, "epics",
            lambda: to_result(self.store.list_epics(self.product_id), "list epics"),
        )

    async def rating_configs(self) -> Result:
        return await self.cache.get(
            self.product_id, "rating_configs",
            lambda: to_result(self.store.list_rating_configs(self.product_id), "list rating configs"),
        )

    async def save_rating_config(self, config: EffortRatingConfig, idempotency_key: Optional[str] = None) -> Result:
        result = await to_result(
            self.store.save_rating_config(config, idempotency_key or self.context.new_key()),
            f"save {config.unit_type.value} rating config",
        )
        if result.ok:
            self.cache.invalidate(self.product_id, "rating_configs")
        return result

    async def candidate_epics(self, year: int, quarter: int) -> Result:
        """Backlog epics not held by any other quarter."""
        epics = await self.epics()
        if not epics.ok:
            return epics
        taken = await self.registry.list_assigned_elsewhere(self.context, year, quarter)
        if not taken.ok:
            return taken
        return Result.success([e for e in epics.value if e.epic_id not in taken.value])

    # Quarter view

    def view(self, year: int, quarter: int) -> list[RoadmapItem]:
        """Last acknowledged item set for the quarter."""
        return list(self._views.get((year, quarter), []))

    def _commit_view(self, year: int, quarter: int, items: list[RoadmapItem]) -> None:
        self._views[(year, quarter)] = list(items)

    def _commit_item(self, item: RoadmapItem) -> None:
        items = self._views.get((item.year, item.quarter), [])
        self._views[(item.year, item.quarter)] = [
            item if i.epic_id == item.epic_id else i for i in items
        ]

    async def load_quarter(self, year: int, quarter: int) -> Result:
        result = await self.roadmap.load(self.context, year, quarter)
        if result.ok:
            self._commit_view(year, quarter, result.value)
        return result

    async def select_epics(
        self,
        year: int,
        quarter: int,
        epic_ids: Iterable[str],
        idempotency_key: Optional[str] = None
    ) -> Result:
        result = await self.registry.apply(self.context, year, quarter, epic_ids, idempotency_key)
        if result.ok:
            self._commit_view(year, quarter, result.value)
        return result

    async def save_quarter(
        self,
        year: int,
        quarter: int,
        items: list[RoadmapItem],
        idempotency_key: Optional[str] = None
    ) -> Result:
        result = await self.roadmap.save_items(self.context, year, quarter, items, idempotency_key)
        if result.ok:
            self._commit_view(year, quarter, result.value)
        return result

    async def set_rating(
        self,
        year: int,
        quarter: int,
        epic_id: str,
        field: str,
        value: int,
        idempotency_key: Optional[str] = None
    ) -> Result:
        """
        Auto-save a single rating field.

        Writes to the same field of the same item are serialized: the next
        one starts only after the previous write is acknowledged.
        """
        key = (year, quarter, epic_id, field)
        lock = self._field_locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                result = await self.roadmap.update_rating_field(
                    self.context, year, quarter, epic_id, field, value, idempotency_key
                )
                if result.ok:
                    self._commit_item(result.value)
                return result
        finally:
            # Last writer out drops the lock
            users = self._lock_users.pop(key, 1) - 1
            if users:
                self._lock_users[key] = users
            elif self._field_locks.get(key) is lock:
                del self._field_locks[key]

    async def publish(self, year: int, quarter: int, idempotency_key: Optional[str] = None) -> Result:
        """Publish the quarter as this session last saw it."""
        epic_ids = [i.epic_id for i in self._views[(year, quarter)]] if (year, quarter) in self._views else None
        result = await self.publisher.publish(self.context, year, quarter, epic_ids, idempotency_key)
        if result.ok:
            await self.load_quarter(year, quarter)
        return result

    async def published_roadmap(self, year: Optional[int] = None) -> Result:
        return await self.roadmap.published_items(self.context, year)

    # Capacity

    async def load_capacity_plan(self, year: int, quarter: int) -> Result:
        return await self.capacity.load(self.context, year, quarter)

    async def save_capacity_plan(
        self,
        plan: CapacityPlan,
        idempotency_key: Optional[str] = None
    ) -> CapacitySaveReport:
        report = await self.capacity.save(self.context, plan, idempotency_key)
        for result in report.ratings.values():
            if result.ok:
                self._commit_item(result.value)
        return report

    # Resources

    async def assign_member(
        self,
        user_story_id: int,
        member_id: int,
        start: date,
        end: date,
        idempotency_key: Optional[str] = None
    ) -> Result:
        return await self.resources.create_assignment(
            self.context, user_story_id, member_id, start, end, idempotency_key
        )

    # Lifecycle

    def switch_product(self, product_id: int) -> None:
        """Point the session at another product and drop what it cached."""
        self.cache.invalidate(self.product_id)
        self._views.clear()
        self._field_locks.clear()
        self._lock_users.clear()
        self.context = PlanningContext(product_id=product_id, actor=self.context.actor)
        logger.debug("Session switched to product %s", product_id)

    def logout(self) -> None:
        self.cache.invalidate()
        self._views.clear()
        self._field_locks.clear()
        self._lock_users.clear()
