"""
Tests for the HTTP planning store.
"""

import asyncio
from datetime import date

import httpx
import pytest

from quarter_planner.api import app, get_store
from quarter_planner.errors import (
    ConfigurationMissing,
    ConflictError,
    NotFoundError,
    Outcome,
    TransportError,
    ValidationError,
)
from quarter_planner.models import CapacityPlan, EffortEntry
from quarter_planner.registry import QuarterAssignmentRegistry
from quarter_planner.roadmap import RoadmapPlanner
from quarter_planner.session import PlanningSession
from quarter_planner.storage import HttpPlanningStore, error_for_response


@pytest.fixture
def remote(store):
    """HttpPlanningStore talking to the app in-process."""
    app.dependency_overrides[get_store] = lambda: store
    yield HttpPlanningStore(base_url="http://planner", token="secret", transport=httpx.ASGITransport(app=app))
    app.dependency_overrides.clear()


class TestErrorForResponse:
    """Tests for status code translation."""

    @pytest.mark.parametrize("status, error_class", [
        (400, ValidationError),
        (422, ValidationError),
        (404, NotFoundError),
        (409, ConflictError),
        (424, ConfigurationMissing),
        (500, TransportError),
        (503, TransportError),
    ])
    def test_status_mapping(self, status, error_class):
        error = error_for_response(httpx.Response(status, json={"detail": "nope"}))
        assert type(error) is error_class
        assert error.message == "nope"
        assert error.details["status"] == status

    def test_non_json_body(self):
        error = error_for_response(httpx.Response(502, text="Bad Gateway"))
        assert isinstance(error, TransportError)
        assert error.message == "Bad Gateway"


class TestHttpPlanningStore:
    """Tests for the API client over an in-process transport."""

    def test_requires_base_url(self, monkeypatch):
        monkeypatch.delenv("PLANNER_API_URL", raising=False)
        with pytest.raises(ValueError):
            HttpPlanningStore()

    def test_sends_auth_and_idempotency_headers(self):
        seen = []

        def handler(request):
            seen.append(request.headers)
            return httpx.Response(200, json={"id": 7, "productId": 1, "name": "Platform"})

        remote = HttpPlanningStore(base_url="http://planner/", token="secret", transport=httpx.MockTransport(handler))
        team = asyncio.run(remote.create_team(1, "Platform", idempotency_key="key-1"))

        assert team.id == 7
        assert seen[0]["authorization"] == "Bearer secret"
        assert seen[0]["idempotency-key"] == "key-1"

    def test_connection_failure_is_unknown(self, ctx):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        remote = HttpPlanningStore(base_url="http://planner", transport=httpx.MockTransport(handler))
        result = asyncio.run(QuarterAssignmentRegistry(remote).apply(ctx, 2025, 1, {"E1"}))
        assert result.outcome == Outcome.UNKNOWN
        assert result.retryable

    def test_roadmap_round_trip(self, remote, ctx):
        """Selections, conflicts and publish go through the API unchanged."""
        registry = QuarterAssignmentRegistry(remote)
        assert asyncio.run(registry.apply(ctx, 2025, 1, {"E1", "E2"})).ok

        clash = asyncio.run(registry.apply(ctx, 2025, 2, {"E2"}))
        assert clash.outcome == Outcome.CONFLICT

        elsewhere = asyncio.run(registry.list_assigned_elsewhere(ctx, 2025, 2))
        assert elsewhere.value == {"E1", "E2"}

        summary = asyncio.run(remote.publish_quarter(1, 2025, 1, ["E1", "E2"]))
        assert summary.newly_published == 2
        published = asyncio.run(remote.list_published_items(1, 2025))
        assert {i.epic_id for i in published} == {"E1", "E2"}

    def test_session_over_http(self, remote):
        """The capacity fan-out works against the API client."""
        session = PlanningSession(remote, product_id=1)
        asyncio.run(session.select_epics(2025, 1, {"E1"}))
        for field, value in (("reach", 4), ("impact", 3), ("confidence", 2)):
            assert asyncio.run(session.set_rating(2025, 1, "E1", field, value)).ok

        plan = CapacityPlan(product_id=1, year=2025, quarter=1, entries=[EffortEntry("E1", 10, 5)])
        report = asyncio.run(session.save_capacity_plan(plan))

        assert report.ok
        item = session.view(2025, 1)[0]
        assert item.effort_rating == 2
        assert item.rice_score == 12

    def test_assignment_conflict(self, remote):
        team = asyncio.run(remote.create_team(1, "Platform"))
        member = asyncio.run(remote.add_member(1, team.id, "Alice"))
        asyncio.run(remote.create_assignment(1, 101, member.id, date(2025, 1, 1), date(2025, 1, 10)))

        with pytest.raises(ConflictError) as exc_info:
            asyncio.run(remote.create_assignment(1, 102, member.id, date(2025, 1, 10), date(2025, 1, 15)))
        assert exc_info.value.details["status"] == 409

        asyncio.run(remote.delete_member(1, member.id))
        assert asyncio.run(remote.list_assignments(1)) == []

    def test_not_found(self, remote):
        with pytest.raises(NotFoundError):
            asyncio.run(remote.delete_team(1, 12345))

    def test_selection_keeps_concurrent_rating(self, remote, store, ctx, monkeypatch):
        """A rating saved between the backlog read and the commit survives."""
        registry = QuarterAssignmentRegistry(remote)
        asyncio.run(registry.apply(ctx, 2025, 1, {"E1"}))
        list_epics = remote.list_epics

        async def list_epics_then_rate(product_id):
            epics = await list_epics(product_id)
            await remote.update_roadmap_field(product_id, 2025, 1, "E1", "reach", 5)
            return epics

        monkeypatch.setattr(remote, "list_epics", list_epics_then_rate)
        result = asyncio.run(registry.apply(ctx, 2025, 1, {"E1", "E2"}))

        assert result.ok
        stored = {i.epic_id: i.reach for i in asyncio.run(store.list_roadmap_items(1, 2025, 1))}
        assert stored == {"E1": 5, "E2": 0}


class TestUnreadableResponses:
    """Success responses the client can't decode come back as Unknown."""

    def remote_returning(self, response):
        return HttpPlanningStore(base_url="http://planner", transport=httpx.MockTransport(lambda request: response))

    def test_html_body(self, ctx):
        remote = self.remote_returning(httpx.Response(200, text="<html>proxy</html>"))
        result = asyncio.run(QuarterAssignmentRegistry(remote).list_assigned_elsewhere(ctx, 2025, 1))
        assert result.outcome == Outcome.UNKNOWN
        assert result.retryable

    def test_missing_key(self, ctx):
        remote = self.remote_returning(httpx.Response(200, json={}))
        result = asyncio.run(RoadmapPlanner(remote).load(ctx, 2025, 1))
        assert result.outcome == Outcome.UNKNOWN

    def test_wrong_shape(self):
        remote = self.remote_returning(httpx.Response(200, json=["not", "a", "summary"]))
        with pytest.raises(TransportError) as exc_info:
            asyncio.run(remote.publish_quarter(1, 2025, 1))
        assert exc_info.value.details["status"] == 200

    def test_empty_success_body(self):
        remote = self.remote_returning(httpx.Response(200))
        with pytest.raises(TransportError):
            asyncio.run(remote.list_teams(1))

    def test_delete_without_body(self):
        remote = self.remote_returning(httpx.Response(204))
        assert asyncio.run(remote.delete_team(1, 7)) is None
