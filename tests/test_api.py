"""
Tests for the HTTP API.
"""

import pytest
from fastapi.testclient import TestClient

from quarter_planner.api import Config, app, get_store
from quarter_planner.models import EffortUnit, RoadmapItem

BASE = "/api/products/1"


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def select(client, year, quarter, *epic_ids):
    items = [{"epicId": epic_id} for epic_id in epic_ids]
    return client.put(f"{BASE}/roadmap/{year}/{quarter}", json={"roadmapItems": items})


class TestRoadmapApi:
    """Tests for roadmap endpoints."""

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"

    def test_replace_and_read_quarter(self, client):
        response = select(client, 2025, 1, "E1", "E2")
        assert response.status_code == 200
        items = client.get(f"{BASE}/roadmap/2025/1").json()["roadmapItems"]
        assert sorted(i["epicId"] for i in items) == ["E1", "E2"]
        assert all(i["published"] is False for i in items)

    def test_exclusivity_conflict_is_409(self, client):
        select(client, 2025, 1, "E2")
        response = select(client, 2025, 2, "E2")

        assert response.status_code == 409
        body = response.json()
        assert body["outcome"] == "conflict"
        assert "E2" in body["details"]["conflicts"]

        assigned = client.get(
            f"{BASE}/roadmap/assigned-epics", params={"excludeYear": 2025, "excludeQuarter": 2}
        ).json()
        assert assigned == {"epicIds": ["E2"]}

    def test_invalid_quarter_is_400(self, client):
        response = client.get(f"{BASE}/roadmap/2025/7")
        assert response.status_code == 400
        assert response.json()["outcome"] == "validation_error"

    def test_rating_field_update(self, client):
        select(client, 2025, 1, "E1")
        for path, value in (("reach", 4), ("impact", 3), ("confidence", 2), ("effort-rating", 2)):
            response = client.put(f"{BASE}/roadmap/2025/1/epics/E1/{path}", json={"value": value})
            assert response.status_code == 200
        assert response.json()["riceScore"] == 12

    def test_rating_out_of_range(self, client):
        select(client, 2025, 1, "E1")
        response = client.put(f"{BASE}/roadmap/2025/1/epics/E1/impact", json={"value": 6})
        assert response.status_code == 400

    def test_unknown_field_path(self, client):
        select(client, 2025, 1, "E1")
        response = client.put(f"{BASE}/roadmap/2025/1/epics/E1/priority", json={"value": 1})
        assert response.status_code == 404

    def test_publish_flow(self, client):
        empty = client.post(f"{BASE}/roadmap/2025/3/publish", json={})
        assert empty.json()["outcome"] == "nothing_to_publish"

        select(client, 2025, 1, "E1", "E2")
        stale = client.post(f"{BASE}/roadmap/2025/1/publish", json={"epicIds": ["E1", "E2", "E3"]})
        assert stale.status_code == 409

        published = client.post(f"{BASE}/roadmap/2025/1/publish", json={"epicIds": ["E1", "E2"]})
        assert published.json() == {
            "outcome": "success",
            "summary": {"year": 2025, "quarter": 1, "totalItems": 2, "newlyPublished": 2},
        }
        roadmap = client.get(f"{BASE}/roadmap/published", params={"year": 2025}).json()
        assert len(roadmap["roadmapItems"]) == 2

    def test_idempotent_replay(self, client):
        headers = {"Idempotency-Key": "abc"}
        first = client.post(f"{BASE}/teams", json={"name": "Platform"}, headers=headers)
        second = client.post(f"{BASE}/teams", json={"name": "Platform"}, headers=headers)
        assert first.json()["id"] == second.json()["id"]
        assert len(client.get(f"{BASE}/teams").json()) == 1

    def test_report(self, client):
        select(client, 2025, 1, "E1")
        report = client.get(f"{BASE}/roadmap/2025/1/report").json()["report"]
        assert "ROADMAP Q1 2025" in report
        assert "E1" in report

    def test_selection_keeps_stored_items(self, client):
        client.put(f"{BASE}/roadmap/2025/1/selection", json={"roadmapItems": [{"epicId": "E1"}]})
        client.put(f"{BASE}/roadmap/2025/1/epics/E1/reach", json={"value": 4})

        drafts = [{"epicId": "E1", "reach": 0}, {"epicId": "E2"}]
        response = client.put(f"{BASE}/roadmap/2025/1/selection", json={"roadmapItems": drafts})
        assert response.status_code == 200
        items = {i["epicId"]: i for i in response.json()["roadmapItems"]}
        assert items["E1"]["reach"] == 4
        assert items["E2"]["published"] is False

    def test_selection_conflict_is_409(self, client):
        client.put(f"{BASE}/roadmap/2025/1/selection", json={"roadmapItems": [{"epicId": "E1"}]})
        response = client.put(f"{BASE}/roadmap/2025/2/selection", json={"roadmapItems": [{"epicId": "E1"}]})
        assert response.status_code == 409

    def test_published_order_uses_current_score(self, client, store, monkeypatch):
        """Stored scores that lag the ratings don't affect the order."""
        items = [
            RoadmapItem(product_id=1, year=2025, quarter=1, epic_id="E1", reach=1, impact=1,
                        confidence=1, effort_rating=1, rice_score=100, published=True),
            RoadmapItem(product_id=1, year=2025, quarter=1, epic_id="E2", reach=5, impact=5,
                        confidence=5, effort_rating=1, rice_score=0, published=True),
        ]

        async def stale_published(product_id, year=None):
            return items

        monkeypatch.setattr(store, "list_published_items", stale_published)
        roadmap = client.get(f"{BASE}/roadmap/published").json()["roadmapItems"]
        assert [i["epicId"] for i in roadmap] == ["E2", "E1"]


class TestCapacityApi:
    """Tests for capacity endpoints."""

    def test_empty_plan(self, client):
        plan = client.get(f"{BASE}/capacity-planning/2025/1").json()
        assert plan["entries"] == []
        assert plan["effortUnit"] == "SPRINTS"

    def test_save_plan(self, client):
        body = {
            "effortUnit": "SPRINTS",
            "entries": [{"epicId": "E1", "teamId": 10, "effortAmount": 2.5, "notes": "spike"}],
        }
        response = client.put(f"{BASE}/capacity-planning/2025/1", json=body)
        assert response.status_code == 200
        assert response.json()["entries"][0]["effortAmount"] == 2.5

    def test_negative_effort_is_400(self, client):
        body = {"entries": [{"epicId": "E1", "teamId": 10, "effortAmount": -1}]}
        assert client.put(f"{BASE}/capacity-planning/2025/1", json=body).status_code == 400

    def test_malformed_plan_is_400(self, client):
        body = {"entries": [{"teamId": 10}]}
        assert client.put(f"{BASE}/capacity-planning/2025/1", json=body).status_code == 400

    def test_rating_configs(self, client):
        configs = client.get(f"{BASE}/capacity-planning/effort-rating-configs").json()
        assert [c["unitType"] for c in configs] == ["SPRINTS"]

        days = {
            "star1Max": 5, "star2Min": 6, "star2Max": 10, "star3Min": 11, "star3Max": 20,
            "star4Min": 21, "star4Max": 40, "star5Min": 41,
        }
        response = client.put(f"{BASE}/capacity-planning/effort-rating-configs/days", json=days)
        assert response.json()["unitType"] == "DAYS"
        configs = client.get(f"{BASE}/capacity-planning/effort-rating-configs").json()
        assert sorted(c["unitType"] for c in configs) == ["DAYS", "SPRINTS"]


class TestResourceApi:
    """Tests for team, member and assignment endpoints."""

    def make_member(self, client):
        team = client.post(f"{BASE}/teams", json={"name": "Platform"}).json()
        return client.post(f"{BASE}/teams/{team['id']}/members", json={"memberName": "Alice"}).json()

    def test_assignment_overlap_is_409(self, client):
        member = self.make_member(client)
        booking = {"userStoryId": 101, "memberId": member["id"], "startDate": "2025-01-01", "endDate": "2025-01-10"}
        assert client.post(f"{BASE}/assignments", json=booking).status_code == 200

        clash = {**booking, "userStoryId": 102, "startDate": "2025-01-10", "endDate": "2025-01-15"}
        response = client.post(f"{BASE}/assignments", json=clash)
        assert response.status_code == 409
        assert response.json()["details"]["conflictingAssignmentIds"]

    def test_inverted_range_is_400(self, client):
        member = self.make_member(client)
        booking = {"userStoryId": 101, "memberId": member["id"], "startDate": "2025-02-01", "endDate": "2025-01-01"}
        assert client.post(f"{BASE}/assignments", json=booking).status_code == 400

    def test_available_members(self, client):
        member = self.make_member(client)
        booking = {"userStoryId": 101, "memberId": member["id"], "startDate": "2025-01-01", "endDate": "2025-01-10"}
        client.post(f"{BASE}/assignments", json=booking)

        busy = client.get(f"{BASE}/members/available", params={"startDate": "2025-01-10", "endDate": "2025-01-12"})
        free = client.get(f"{BASE}/members/available", params={"startDate": "2025-01-11", "endDate": "2025-01-12"})
        assert busy.json() == []
        assert [m["memberName"] for m in free.json()] == ["Alice"]

    def test_assignments_by_epic(self, client):
        member = self.make_member(client)
        booking = {"userStoryId": 102, "memberId": member["id"], "startDate": "2025-01-01", "endDate": "2025-01-02"}
        client.post(f"{BASE}/assignments", json=booking)
        assert client.get(f"{BASE}/assignments", params={"epicId": "E1"}).json() == []
        assert len(client.get(f"{BASE}/assignments", params={"epicId": "E2"}).json()) == 1

    def test_delete_team(self, client):
        team = client.post(f"{BASE}/teams", json={"name": "Platform"}).json()
        assert client.delete(f"{BASE}/teams/{team['id']}").status_code == 204
        assert client.delete(f"{BASE}/teams/{team['id']}").status_code == 404

    def test_overview(self, client):
        member = self.make_member(client)
        booking = {"userStoryId": 101, "memberId": member["id"], "startDate": "2025-03-01", "endDate": "2025-03-15"}
        client.post(f"{BASE}/assignments", json=booking)
        client.post(f"{BASE}/teams", json={"name": "Mobile"})

        body = client.get(f"{BASE}/resources/overview", params={"today": "2025-03-10"}).json()
        assert body["asOf"] == "2025-03-10"
        assert body["summary"] == {"teams": 2, "members": 1, "assignments": 1, "upcomingDeadlines": 1}
        utilization = {t["team"]["name"]: t["utilization"] for t in body["teams"]}
        assert utilization == {"Platform": 100, "Mobile": 0}
        assert body["members"][0]["currentAssignments"] == 1

    def test_overview_report(self, client):
        self.make_member(client)
        report = client.get(
            f"{BASE}/resources/overview", params={"today": "2025-03-10", "format": "text"}
        ).json()["report"]
        assert "RESOURCE OVERVIEW" in report
        assert "No upcoming deadlines" in report


class TestConfig:
    """Tests for configuration loading."""

    def test_defaults_without_file(self, tmp_path, monkeypatch):
        for var in ("PLANNER_API_URL", "PLANNER_FANOUT_LIMIT", "PLANNER_LOG_LEVEL"):
            monkeypatch.delenv(var, raising=False)
        config = Config(str(tmp_path / "missing.yaml"))
        assert config.fanout_limit == 4
        assert config.log_level == "INFO"
        assert set(config.default_rating_configs) == {EffortUnit.SPRINTS, EffortUnit.DAYS}

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("planning:\n  fanout_limit: 2\neffort_ratings:\n  days:\n    star1_max: 1\n")
        monkeypatch.setenv("PLANNER_FANOUT_LIMIT", "8")
        monkeypatch.setenv("PLANNER_LOG_LEVEL", "debug")

        config = Config(str(path))
        assert config.fanout_limit == 8
        assert config.log_level == "DEBUG"
        assert list(config.default_rating_configs) == [EffortUnit.DAYS]
