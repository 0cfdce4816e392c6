"""
FastAPI Backend for Quarter Planner

REST API for roadmap planning, capacity planning and resource planning,
backed by the in-memory planning store.
"""

import os
import logging
from datetime import date, datetime
from typing import Optional
from contextlib import asynccontextmanager

import yaml
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .availability import AvailabilityConflictChecker
from .errors import Outcome, PlanningError, ValidationError
from .models import (
    CapacityPlan,
    EffortRatingConfig,
    EffortUnit,
    Epic,
    RoadmapItem,
)
from .resources import build_overview
from .scoring import PriorityScorer
from .storage import InMemoryPlanningStore, PlanningStore
from .storage.remote import FIELD_PATHS
from .visualizer import Visualizer

logger = logging.getLogger(__name__)


DEFAULT_RATING_BANDS = {
    EffortUnit.SPRINTS: {
        "star1_max": 1, "star2_min": 2, "star2_max": 3, "star3_min": 4, "star3_max": 5,
        "star4_min": 6, "star4_max": 8, "star5_min": 9,
    },
    EffortUnit.DAYS: {
        "star1_max": 5, "star2_min": 6, "star2_max": 10, "star3_min": 11, "star3_max": 20,
        "star4_min": 21, "star4_max": 40, "star5_min": 41,
    },
}


# Configuration
class Config:
    """Load configuration from config.yaml and environment."""

    def __init__(self, config_path: str = "config/config.yaml"):
        self.config = {}

        if os.path.exists(config_path):
            with open(config_path) as f:
                self.config = yaml.safe_load(f) or {}

        # Override with environment variables
        self._load_env()

    def _load_env(self):
        """Load configuration from environment variables."""
        env_mapping = {
            "PLANNER_API_URL": ("api", "url"),
            "PLANNER_API_TOKEN": ("api", "token"),
            "PLANNER_FANOUT_LIMIT": ("planning", "fanout_limit"),
            "PLANNER_LOG_LEVEL": ("logging", "level"),
        }

        for env_var, (section, key) in env_mapping.items():
            value = os.getenv(env_var)
            if value:
                if section not in self.config:
                    self.config[section] = {}
                self.config[section][key] = value

    def get(self, section: str, key: str, default=None):
        """Get configuration value."""
        return (self.config.get(section) or {}).get(key, default)

    @property
    def api_url(self) -> Optional[str]:
        return self.get("api", "url")

    @property
    def api_token(self) -> Optional[str]:
        return self.get("api", "token")

    @property
    def fanout_limit(self) -> int:
        return int(self.get("planning", "fanout_limit", 4))

    @property
    def log_level(self) -> str:
        return str(self.get("logging", "level", "INFO")).upper()

    @property
    def default_rating_configs(self) -> dict[EffortUnit, dict]:
        """Band thresholds seeded for products without their own."""
        configured = self.config.get("effort_ratings") or {}
        if not configured:
            return dict(DEFAULT_RATING_BANDS)
        return {EffortUnit(unit.upper()): bands for unit, bands in configured.items()}


# Global instances
config = Config()
store = InMemoryPlanningStore(default_rating_configs=config.default_rating_configs)
checker = AvailabilityConflictChecker()
visualizer = Visualizer()
scorer = PriorityScorer()


def get_store() -> PlanningStore:
    return store


ERROR_STATUS = {
    Outcome.VALIDATION_ERROR: 400,
    Outcome.NOT_FOUND: 404,
    Outcome.CONFLICT: 409,
    Outcome.CONFIGURATION_MISSING: 424,
    Outcome.UNKNOWN: 502,
}


# Pydantic models for API
class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TeamRequest(CamelModel):
    name: str
    description: Optional[str] = ""


class TeamMemberRequest(CamelModel):
    member_name: str = Field(alias="memberName")
    role: Optional[str] = None
    email: Optional[str] = None


class AssignmentRequest(CamelModel):
    user_story_id: int = Field(alias="userStoryId")
    member_id: int = Field(alias="memberId")
    start_date: date = Field(alias="startDate")
    end_date: date = Field(alias="endDate")


class RatingValue(CamelModel):
    value: int


class RoadmapItemsRequest(CamelModel):
    roadmap_items: list[dict] = Field(alias="roadmapItems")


class PublishRequest(CamelModel):
    epic_ids: Optional[list[str]] = Field(default=None, alias="epicIds")


def _parse(record_class, data: dict):
    """Build a domain record from a request body; malformed bodies are a 400."""
    try:
        return record_class.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid {record_class.__name__} payload: {e}")


# Lifespan context manager
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logging.basicConfig(level=config.log_level)
    logger.info("Quarter Planner API starting up")
    yield
    logger.info("Quarter Planner API shutting down")


# Create FastAPI app
app = FastAPI(
    title="Quarter Planner",
    description="API for quarterly roadmap, capacity and resource planning",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PlanningError)
async def planning_error_handler(request: Request, exc: PlanningError):
    """Map planning errors to distinguishable HTTP statuses."""
    return JSONResponse(
        status_code=ERROR_STATUS.get(exc.outcome, 500),
        content={"detail": exc.message, "outcome": exc.outcome.value, "details": exc.details},
    )


# Health check
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
    }


BASE = "/api/products/{product_id}"


# Backlog endpoints
@app.get(BASE + "/epics")
async def list_epics(product_id: int, store: PlanningStore = Depends(get_store)):
    return [e.to_dict() for e in await store.list_epics(product_id)]


@app.post(BASE + "/epics")
async def save_epic(
    product_id: int,
    body: dict,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    store: PlanningStore = Depends(get_store)
):
    epic = _parse(Epic, body)
    epic.validate()
    return (await store.save_epic(product_id, epic, idempotency_key)).to_dict()


@app.get(BASE + "/epics/{epic_id}/user-stories")
async def list_user_stories(product_id: int, epic_id: str, store: PlanningStore = Depends(get_store)):
    return [s.to_dict() for s in await store.list_user_stories(product_id, epic_id)]


# Capacity planning endpoints
@app.get(BASE + "/capacity-planning/effort-rating-configs")
async def list_rating_configs(product_id: int, store: PlanningStore = Depends(get_store)):
    return [c.to_dict() for c in await store.list_rating_configs(product_id)]


@app.put(BASE + "/capacity-planning/effort-rating-configs/{unit_type}")
async def save_rating_config(
    product_id: int,
    unit_type: str,
    body: dict,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    store: PlanningStore = Depends(get_store)
):
    rating_config = _parse(EffortRatingConfig, {**body, "productId": product_id, "unitType": unit_type.upper()})
    return (await store.save_rating_config(rating_config, idempotency_key)).to_dict()


@app.get(BASE + "/capacity-planning/{year}/{quarter}")
async def get_capacity_plan(product_id: int, year: int, quarter: int, store: PlanningStore = Depends(get_store)):
    return (await store.get_capacity_plan(product_id, year, quarter)).to_dict()


@app.put(BASE + "/capacity-planning/{year}/{quarter}")
async def save_capacity_plan(
    product_id: int,
    year: int,
    quarter: int,
    body: dict,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    store: PlanningStore = Depends(get_store)
):
    plan = _parse(CapacityPlan, {**body, "productId": product_id, "year": year, "quarter": quarter})
    return (await store.save_capacity_plan(plan, idempotency_key)).to_dict()


@app.get(BASE + "/capacity-planning/{year}/{quarter}/report")
async def get_capacity_report(product_id: int, year: int, quarter: int, store: PlanningStore = Depends(get_store)):
    plan = await store.get_capacity_plan(product_id, year, quarter)
    teams = await store.list_teams(product_id)
    return {"report": visualizer.capacity_report(plan, teams)}


# Roadmap endpoints
@app.get(BASE + "/roadmap/assigned-epics")
async def get_assigned_epics(
    product_id: int,
    excludeYear: int,
    excludeQuarter: int,
    store: PlanningStore = Depends(get_store)
):
    """Epic ids already placed in a quarter other than the excluded one."""
    epic_ids = await store.assigned_epic_ids(product_id, excludeYear, excludeQuarter)
    return {"epicIds": sorted(epic_ids)}


@app.get(BASE + "/roadmap/published")
async def get_published_roadmap(product_id: int, year: Optional[int] = None, store: PlanningStore = Depends(get_store)):
    items = await store.list_published_items(product_id, year)
    items = scorer.order_by_quarter(items)
    return {"roadmapItems": [i.to_dict() for i in items]}


@app.get(BASE + "/roadmap/{year}/{quarter}")
async def get_roadmap(product_id: int, year: int, quarter: int, store: PlanningStore = Depends(get_store)):
    items = await store.list_roadmap_items(product_id, year, quarter)
    return {"year": year, "quarter": quarter, "roadmapItems": [i.to_dict() for i in items]}


@app.put(BASE + "/roadmap/{year}/{quarter}")
async def save_roadmap(
    product_id: int,
    year: int,
    quarter: int,
    body: RoadmapItemsRequest,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    store: PlanningStore = Depends(get_store)
):
    """Replace the quarter's items. 409 when an epic is held by another quarter."""
    items = [
        _parse(RoadmapItem, {**data, "productId": product_id, "year": year, "quarter": quarter})
        for data in body.roadmap_items
    ]
    stored = await store.replace_roadmap_items(product_id, year, quarter, items, idempotency_key)
    return {"year": year, "quarter": quarter, "roadmapItems": [i.to_dict() for i in stored]}


@app.put(BASE + "/roadmap/{year}/{quarter}/selection")
async def save_selection(
    product_id: int,
    year: int,
    quarter: int,
    body: RoadmapItemsRequest,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    store: PlanningStore = Depends(get_store)
):
    """Set the quarter's epics. Items already in the quarter are kept as stored."""
    drafts = [
        _parse(RoadmapItem, {**data, "productId": product_id, "year": year, "quarter": quarter})
        for data in body.roadmap_items
    ]
    stored = await store.assign_epics(product_id, year, quarter, drafts, idempotency_key)
    return {"year": year, "quarter": quarter, "roadmapItems": [i.to_dict() for i in stored]}


@app.put(BASE + "/roadmap/{year}/{quarter}/epics/{epic_id}/{field_path}")
async def update_roadmap_field(
    product_id: int,
    year: int,
    quarter: int,
    epic_id: str,
    field_path: str,
    body: RatingValue,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    store: PlanningStore = Depends(get_store)
):
    fields = {path: name for name, path in FIELD_PATHS.items()}
    if field_path not in fields:
        raise HTTPException(status_code=404, detail=f"Unknown rating field {field_path}")
    item = await store.update_roadmap_field(
        product_id, year, quarter, epic_id, fields[field_path], body.value, idempotency_key
    )
    return item.to_dict()


@app.post(BASE + "/roadmap/{year}/{quarter}/publish")
async def publish_roadmap(
    product_id: int,
    year: int,
    quarter: int,
    body: Optional[PublishRequest] = None,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    store: PlanningStore = Depends(get_store)
):
    """Publish every item in the quarter. 409 when the caller's epic list is stale."""
    epic_ids = body.epic_ids if body else None
    summary = await store.publish_quarter(product_id, year, quarter, epic_ids, idempotency_key)
    outcome = Outcome.NOTHING_TO_PUBLISH if summary.nothing_to_publish else Outcome.SUCCESS
    return {"outcome": outcome.value, "summary": summary.to_dict()}


@app.get(BASE + "/roadmap/{year}/{quarter}/report")
async def get_roadmap_report(product_id: int, year: int, quarter: int, store: PlanningStore = Depends(get_store)):
    items = await store.list_roadmap_items(product_id, year, quarter)
    return {"report": visualizer.quarter_report(year, quarter, items, format="text")}


# Resource planning endpoints
@app.get(BASE + "/teams")
async def list_teams(product_id: int, store: PlanningStore = Depends(get_store)):
    return [t.to_dict() for t in await store.list_teams(product_id)]


@app.post(BASE + "/teams")
async def create_team(
    product_id: int,
    body: TeamRequest,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    store: PlanningStore = Depends(get_store)
):
    team = await store.create_team(product_id, body.name, body.description or "", idempotency_key)
    return team.to_dict()


@app.delete(BASE + "/teams/{team_id}", status_code=204)
async def delete_team(
    product_id: int,
    team_id: int,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    store: PlanningStore = Depends(get_store)
):
    await store.delete_team(product_id, team_id, idempotency_key)


@app.get(BASE + "/teams/{team_id}/members")
async def list_team_members(product_id: int, team_id: int, store: PlanningStore = Depends(get_store)):
    return [m.to_dict() for m in await store.list_members(product_id, team_id)]


@app.post(BASE + "/teams/{team_id}/members")
async def add_member(
    product_id: int,
    team_id: int,
    body: TeamMemberRequest,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    store: PlanningStore = Depends(get_store)
):
    member = await store.add_member(product_id, team_id, body.member_name, body.role, body.email, idempotency_key)
    return member.to_dict()


@app.get(BASE + "/members")
async def list_members(product_id: int, store: PlanningStore = Depends(get_store)):
    return [m.to_dict() for m in await store.list_members(product_id)]


@app.get(BASE + "/members/available")
async def list_available_members(
    product_id: int,
    startDate: date,
    endDate: date,
    store: PlanningStore = Depends(get_store)
):
    """Members with no assignment overlapping [startDate, endDate]."""
    members = await store.list_members(product_id)
    assignments = await store.list_assignments(product_id)
    available = checker.available_members(members, startDate, endDate, assignments)
    return [m.to_dict() for m in available]


@app.delete(BASE + "/members/{member_id}", status_code=204)
async def delete_member(
    product_id: int,
    member_id: int,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    store: PlanningStore = Depends(get_store)
):
    await store.delete_member(product_id, member_id, idempotency_key)


@app.get(BASE + "/assignments")
async def list_assignments(product_id: int, epicId: Optional[str] = None, store: PlanningStore = Depends(get_store)):
    assignments = await store.list_assignments(product_id)
    if epicId is not None:
        story_ids = {s.id for s in await store.list_user_stories(product_id, epicId)}
        assignments = [a for a in assignments if a.user_story_id in story_ids]
    return [a.to_dict() for a in assignments]


@app.post(BASE + "/assignments")
async def create_assignment(
    product_id: int,
    body: AssignmentRequest,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    store: PlanningStore = Depends(get_store)
):
    """Overlap is re-checked here at commit, whatever the client saw."""
    assignment = await store.create_assignment(
        product_id, body.user_story_id, body.member_id, body.start_date, body.end_date, idempotency_key
    )
    return assignment.to_dict()


@app.delete(BASE + "/assignments/{assignment_id}", status_code=204)
async def delete_assignment(
    product_id: int,
    assignment_id: int,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    store: PlanningStore = Depends(get_store)
):
    await store.delete_assignment(product_id, assignment_id, idempotency_key)


@app.get(BASE + "/resources/overview")
async def get_resource_overview(
    product_id: int,
    today: Optional[date] = None,
    format: str = "json",
    store: PlanningStore = Depends(get_store)
):
    """Team utilization, member workload and deadlines in the next 30 days."""
    overview = build_overview(
        await store.list_teams(product_id),
        await store.list_members(product_id),
        await store.list_assignments(product_id),
        today or date.today(),
    )
    if format == "text":
        return {"report": visualizer.resource_report(overview)}
    return overview.to_dict()


# Run with: uvicorn quarter_planner.api:app --reload
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
