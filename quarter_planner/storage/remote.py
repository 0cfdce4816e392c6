"""
HTTP planning store.

Talks to the planning API over httpx. Every mutating request carries an
``Idempotency-Key`` header so retried submissions are applied once.
Conflicts (409) are kept apart from generic failures.
"""

import logging
import os
from datetime import date
from typing import Any, Callable, Optional

import httpx

from ..errors import (
    ConfigurationMissing,
    ConflictError,
    NotFoundError,
    PlanningError,
    TransportError,
    ValidationError,
)
from ..models import (
    CapacityPlan,
    EffortRatingConfig,
    Epic,
    PublishSummary,
    ResourceAssignment,
    RoadmapItem,
    Team,
    TeamMember,
    UserStory,
)
from .base import PlanningStore

logger = logging.getLogger(__name__)

# Path segment per rating field
FIELD_PATHS = {
    "reach": "reach",
    "impact": "impact",
    "confidence": "confidence",
    "effort_rating": "effort-rating",
}

STATUS_ERRORS = {
    400: ValidationError,
    422: ValidationError,
    404: NotFoundError,
    409: ConflictError,
    424: ConfigurationMissing,
}


def error_for_response(response: httpx.Response) -> PlanningError:
    """Translate an error response into the matching planning error."""
    try:
        body = response.json()
    except ValueError:
        body = {"detail": response.text}
    if not isinstance(body, dict):
        body = {"detail": body}

    detail = body.get("detail") or response.reason_phrase
    message = detail if isinstance(detail, str) else str(detail)
    details = body.get("details") or {}
    details["status"] = response.status_code

    error_class = STATUS_ERRORS.get(response.status_code, TransportError)
    return error_class(message, details)


class HttpPlanningStore(PlanningStore):
    """
    Planning API client.

    Usage:
        store = HttpPlanningStore(base_url="http://localhost:8000", token="...")
        items = await store.list_roadmap_items(1, 2025, 1)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or os.getenv("PLANNER_API_URL") or "").rstrip("/")
        self.token = token or os.getenv("PLANNER_API_TOKEN")
        self.timeout = timeout
        self.transport = transport

        if not self.base_url:
            raise ValueError("Planner API URL required. Set PLANNER_API_URL env var or pass base_url.")

        self.headers = {"Accept": "application/json"}
        if self.token:
            self.headers["Authorization"] = f"Bearer {self.token}"

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
        idempotency_key: Optional[str] = None,
        parse: Optional[Callable[[Any], Any]] = None
    ):
        """
        Make an authenticated request and return the decoded body.

        Args:
            parse: Builds the result from the JSON body

        Raises:
            TransportError when the call fails or a success body can't be read
        """
        headers = dict(self.headers)
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.request(
                    method,
                    f"{self.base_url}{endpoint}",
                    headers=headers,
                    params=params,
                    json=json,
                    timeout=self.timeout,
                )
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {endpoint} failed: {e}") from e

        if response.status_code >= 400:
            raise error_for_response(response)
        if parse is None:
            return None

        try:
            return parse(response.json())
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error("Unreadable response from %s %s: %s", method, endpoint, e)
            raise TransportError(
                f"{method} {endpoint} returned an unreadable body: {e}",
                {"status": response.status_code},
            ) from e

    @staticmethod
    def _base(product_id: int) -> str:
        return f"/api/products/{product_id}"

    @staticmethod
    def _items(data: dict) -> list[RoadmapItem]:
        return [RoadmapItem.from_dict(i) for i in data["roadmapItems"]]

    # Backlog

    async def list_epics(self, product_id: int) -> list[Epic]:
        return await self._request(
            "GET", f"{self._base(product_id)}/epics",
            parse=lambda data: [Epic.from_dict(e) for e in data],
        )

    async def save_epic(self, product_id: int, epic: Epic, idempotency_key: Optional[str] = None) -> Epic:
        return await self._request(
            "POST", f"{self._base(product_id)}/epics", json=epic.to_dict(), idempotency_key=idempotency_key,
            parse=Epic.from_dict,
        )

    async def list_user_stories(self, product_id: int, epic_id: str) -> list[UserStory]:
        return await self._request(
            "GET", f"{self._base(product_id)}/epics/{epic_id}/user-stories",
            parse=lambda data: [UserStory.from_dict(s) for s in data],
        )

    # Capacity

    async def get_capacity_plan(self, product_id: int, year: int, quarter: int) -> CapacityPlan:
        return await self._request(
            "GET", f"{self._base(product_id)}/capacity-planning/{year}/{quarter}",
            parse=CapacityPlan.from_dict,
        )

    async def save_capacity_plan(self, plan: CapacityPlan, idempotency_key: Optional[str] = None) -> CapacityPlan:
        return await self._request(
            "PUT",
            f"{self._base(plan.product_id)}/capacity-planning/{plan.year}/{plan.quarter}",
            json=plan.to_dict(),
            idempotency_key=idempotency_key,
            parse=CapacityPlan.from_dict,
        )

    async def list_rating_configs(self, product_id: int) -> list[EffortRatingConfig]:
        return await self._request(
            "GET", f"{self._base(product_id)}/capacity-planning/effort-rating-configs",
            parse=lambda data: [EffortRatingConfig.from_dict(c) for c in data],
        )

    async def save_rating_config(
        self,
        config: EffortRatingConfig,
        idempotency_key: Optional[str] = None
    ) -> EffortRatingConfig:
        return await self._request(
            "PUT",
            f"{self._base(config.product_id)}/capacity-planning/effort-rating-configs/{config.unit_type.value}",
            json=config.to_dict(),
            idempotency_key=idempotency_key,
            parse=EffortRatingConfig.from_dict,
        )

    # Roadmap

    async def list_roadmap_items(self, product_id: int, year: int, quarter: int) -> list[RoadmapItem]:
        return await self._request(
            "GET", f"{self._base(product_id)}/roadmap/{year}/{quarter}", parse=self._items
        )

    async def list_published_items(self, product_id: int, year: Optional[int] = None) -> list[RoadmapItem]:
        params = {"year": year} if year is not None else None
        return await self._request(
            "GET", f"{self._base(product_id)}/roadmap/published", params=params, parse=self._items
        )

    async def assigned_epic_ids(self, product_id: int, exclude_year: int, exclude_quarter: int) -> set[str]:
        return await self._request(
            "GET",
            f"{self._base(product_id)}/roadmap/assigned-epics",
            params={"excludeYear": exclude_year, "excludeQuarter": exclude_quarter},
            parse=lambda data: set(data["epicIds"]),
        )

    async def replace_roadmap_items(
        self,
        product_id: int,
        year: int,
        quarter: int,
        items: list[RoadmapItem],
        idempotency_key: Optional[str] = None
    ) -> list[RoadmapItem]:
        return await self._request(
            "PUT",
            f"{self._base(product_id)}/roadmap/{year}/{quarter}",
            json={"roadmapItems": [i.to_dict() for i in items]},
            idempotency_key=idempotency_key,
            parse=self._items,
        )

    async def assign_epics(
        self,
        product_id: int,
        year: int,
        quarter: int,
        drafts: list[RoadmapItem],
        idempotency_key: Optional[str] = None
    ) -> list[RoadmapItem]:
        return await self._request(
            "PUT",
            f"{self._base(product_id)}/roadmap/{year}/{quarter}/selection",
            json={"roadmapItems": [d.to_dict() for d in drafts]},
            idempotency_key=idempotency_key,
            parse=self._items,
        )

    async def update_roadmap_field(
        self,
        product_id: int,
        year: int,
        quarter: int,
        epic_id: str,
        field: str,
        value: int,
        idempotency_key: Optional[str] = None
    ) -> RoadmapItem:
        if field not in FIELD_PATHS:
            raise ValidationError(f"Unknown rating field {field!r}", {"field": field})
        return await self._request(
            "PUT",
            f"{self._base(product_id)}/roadmap/{year}/{quarter}/epics/{epic_id}/{FIELD_PATHS[field]}",
            json={"value": value},
            idempotency_key=idempotency_key,
            parse=RoadmapItem.from_dict,
        )

    async def publish_quarter(
        self,
        product_id: int,
        year: int,
        quarter: int,
        epic_ids: Optional[list[str]] = None,
        idempotency_key: Optional[str] = None
    ) -> PublishSummary:
        return await self._request(
            "POST",
            f"{self._base(product_id)}/roadmap/{year}/{quarter}/publish",
            json={"epicIds": epic_ids},
            idempotency_key=idempotency_key,
            parse=lambda data: PublishSummary.from_dict(data["summary"]),
        )

    # Resource planning

    async def list_teams(self, product_id: int) -> list[Team]:
        return await self._request(
            "GET", f"{self._base(product_id)}/teams",
            parse=lambda data: [Team.from_dict(t) for t in data],
        )

    async def create_team(
        self,
        product_id: int,
        name: str,
        description: str = "",
        idempotency_key: Optional[str] = None
    ) -> Team:
        return await self._request(
            "POST",
            f"{self._base(product_id)}/teams",
            json={"name": name, "description": description},
            idempotency_key=idempotency_key,
            parse=Team.from_dict,
        )

    async def delete_team(self, product_id: int, team_id: int, idempotency_key: Optional[str] = None) -> None:
        await self._request("DELETE", f"{self._base(product_id)}/teams/{team_id}", idempotency_key=idempotency_key)

    async def list_members(self, product_id: int, team_id: Optional[int] = None) -> list[TeamMember]:
        if team_id is None:
            endpoint = f"{self._base(product_id)}/members"
        else:
            endpoint = f"{self._base(product_id)}/teams/{team_id}/members"
        return await self._request("GET", endpoint, parse=lambda data: [TeamMember.from_dict(m) for m in data])

    async def add_member(
        self,
        product_id: int,
        team_id: int,
        member_name: str,
        role: Optional[str] = None,
        email: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> TeamMember:
        return await self._request(
            "POST",
            f"{self._base(product_id)}/teams/{team_id}/members",
            json={"memberName": member_name, "role": role, "email": email},
            idempotency_key=idempotency_key,
            parse=TeamMember.from_dict,
        )

    async def delete_member(self, product_id: int, member_id: int, idempotency_key: Optional[str] = None) -> None:
        await self._request(
            "DELETE", f"{self._base(product_id)}/members/{member_id}", idempotency_key=idempotency_key
        )

    async def list_assignments(self, product_id: int) -> list[ResourceAssignment]:
        return await self._request(
            "GET", f"{self._base(product_id)}/assignments",
            parse=lambda data: [ResourceAssignment.from_dict(a) for a in data],
        )

    async def create_assignment(
        self,
        product_id: int,
        user_story_id: int,
        member_id: int,
        start: date,
        end: date,
        idempotency_key: Optional[str] = None
    ) -> ResourceAssignment:
        return await self._request(
            "POST",
            f"{self._base(product_id)}/assignments",
            json={
                "userStoryId": user_story_id,
                "memberId": member_id,
                "startDate": start.isoformat(),
                "endDate": end.isoformat(),
            },
            idempotency_key=idempotency_key,
            parse=ResourceAssignment.from_dict,
        )

    async def delete_assignment(
        self,
        product_id: int,
        assignment_id: int,
        idempotency_key: Optional[str] = None
    ) -> None:
        await self._request(
            "DELETE", f"{self._base(product_id)}/assignments/{assignment_id}", idempotency_key=idempotency_key
        )
