"""
Quarter Planner Domain Model

Epics, capacity plans, effort-rating configs and roadmap items, plus the
resource-planning records (teams, members, user stories, assignments).
Records serialize to the camelCase JSON used on the wire.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional
from enum import Enum

from .errors import ValidationError


class EffortUnit(Enum):
    """Unit capacity efforts are entered in."""
    SPRINTS = "SPRINTS"
    DAYS = "DAYS"


class RoadmapStatus(Enum):
    """Workflow label on a roadmap item. Does not gate publication."""
    PROPOSED = "Proposed"
    COMMITTED = "Committed"
    TODO = "To-Do"
    IN_PROGRESS = "In-Progress"
    DONE = "Done"


# Star-scale fields that can be written one at a time
RATING_FIELDS = ("reach", "impact", "confidence", "effort_rating")
MAX_STARS = 5


def _parse_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


# Quarter helpers

def validate_quarter(year: int, quarter: int) -> None:
    if quarter not in (1, 2, 3, 4):
        raise ValidationError(f"Quarter must be 1-4, got {quarter}", {"quarter": quarter})
    if year < 1:
        raise ValidationError(f"Invalid year {year}", {"year": year})


def current_quarter(today: Optional[date] = None) -> tuple[int, int]:
    """Get the (year, quarter) containing today."""
    today = today or date.today()
    return today.year, (today.month - 1) // 3 + 1


def format_quarter(year: int, quarter: int) -> str:
    return f"Q{quarter} {year}"


def quarter_start(year: int, quarter: int) -> date:
    """First calendar day of the quarter."""
    validate_quarter(year, quarter)
    return date(year, 3 * (quarter - 1) + 1, 1)


def quarter_end(year: int, quarter: int) -> date:
    """Last calendar day of the quarter."""
    validate_quarter(year, quarter)
    if quarter == 4:
        return date(year, 12, 31)
    return quarter_start(year, quarter + 1) - timedelta(days=1)


@dataclass
class Epic:
    """Backlog epic, the unit scheduled into quarters."""
    epic_id: str
    name: str
    description: str = ""
    theme_id: Optional[str] = None
    initiative_id: Optional[str] = None
    track: Optional[str] = None

    def validate(self) -> None:
        missing = [
            name for name, value in (("epicId", self.epic_id), ("name", self.name))
            if not value or not str(value).strip()
        ]
        if missing:
            raise ValidationError(f"Epic is missing required fields: {', '.join(missing)}", {"missing": missing})

    def to_dict(self) -> dict:
        return {
            "epicId": self.epic_id,
            "name": self.name,
            "description": self.description,
            "themeId": self.theme_id,
            "initiativeId": self.initiative_id,
            "track": self.track,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Epic":
        return cls(
            epic_id=data.get("epicId", ""),
            name=data.get("name", ""),
            description=data.get("description") or "",
            theme_id=data.get("themeId"),
            initiative_id=data.get("initiativeId"),
            track=data.get("track"),
        )


@dataclass
class EffortEntry:
    """Effort one team puts into one epic within a capacity plan."""
    epic_id: str
    team_id: int
    effort_amount: float = 0.0
    notes: str = ""

    def to_dict(self) -> dict:
        return {
            "epicId": self.epic_id,
            "teamId": self.team_id,
            "effortAmount": self.effort_amount,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EffortEntry":
        return cls(
            epic_id=data["epicId"],
            team_id=int(data["teamId"]),
            effort_amount=float(data.get("effortAmount") or 0),
            notes=data.get("notes") or "",
        )


@dataclass
class CapacityPlan:
    """Per-quarter effort plan. Saved as a whole, never patched."""
    product_id: int
    year: int
    quarter: int
    effort_unit: EffortUnit = EffortUnit.SPRINTS
    entries: list[EffortEntry] = field(default_factory=list)

    @property
    def epic_ids(self) -> list[str]:
        """Distinct epic ids in entry order."""
        seen = {}
        for entry in self.entries:
            seen.setdefault(entry.epic_id, None)
        return list(seen)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def entry(self, epic_id: str, team_id: int) -> Optional[EffortEntry]:
        for e in self.entries:
            if e.epic_id == epic_id and e.team_id == team_id:
                return e
        return None

    def grid(self, team_ids: list[int]) -> dict[str, list[EffortEntry]]:
        """
        One row per epic with an entry for every team.

        Missing (epic, team) pairs are filled with zero-effort entries.
        """
        rows = {}
        for epic_id in self.epic_ids:
            row = []
            for team_id in team_ids:
                row.append(self.entry(epic_id, team_id) or EffortEntry(epic_id=epic_id, team_id=team_id))
            rows[epic_id] = row
        return rows

    def validate(self) -> None:
        validate_quarter(self.year, self.quarter)
        pairs = set()
        for e in self.entries:
            if e.effort_amount < 0:
                raise ValidationError(
                    f"Effort for epic {e.epic_id} / team {e.team_id} must be >= 0",
                    {"epicId": e.epic_id, "teamId": e.team_id},
                )
            key = (e.epic_id, e.team_id)
            if key in pairs:
                raise ValidationError(
                    f"Duplicate effort entry for epic {e.epic_id} / team {e.team_id}",
                    {"epicId": e.epic_id, "teamId": e.team_id},
                )
            pairs.add(key)

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "year": self.year,
            "quarter": self.quarter,
            "effortUnit": self.effort_unit.value,
            "entries": [e.to_dict() for e in self.entries],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CapacityPlan":
        return cls(
            product_id=int(data["productId"]),
            year=int(data["year"]),
            quarter=int(data["quarter"]),
            effort_unit=EffortUnit(data.get("effortUnit") or EffortUnit.SPRINTS.value),
            entries=[EffortEntry.from_dict(e) for e in data.get("entries", [])],
        )


@dataclass
class EffortRatingConfig:
    """
    Band thresholds turning an effort total into 1-5 stars.

    Thresholds are stored as given; gaps and overlaps are tolerated.
    """
    product_id: int
    unit_type: EffortUnit
    star1_max: float
    star2_min: float
    star2_max: float
    star3_min: float
    star3_max: float
    star4_min: float
    star4_max: float
    star5_min: float

    _KEYS = (
        ("star1_max", "star1Max"),
        ("star2_min", "star2Min"),
        ("star2_max", "star2Max"),
        ("star3_min", "star3Min"),
        ("star3_max", "star3Max"),
        ("star4_min", "star4Min"),
        ("star4_max", "star4Max"),
        ("star5_min", "star5Min"),
    )

    def to_dict(self) -> dict:
        data = {"productId": self.product_id, "unitType": self.unit_type.value}
        for attr, key in self._KEYS:
            data[key] = getattr(self, attr)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "EffortRatingConfig":
        return cls(
            product_id=int(data["productId"]),
            unit_type=EffortUnit(data["unitType"]),
            **{attr: float(data[key]) for attr, key in cls._KEYS},
        )

    @classmethod
    def from_bands(cls, product_id: int, unit_type: EffortUnit, bands: dict) -> "EffortRatingConfig":
        """Build from a snake_case or camelCase threshold mapping (config files)."""
        values = {}
        for attr, key in cls._KEYS:
            values[attr] = float(bands[attr] if attr in bands else bands[key])
        return cls(product_id=product_id, unit_type=unit_type, **values)


@dataclass
class RoadmapItem:
    """An epic scheduled into one quarter."""
    product_id: int
    year: int
    quarter: int
    epic_id: str
    epic_name: str = ""
    epic_description: str = ""
    priority: str = "Medium"
    status: RoadmapStatus = RoadmapStatus.PROPOSED
    reach: int = 0
    impact: int = 0
    confidence: int = 0
    effort_rating: int = 1
    rice_score: float = 0.0
    published: bool = False
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    theme_id: Optional[str] = None
    initiative_id: Optional[str] = None
    track: Optional[str] = None

    @classmethod
    def for_epic(cls, product_id: int, year: int, quarter: int, epic: Epic) -> "RoadmapItem":
        """New draft item for an epic just added to a quarter."""
        return cls(
            product_id=product_id,
            year=year,
            quarter=quarter,
            epic_id=epic.epic_id,
            epic_name=epic.name,
            epic_description=epic.description,
            start_date=quarter_start(year, quarter),
            end_date=quarter_end(year, quarter),
            theme_id=epic.theme_id,
            initiative_id=epic.initiative_id,
            track=epic.track,
        )

    def validate(self) -> None:
        validate_quarter(self.year, self.quarter)
        if not self.epic_id:
            raise ValidationError("Roadmap item requires an epicId")
        for name in RATING_FIELDS:
            validate_rating(name, getattr(self, name))
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValidationError(
                f"Start date {self.start_date} is after end date {self.end_date} for epic {self.epic_id}",
                {"epicId": self.epic_id},
            )

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "year": self.year,
            "quarter": self.quarter,
            "epicId": self.epic_id,
            "epicName": self.epic_name,
            "epicDescription": self.epic_description,
            "priority": self.priority,
            "status": self.status.value,
            "reach": self.reach,
            "impact": self.impact,
            "confidence": self.confidence,
            "effortRating": self.effort_rating,
            "riceScore": self.rice_score,
            "published": self.published,
            "startDate": _iso(self.start_date),
            "endDate": _iso(self.end_date),
            "themeId": self.theme_id,
            "initiativeId": self.initiative_id,
            "track": self.track,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RoadmapItem":
        return cls(
            product_id=int(data["productId"]),
            year=int(data["year"]),
            quarter=int(data["quarter"]),
            epic_id=data["epicId"],
            epic_name=data.get("epicName") or "",
            epic_description=data.get("epicDescription") or "",
            priority=data.get("priority") or "Medium",
            status=RoadmapStatus(data.get("status") or RoadmapStatus.PROPOSED.value),
            reach=int(data.get("reach") or 0),
            impact=int(data.get("impact") or 0),
            confidence=int(data.get("confidence") or 0),
            effort_rating=int(data.get("effortRating", 1) or 0),
            rice_score=float(data.get("riceScore") or 0),
            published=bool(data.get("published", False)),
            start_date=_parse_date(data.get("startDate")),
            end_date=_parse_date(data.get("endDate")),
            theme_id=data.get("themeId"),
            initiative_id=data.get("initiativeId"),
            track=data.get("track"),
        )


def validate_rating(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= MAX_STARS:
        raise ValidationError(f"{name} must be an integer between 0 and {MAX_STARS}, got {value!r}", {"field": name})


@dataclass
class PublishSummary:
    """What a publish call did to a quarter."""
    year: int
    quarter: int
    total_items: int = 0
    newly_published: int = 0

    @property
    def nothing_to_publish(self) -> bool:
        return self.total_items == 0

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "quarter": self.quarter,
            "totalItems": self.total_items,
            "newlyPublished": self.newly_published,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PublishSummary":
        return cls(
            year=int(data["year"]),
            quarter=int(data["quarter"]),
            total_items=int(data.get("totalItems", 0)),
            newly_published=int(data.get("newlyPublished", 0)),
        )


# Resource planning records

@dataclass
class Team:
    id: int
    product_id: int
    name: str
    description: str = ""
    is_active: bool = True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "name": self.name,
            "description": self.description,
            "isActive": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Team":
        return cls(
            id=int(data["id"]),
            product_id=int(data["productId"]),
            name=data["name"],
            description=data.get("description") or "",
            is_active=bool(data.get("isActive", True)),
        )


@dataclass
class TeamMember:
    id: int
    team_id: int
    member_name: str
    role: Optional[str] = None
    email: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "teamId": self.team_id,
            "memberName": self.member_name,
            "role": self.role,
            "email": self.email,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TeamMember":
        return cls(
            id=int(data["id"]),
            team_id=int(data["teamId"]),
            member_name=data["memberName"],
            role=data.get("role"),
            email=data.get("email"),
        )


@dataclass
class UserStory:
    id: int
    title: str
    epic_id: str
    story_points: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "epicId": self.epic_id,
            "storyPoints": self.story_points,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UserStory":
        return cls(
            id=int(data["id"]),
            title=data.get("title") or "",
            epic_id=data["epicId"],
            story_points=data.get("storyPoints"),
        )


@dataclass
class ResourceAssignment:
    """One member committed to one story for an inclusive date range."""
    id: int
    user_story_id: int
    member_id: int
    start_date: date
    end_date: date
    product_id: Optional[int] = None

    @property
    def days(self) -> int:
        return (self.end_date - self.start_date).days + 1

    def overlaps(self, start: date, end: date) -> bool:
        """Inclusive ranges overlap when each starts before the other ends."""
        return self.start_date <= end and start <= self.end_date

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userStoryId": self.user_story_id,
            "memberId": self.member_id,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "productId": self.product_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ResourceAssignment":
        return cls(
            id=int(data["id"]),
            user_story_id=int(data["userStoryId"]),
            member_id=int(data["memberId"]),
            start_date=_parse_date(data["startDate"]),
            end_date=_parse_date(data["endDate"]),
            product_id=data.get("productId"),
        )
