"""
Roadmap Visualizer

Plain-text reports of a quarter's roadmap, its capacity grid and the
product's resource overview.
"""

from typing import Literal, Optional

from .capacity import summarize_plan
from .models import MAX_STARS, CapacityPlan, RoadmapItem, Team, format_quarter
from .publish import RoadmapState, state_of
from .resources import ResourceOverview
from .scoring import PriorityScorer


class ASCIICharts:
    """Small text glyph helpers."""

    @staticmethod
    def stars(rating: int) -> str:
        """Star rating as filled and empty stars, e.g. ★★★☆☆."""
        rating = max(0, min(MAX_STARS, rating))
        return "★" * rating + "☆" * (MAX_STARS - rating)

    @staticmethod
    def horizontal_bar(value: float, max_value: float = 100, width: int = 20) -> str:
        """Filled bar capped at ``width``."""
        if max_value <= 0:
            return "░" * width
        filled = min(int((value / max_value) * width), width)
        return "█" * filled + "░" * (width - filled)


class TextReporter:
    """Generate text-based reports."""

    @staticmethod
    def quarter_report(year: int, quarter: int, items: list[RoadmapItem]) -> str:
        """Quarter roadmap ordered by RICE score."""
        scorer = PriorityScorer()
        lines = []

        lines.append("╔" + "═" * 60 + "╗")
        lines.append("║" + f"ROADMAP {format_quarter(year, quarter)}".center(60) + "║")
        lines.append("╠" + "═" * 60 + "╣")

        if not items:
            lines.append("║  No epics planned for this quarter".ljust(61) + "║")
        else:
            published = sum(1 for i in items if state_of(i) == RoadmapState.PUBLISHED)
            lines.append(f"║  Epics: {len(items)}  Published: {published}  Draft: {len(items) - published}".ljust(61) + "║")
            lines.append("║" + "─" * 60 + "║")

            for item in scorer.rank(items):
                name = (item.epic_name or item.epic_id)[:22].ljust(22)
                flag = "●" if item.published else "○"
                score = scorer.score_item(item)
                lines.append(f"║ {flag} {name} {ASCIICharts.stars(item.effort_rating)} RICE {score:6.1f}".ljust(61) + "║")
                lines.append(f"║     {item.status.value}".ljust(61) + "║")

        lines.append("╚" + "═" * 60 + "╝")
        return "\n".join(lines)

    @staticmethod
    def capacity_report(plan: CapacityPlan, teams: list[Team]) -> str:
        """Capacity grid totals per epic and per team."""
        summary = summarize_plan(plan, [t.id for t in teams])
        unit = summary["unit"]
        lines = []

        lines.append("╔" + "═" * 60 + "╗")
        lines.append("║" + f"CAPACITY {format_quarter(plan.year, plan.quarter)}".center(60) + "║")
        lines.append("╠" + "═" * 60 + "╣")

        if plan.is_empty:
            lines.append("║  No capacity planned yet".ljust(61) + "║")
        else:
            lines.append("║ BY EPIC".ljust(61) + "║")
            for epic_id, total in summary["epics"].items():
                lines.append(f"║  {epic_id[:30].ljust(30)} {total:g} {unit}".ljust(61) + "║")
            lines.append("║" + "─" * 60 + "║")
            lines.append("║ BY TEAM".ljust(61) + "║")
            for team in teams:
                total = summary["teams"][team.id]
                lines.append(f"║  {team.name[:30].ljust(30)} {total:g} {unit}".ljust(61) + "║")
            lines.append("║" + "─" * 60 + "║")
            lines.append(f"║  Total: {summary['total']:g} {unit}".ljust(61) + "║")

        lines.append("╚" + "═" * 60 + "╝")
        return "\n".join(lines)

    @staticmethod
    def resource_report(overview: ResourceOverview) -> str:
        """Team utilization, member workload and upcoming deadlines."""
        names = {w.member.id: w.member.member_name for w in overview.members}
        lines = []

        lines.append("╔" + "═" * 60 + "╗")
        lines.append("║" + "RESOURCE OVERVIEW".center(60) + "║")
        lines.append("║" + f"As of {overview.as_of.isoformat()}".center(60) + "║")
        lines.append("╠" + "═" * 60 + "╣")
        lines.append(
            f"║  Teams: {len(overview.teams)}  Members: {overview.member_count}  "
            f"Assignments: {overview.assignment_count}".ljust(61) + "║"
        )

        lines.append("║" + "─" * 60 + "║")
        lines.append("║ TEAM UTILIZATION".ljust(61) + "║")
        for team in overview.teams:
            bar = ASCIICharts.horizontal_bar(team.utilization, 100, 15)
            lines.append(f"║  {team.team.name[:20].ljust(20)} {bar} {team.utilization:5.0f}%".ljust(61) + "║")

        lines.append("║" + "─" * 60 + "║")
        lines.append("║ MEMBER WORKLOAD".ljust(61) + "║")
        for load in overview.members:
            lines.append(
                f"║  {load.member.member_name[:20].ljust(20)} total {load.total_assignments:2d}  "
                f"now {load.current_assignments:2d}  next {load.upcoming_assignments:2d}".ljust(61) + "║"
            )

        lines.append("║" + "─" * 60 + "║")
        lines.append("║ UPCOMING DEADLINES".ljust(61) + "║")
        if not overview.deadlines:
            lines.append("║  No upcoming deadlines in the next 30 days".ljust(61) + "║")
        for assignment in overview.deadlines:
            member = names.get(assignment.member_id, f"#{assignment.member_id}")[:20]
            lines.append(
                f"║  {assignment.end_date.isoformat()}  story {assignment.user_story_id:<8d} {member}".ljust(61) + "║"
            )

        lines.append("╚" + "═" * 60 + "╝")
        return "\n".join(lines)


class Visualizer:
    """
    Report entry point.

    Usage:
        viz = Visualizer()
        print(viz.quarter_report(2025, 1, items))
    """

    def __init__(self):
        self.text = TextReporter()

    def quarter_report(
        self,
        year: int,
        quarter: int,
        items: list[RoadmapItem],
        format: Literal["text", "dict"] = "text"
    ):
        if format == "text":
            return self.text.quarter_report(year, quarter, items)
        elif format == "dict":
            scorer = PriorityScorer()
            return {
                "quarter": format_quarter(year, quarter),
                "items": [
                    {**i.to_dict(), "riceScore": scorer.score_item(i)}
                    for i in scorer.rank(items)
                ],
            }
        else:
            raise ValueError(f"Unknown format: {format}")

    def capacity_report(self, plan: CapacityPlan, teams: Optional[list[Team]] = None) -> str:
        return self.text.capacity_report(plan, teams or [])

    def resource_report(self, overview: ResourceOverview) -> str:
        return self.text.resource_report(overview)
