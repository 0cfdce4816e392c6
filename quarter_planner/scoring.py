"""
RICE Priority Scoring

score = (reach * impact * confidence) / effort, where effort is the epic's
star effort rating. Scores are always derived; stored copies are caches.
"""

from dataclasses import replace

from .models import RoadmapItem


def rice_score(reach: float, impact: float, confidence: float, effort: float) -> float:
    """RICE score, or 0 when effort is not positive. Not rounded."""
    if effort <= 0:
        return 0
    return (impact * confidence * reach) / effort


class PriorityScorer:
    """Computes and refreshes RICE scores on roadmap items."""

    @staticmethod
    def score(reach: float, impact: float, confidence: float, effort: float) -> float:
        return rice_score(reach, impact, confidence, effort)

    def score_item(self, item: RoadmapItem) -> float:
        return self.score(item.reach, item.impact, item.confidence, item.effort_rating)

    def is_stale(self, item: RoadmapItem) -> bool:
        """True when the cached score no longer matches the item's inputs."""
        return item.rice_score != self.score_item(item)

    def rescore(self, item: RoadmapItem) -> RoadmapItem:
        """Copy of the item with its score recomputed from its inputs."""
        return replace(item, rice_score=self.score_item(item))

    def rank(self, items: list[RoadmapItem]) -> list[RoadmapItem]:
        """Items ordered by freshly computed score, highest first."""
        return sorted(items, key=self.score_item, reverse=True)

    def order_by_quarter(self, items: list[RoadmapItem]) -> list[RoadmapItem]:
        """Items by quarter, then freshly computed score descending, then epic id."""
        return sorted(items, key=lambda i: (i.year, i.quarter, -self.score_item(i), i.epic_id))
