"""
Effort Rating Classifier

Maps an epic's total capacity effort onto a 1-5 star effort rating using
the per-unit band thresholds configured for a product.
"""

import logging
from typing import Iterable, Optional

from .errors import ConfigurationMissing, Result
from .models import EffortRatingConfig, EffortUnit

logger = logging.getLogger(__name__)


def classify(total: float, config: EffortRatingConfig) -> int:
    """
    Classify an effort total into a star rating.

    Bands are checked lowest first. A total that falls in a gap between
    bands is resolved against the next band's minimum. Never raises.

    Args:
        total: Summed effort for one epic
        config: Band thresholds for the plan's effort unit

    Returns:
        Star rating 1-5
    """
    if total <= config.star1_max:
        return 1
    if config.star2_min <= total <= config.star2_max:
        return 2
    if config.star3_min <= total <= config.star3_max:
        return 3
    if config.star4_min <= total <= config.star4_max:
        return 4
    if total >= config.star5_min:
        return 5

    # Gap between bands
    if total < config.star2_min:
        return 2
    if total < config.star3_min:
        return 3
    if total < config.star4_min:
        return 4
    if total < config.star5_min:
        return 4
    return 5


class EffortRatingClassifier:
    """
    Classifier holding a product's rating configs, one per effort unit.

    Usage:
        classifier = EffortRatingClassifier(configs)
        stars = classifier.classify(7.5, EffortUnit.SPRINTS)
    """

    def __init__(self, configs: Optional[Iterable[EffortRatingConfig]] = None):
        self.configs: dict[EffortUnit, EffortRatingConfig] = {}
        for config in configs or []:
            self.configs[config.unit_type] = config

    def has_config(self, unit: EffortUnit) -> bool:
        return unit in self.configs

    def config_for(self, unit: EffortUnit) -> EffortRatingConfig:
        config = self.configs.get(unit)
        if config is None:
            raise ConfigurationMissing(
                f"No effort rating configuration found for {unit.value}",
                {"unitType": unit.value},
            )
        return config

    def classify(self, total: float, unit: EffortUnit) -> int:
        """Classify with the config for ``unit``; raises ConfigurationMissing."""
        return classify(total, self.config_for(unit))

    def rate(self, total: float, unit: EffortUnit) -> Result:
        """Classify without raising; a missing config is reported in the result."""
        try:
            stars = self.classify(total, unit)
        except ConfigurationMissing as e:
            logger.warning(e.message)
            return Result.from_error(e)
        return Result.success(stars)
