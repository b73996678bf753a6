"""
Domain service: colour scale domain and legend for a displayed feature set.
"""
from typing import List, Optional, Sequence, Tuple

import numpy as np

from geodrill.domain.effects import Effect, Recolor, UpdateLegend
from geodrill.domain.models import Area, Indicator, Level


LEGEND_TICKS = 5


def value_domain(
    features: Sequence[Area],
    indicator: Indicator,
) -> Optional[Tuple[float, float]]:
    """
    Compute the [min, max] of the indicator over features that have data.

    Args:
        features: Displayed areas
        indicator: Indicator to read

    Returns:
        (min, max) tuple, or None when no feature has data
    """
    values = [v for v in (f.value(indicator) for f in features) if v is not None]
    if not values:
        return None
    return float(np.min(values)), float(np.max(values))


def legend_ticks(low: float, high: float, count: int = LEGEND_TICKS) -> List[float]:
    if high <= low:
        return [round(low, 1)]
    return [round(float(t), 1) for t in np.linspace(low, high, count)]


def color_effects(
    level: Level,
    features: Sequence[Area],
    indicator: Indicator,
) -> List[Effect]:
    """
    Recolour a layer and redraw the legend.

    The domain is recomputed from the given features only. When no feature
    has data, the layer is painted in the no-data colour and the legend is
    left untouched.
    """
    domain = value_domain(features, indicator)
    effects: List[Effect] = [Recolor(level=level, features=list(features), domain=domain)]
    if domain is not None:
        low, high = domain
        effects.append(UpdateLegend(
            min=low,
            max=high,
            ticks=legend_ticks(low, high),
            unit=indicator.unit,
        ))
    return effects
