"""
Efficiency frontier and incremental cost-effectiveness ratios (ICERs).

ICER = (C_b - C_a) / (E_b - E_a), where a is the next cheaper strategy on
the frontier. Strategies that are more costly and no more effective than
another are dominated; strategies whose ICER exceeds that of the next more
costly strategy are extendedly dominated (a mix of their neighbours would
do better).
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np
import pandas as pd

from cohort_cea.errors import ComputationError
from cohort_cea.rewards import Outcome

logger = logging.getLogger(__name__)


class DominanceStatus(Enum):
    ON_FRONTIER = "On frontier"
    DOMINATED = "Dominated"
    EXTENDEDLY_DOMINATED = "Extendedly dominated"


@dataclass(frozen=True)
class ICEREntry:
    strategy: str
    cost: float
    effect: float
    status: DominanceStatus
    reference: Optional[str] = None
    incremental_cost: Optional[float] = None
    incremental_effect: Optional[float] = None
    ratio: Optional[float] = None


@dataclass
class _Point:
    order: int
    strategy: str
    cost: float
    effect: float


def _points(outcomes):
    points = []
    for i, item in enumerate(outcomes):
        if isinstance(item, Outcome):
            name, cost, effect = item.strategy, item.cost, item.effect
        else:
            name, cost, effect = item
        cost, effect = float(cost), float(effect)
        if not np.isfinite(cost):
            raise ComputationError("Strategy cost is not finite", strategy=name, field="cost", value=cost)
        if not np.isfinite(effect):
            raise ComputationError("Strategy effect is not finite", strategy=name, field="effect", value=effect)
        points.append(_Point(i, str(name), cost, effect))
    return points


def _dominates(other, point):
    """True if ``other`` strongly dominates ``point`` (exact duplicates: earlier one wins)."""
    if other.cost > point.cost or other.effect < point.effect:
        return False
    if other.cost < point.cost or other.effect > point.effect:
        return True
    return other.order < point.order


def _ratio(lower, upper):
    return (upper.cost - lower.cost) / (upper.effect - lower.effect)


def calculate_icers(outcomes):
    """
    Classify strategies and compute ICERs along the efficiency frontier.

    Args:
        outcomes (iterable): ``(strategy_name, cost, effect)`` tuples or
            ``Outcome`` records, in declaration order. Declaration order
            breaks ties.

    Returns:
        list[ICEREntry]: One entry per strategy, in ascending cost order.
            Frontier entries after the first carry incremental cost, effect
            and ratio against the previous frontier strategy. The cheapest
            frontier strategy is the reference. Dominated entries carry no
            incremental values.

    Raises:
        ComputationError: If a cost, effect or ratio is not finite
    """
    points = _points(outcomes)
    if not points:
        return []

    # 1. Sort by cost; equal costs keep declaration order
    ordered = sorted(points, key=lambda p: (p.cost, p.order))
    status = {p.order: DominanceStatus.ON_FRONTIER for p in ordered}

    # 2. Strong dominance
    for p in ordered:
        if any(_dominates(o, p) for o in ordered if o is not p):
            status[p.order] = DominanceStatus.DOMINATED

    # 3. Extended dominance. Remaining points have strictly increasing cost
    # and effect, so every ratio is defined.
    frontier = [p for p in ordered if status[p.order] is DominanceStatus.ON_FRONTIER]
    while True:
        ratios = [_ratio(frontier[i - 1], frontier[i]) for i in range(1, len(frontier))]
        drop = next((i for i in range(1, len(ratios)) if ratios[i] < ratios[i - 1]), None)
        if drop is None:
            break
        # ratios[drop] belongs to frontier[drop + 1]; its left neighbour is out
        removed = frontier.pop(drop)
        status[removed.order] = DominanceStatus.EXTENDEDLY_DOMINATED
        logger.debug("%s is extendedly dominated", removed.strategy)

    # 4. Incremental values along the frontier
    incremental = {}
    for lower, upper in zip(frontier, frontier[1:]):
        ratio = _ratio(lower, upper)
        if not np.isfinite(ratio):
            raise ComputationError("ICER is not finite", strategy=upper.strategy, field="ratio", value=ratio)
        incremental[upper.order] = (lower.strategy, upper.cost - lower.cost, upper.effect - lower.effect, ratio)

    entries = []
    for p in ordered:
        reference, d_cost, d_effect, ratio = incremental.get(p.order, (None, None, None, None))
        entries.append(ICEREntry(
            strategy=p.strategy,
            cost=p.cost,
            effect=p.effect,
            status=status[p.order],
            reference=reference,
            incremental_cost=d_cost,
            incremental_effect=d_effect,
            ratio=ratio,
        ))
    return entries


def frontier(entries):
    """Names of frontier strategies, cheapest first."""
    return [e.strategy for e in entries if e.status is DominanceStatus.ON_FRONTIER]


def icers_to_frame(entries):
    """
    Tabulate ICER entries (undefined incremental values become NaN).
    """
    rows = []
    for e in entries:
        rows.append({
            'Strategy': e.strategy,
            'Cost': e.cost,
            'Effect': e.effect,
            'Inc_Cost': np.nan if e.incremental_cost is None else e.incremental_cost,
            'Inc_Effect': np.nan if e.incremental_effect is None else e.incremental_effect,
            'ICER': np.nan if e.ratio is None else e.ratio,
            'Status': e.status.value,
            'Reference': e.reference,
        })
    columns = ['Strategy', 'Cost', 'Effect', 'Inc_Cost', 'Inc_Effect', 'ICER', 'Status', 'Reference']
    return pd.DataFrame(rows, columns=columns)
