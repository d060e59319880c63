"""
Deterministic one-way sensitivity analysis (OWSA).

Each parameter is varied on its own across a range while all others stay
at base-case values. Unlike the PSA this shows which single input moves
the results most, but ignores joint uncertainty.
"""

import logging

import numpy as np
import pandas as pd

from cohort_cea.config import DEFAULT_WCC_METHOD
from cohort_cea.errors import ComputationError, InvalidMatrixError
from cohort_cea.params import BASE_PARAMS, DEFAULT_INITIAL, STRATEGIES
from cohort_cea.runner import run_strategy

logger = logging.getLogger(__name__)

OUTCOMES = ('Cost', 'Effect', 'NMB')


def run_owsa(ranges, base=BASE_PARAMS, n_points=10, strategies=STRATEGIES, wtp=50000,
             initial=DEFAULT_INITIAL, method=DEFAULT_WCC_METHOD):
    """
    Vary parameters one at a time.

    Args:
        ranges (dict): field name -> (low, high)
        base (ParameterSet): Values for everything not being varied
        n_points (int): Evenly spaced values per parameter (endpoints included)
        strategies (list[Strategy]): Strategies to evaluate
        wtp (float): Willingness to pay used for the NMB column
        initial (array-like): Starting distribution of the cohort
        method (str): Within-cycle correction

    Returns:
        pd.DataFrame: Columns Parameter, Value, Strategy, Cost, Effect, NMB

    Raises:
        ComputationError: Names the varied parameter and value of a failing point
    """
    if n_points < 2:
        raise ValueError(f"n_points must be at least 2, got {n_points}")

    rows = []
    for name, (low, high) in ranges.items():
        for value in np.linspace(low, high, n_points):
            params = base.replace(**{name: float(value)})
            for strategy in strategies:
                try:
                    _, outcome = run_strategy(params, strategy, initial, method)
                except (InvalidMatrixError, ComputationError) as exc:
                    raise ComputationError(
                        f"OWSA point failed: {exc}",
                        strategy=strategy.value,
                        field=name,
                        value=float(value),
                    ) from exc
                rows.append({
                    'Parameter': name,
                    'Value': float(value),
                    'Strategy': outcome.strategy,
                    'Cost': outcome.cost,
                    'Effect': outcome.effect,
                    'NMB': outcome.effect * wtp - outcome.cost,
                })
        logger.debug("OWSA done for %s over [%g, %g]", name, low, high)

    return pd.DataFrame(rows, columns=['Parameter', 'Value', 'Strategy', 'Cost', 'Effect', 'NMB'])


def tornado(owsa, strategy, outcome='NMB'):
    """
    Summarise an OWSA table as tornado bars for one strategy.

    Returns:
        pd.DataFrame: Parameter, Low, High, Swing (High - Low), sorted by
            decreasing swing
    """
    if outcome not in OUTCOMES:
        raise ValueError(f"outcome must be one of {OUTCOMES}, got {outcome!r}")
    sub = owsa[owsa['Strategy'] == strategy]
    if sub.empty:
        raise KeyError(f"No OWSA rows for strategy {strategy!r}")
    bars = sub.groupby('Parameter', sort=False)[outcome].agg(Low='min', High='max').reset_index()
    bars['Swing'] = bars['High'] - bars['Low']
    return bars.sort_values('Swing', ascending=False, kind='stable').reset_index(drop=True)
