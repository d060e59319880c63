"""
Deterministic base-case pipeline: matrix -> trace -> rewards -> ICERs.
"""

import logging
from dataclasses import dataclass, field

import pandas as pd

from cohort_cea.config import DEFAULT_WCC_METHOD
from cohort_cea.icer import calculate_icers, icers_to_frame
from cohort_cea.model import build_transition_matrix, trace_cohort
from cohort_cea.params import BASE_PARAMS, DEFAULT_INITIAL, STRATEGIES, strategy_inputs
from cohort_cea.rewards import accumulate

logger = logging.getLogger(__name__)


def run_strategy(params, strategy, initial=DEFAULT_INITIAL, method=DEFAULT_WCC_METHOD):
    """
    Evaluate one strategy.

    Returns:
        tuple: (CohortTrace, Outcome)
    """
    matrix = build_transition_matrix(params, strategy)
    trace = trace_cohort(initial, matrix, params.n_cycles)
    outcome = accumulate(trace, strategy_inputs(params, strategy), params, method)
    return trace, outcome


@dataclass
class BaseCaseResult:
    """Traces, totals and ICERs of a deterministic run."""
    traces: dict = field(default_factory=dict)
    outcomes: list = field(default_factory=list)
    icers: list = field(default_factory=list)

    def outcome_frame(self):
        return pd.DataFrame(
            [{'Strategy': o.strategy, 'Cost': o.cost, 'Effect': o.effect} for o in self.outcomes],
            columns=['Strategy', 'Cost', 'Effect'],
        )

    def icer_frame(self):
        return icers_to_frame(self.icers)


def run_base_case(params=BASE_PARAMS, strategies=STRATEGIES, initial=DEFAULT_INITIAL,
                  method=DEFAULT_WCC_METHOD):
    """
    Run every strategy on the same parameters and compare them.

    Args:
        params (ParameterSet): Parameters shared by all strategies
        strategies (list[Strategy]): Strategies in declaration order
        initial (array-like): Starting distribution of the cohort
        method (str): Within-cycle correction

    Returns:
        BaseCaseResult: Traces keyed by strategy, outcomes and ICER entries
    """
    result = BaseCaseResult()
    for strategy in strategies:
        trace, outcome = run_strategy(params, strategy, initial, method)
        result.traces[strategy] = trace
        result.outcomes.append(outcome)

    result.icers = calculate_icers(result.outcomes)
    logger.info("Base case finished for %d strategies over %d cycles", len(strategies), params.n_cycles)
    return result
