"""
Discounted cost and QALY totals from a cohort trace.

    total = sum_t (trace[t] @ reward) * discount[t] * wcc[t]

``discount`` converts future values to present values and ``wcc`` is a
within-cycle correction that approximates continuous-time state occupancy
from the discrete trace by numerical integration.
"""

import logging
from dataclasses import dataclass

import numpy as np

from cohort_cea.config import DEFAULT_WCC_METHOD
from cohort_cea.errors import ComputationError, InvalidHorizonError

logger = logging.getLogger(__name__)

WCC_METHODS = ("simpson", "simpson-composite", "trapezoid", "none")


@dataclass(frozen=True)
class Outcome:
    """Total discounted cost and effect (QALYs) of one strategy."""
    strategy: str
    cost: float
    effect: float


def discount_weights(rate, cycle_length, n_cycles):
    """
    Discount factor for each cycle 0..N: 1 / (1 + rate * cycle_length) ** t.

    The weight of cycle 0 is always 1.
    """
    t = np.arange(n_cycles + 1)
    return 1.0 / (1.0 + rate * cycle_length) ** t


def _simpson_one_third(n_cycles):
    # 1/3, 4/3, 2/3, 4/3, ..., 4/3, 1/3
    w = np.where(np.arange(n_cycles + 1) % 2 == 1, 4.0 / 3.0, 2.0 / 3.0)
    w[0] = w[n_cycles] = 1.0 / 3.0
    return w


def wcc_weights(n_cycles, method=DEFAULT_WCC_METHOD):
    """
    Within-cycle correction weights for cycles 0..N.

    Methods:
        "simpson": composite Simpson's 1/3 rule. Requires an even N.
        "simpson-composite": Simpson's 1/3 rule for even N; for odd N the
            1/3 rule covers cycles 0..N-3 and Simpson's 3/8 rule the last
            three intervals. N = 1 uses the trapezoid rule.
        "trapezoid": half-cycle correction, 1/2 at both ends.
        "none": no correction, every cycle counts fully.

    Apart from "none", the weights sum to exactly N.

    Raises:
        InvalidHorizonError: "simpson" with an odd N
        ValueError: Unknown method or negative N
    """
    if n_cycles < 0:
        raise ValueError(f"n_cycles must be non-negative, got {n_cycles}")
    if method not in WCC_METHODS:
        raise ValueError(f"Unknown within-cycle correction {method!r}, expected one of {WCC_METHODS}")

    if method == "none":
        return np.ones(n_cycles + 1)
    if n_cycles == 0:
        return np.zeros(1)
    if method == "trapezoid":
        w = np.ones(n_cycles + 1)
        w[0] = w[n_cycles] = 0.5
        return w

    if n_cycles % 2 == 0:
        return _simpson_one_third(n_cycles)

    if method == "simpson":
        raise InvalidHorizonError(
            "Simpson's 1/3 correction needs an even number of cycles", field="n_cycles", value=n_cycles
        )

    logger.warning("Odd horizon (%d cycles): closing Simpson correction with the 3/8 rule", n_cycles)
    if n_cycles == 1:
        return np.array([0.5, 0.5])
    head = n_cycles - 3
    w = np.zeros(n_cycles + 1)
    if head > 0:
        w[: head + 1] = _simpson_one_third(head)
    w[head:] += np.array([3.0, 9.0, 9.0, 3.0]) / 8.0
    return w


def accumulate(trace, inputs, params, method=DEFAULT_WCC_METHOD):
    """
    Total discounted cost and QALYs of one strategy.

    Args:
        trace (CohortTrace): Cohort trace of the strategy
        inputs (StrategyInputs): Per-cycle cost and utility vectors
        params (ParameterSet): Supplies discount rates and cycle length
        method (str): Within-cycle correction, see ``wcc_weights``

    Returns:
        Outcome: Discounted totals per cohort member

    Raises:
        ComputationError: If either total is not finite
    """
    values = np.asarray(trace, dtype=float)
    n_cycles = values.shape[0] - 1
    wcc = wcc_weights(n_cycles, method)

    # Reward per cycle = population in each state x reward of that state
    cost_per_cycle = values @ inputs.costs
    qaly_per_cycle = values @ inputs.utilities

    cost = float(np.sum(cost_per_cycle * discount_weights(params.d_c, params.cycle_length, n_cycles) * wcc))
    effect = float(np.sum(qaly_per_cycle * discount_weights(params.d_e, params.cycle_length, n_cycles) * wcc))

    name = inputs.strategy.value
    if not np.isfinite(cost):
        raise ComputationError("Total discounted cost is not finite", strategy=name, field="cost", value=cost)
    if not np.isfinite(effect):
        raise ComputationError("Total discounted effect is not finite", strategy=name, field="effect", value=effect)

    logger.debug("%s: cost=%.2f effect=%.4f", name, cost, effect)
    return Outcome(strategy=name, cost=cost, effect=effect)
