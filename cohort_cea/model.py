"""
Markov model engine: transition matrices and cohort traces.

A Markov cohort model divides the population into mutually exclusive health
states and moves it between them at discrete cycles:

    trace[t+1] = trace[t] @ T

where T[i, j] is the probability of moving FROM state i TO state j within
one cycle. The model is time-homogeneous: the same T is used every cycle.
"""

import logging

import numpy as np
import pandas as pd

from cohort_cea.config import TOLERANCE
from cohort_cea.errors import ComputationError, InvalidDistributionError, InvalidMatrixError
from cohort_cea.params import N_STATES, STATE_NAMES, HealthState, strategy_inputs

logger = logging.getLogger(__name__)

H, S1, S2, D = (s.value for s in HealthState)


def rate_to_prob(rate, cycle_length=1.0):
    """Convert an instantaneous rate into a per-cycle probability, 1 - exp(-rate * dt)."""
    return 1.0 - np.exp(-rate * cycle_length)


# ==========================================
# TRANSITION MATRIX
# ==========================================

class TransitionMatrix:
    """
    Validated, read-only row-stochastic matrix for one strategy.

    Rows are FROM states, columns are TO states, both in HealthState order.
    """

    def __init__(self, values, strategy=None):
        values = np.array(values, dtype=float)
        validate_matrix(values, strategy)
        values.flags.writeable = False
        self.values = values
        self.strategy = strategy

    def __getitem__(self, key):
        return self.values[key]

    def __array__(self, dtype=None, copy=None):
        if copy:
            return np.array(self.values, dtype=dtype, copy=True)
        if dtype is None:
            return self.values
        return self.values.astype(dtype)

    @property
    def shape(self):
        return self.values.shape

    def to_frame(self):
        """Labelled copy of the matrix (FROM states as index, TO states as columns)."""
        return pd.DataFrame(self.values, index=STATE_NAMES, columns=STATE_NAMES)


def validate_matrix(values, strategy=None):
    """
    Check the row-stochastic invariants of a transition matrix.

    Raises:
        InvalidMatrixError: on a wrong shape, an entry outside [0, 1] (including
            NaN/inf), a row not summing to 1 within TOLERANCE, or a Dead row
            that is not absorbing. Nothing is clamped.
    """
    name = strategy.value if strategy is not None else None

    if values.shape != (N_STATES, N_STATES):
        raise InvalidMatrixError(
            f"Transition matrix must be {N_STATES}x{N_STATES}, got {values.shape}", strategy=name
        )

    # NaN fails both comparisons, so it is reported here too
    bad = ~((values >= 0.0) & (values <= 1.0))
    if bad.any():
        i, j = np.argwhere(bad)[0]
        raise InvalidMatrixError(
            "Transition probability outside [0, 1]",
            strategy=name,
            field=f"{STATE_NAMES[i]}->{STATE_NAMES[j]}",
            value=float(values[i, j]),
        )

    row_sums = values.sum(axis=1)
    off = np.abs(row_sums - 1.0) > TOLERANCE
    if off.any():
        i = int(np.argmax(off))
        raise InvalidMatrixError(
            "Transition matrix row does not sum to 1",
            strategy=name,
            field=STATE_NAMES[i],
            value=float(row_sums[i]),
        )

    absorbing = np.zeros(N_STATES)
    absorbing[D] = 1.0
    if not np.array_equal(values[D], absorbing):
        raise InvalidMatrixError("Dead state must be absorbing", strategy=name, field=STATE_NAMES[D])


def build_transition_matrix(params, strategy):
    """
    Build the transition matrix of one strategy from annual rates.

    All non-death transitions are conditional on surviving the cycle:
    T[X, Y] = (1 - p_XD) * p_XY and T[X, X] = (1 - p_XD) * (1 - sum of the
    other non-death exits of X).

    Args:
        params (ParameterSet): Base-case or sampled parameters
        strategy (Strategy): Strategy whose transition modifiers apply

    Returns:
        TransitionMatrix: Validated matrix

    Raises:
        InvalidMatrixError: If the parameters produce an invalid matrix
    """
    dt = params.cycle_length
    inputs = strategy_inputs(params, strategy)

    # Mortality: background, and scaled by hazard ratios while sick
    p_hd = rate_to_prob(params.r_hd, dt)
    p_s1d = rate_to_prob(params.r_hd * params.hr_s1, dt)
    p_s2d = rate_to_prob(params.r_hd * params.hr_s2, dt)

    # Disease transitions (progression is strategy specific)
    p_hs1 = rate_to_prob(params.r_hs1, dt)
    p_s1h = rate_to_prob(params.r_s1h, dt)
    p_s1s2 = rate_to_prob(inputs.r_s1s2, dt)

    T = np.zeros((N_STATES, N_STATES))

    # Healthy -> can get sick or die
    T[H, H] = (1 - p_hd) * (1 - p_hs1)
    T[H, S1] = (1 - p_hd) * p_hs1
    T[H, D] = p_hd

    # Sick1 -> can recover, progress or die
    T[S1, H] = (1 - p_s1d) * p_s1h
    T[S1, S1] = (1 - p_s1d) * (1 - (p_s1h + p_s1s2))
    T[S1, S2] = (1 - p_s1d) * p_s1s2
    T[S1, D] = p_s1d

    # Sick2 -> can only die
    T[S2, S2] = 1 - p_s2d
    T[S2, D] = p_s2d

    # Dead -> absorbing
    T[D, D] = 1.0

    return TransitionMatrix(T, strategy=strategy)


# ==========================================
# COHORT TRACE
# ==========================================

class CohortTrace:
    """
    Population distribution over health states, one row per cycle 0..N.
    """

    def __init__(self, values, strategy=None):
        values = np.asarray(values, dtype=float)
        values.flags.writeable = False
        self.values = values
        self.strategy = strategy

    def __len__(self):
        return self.values.shape[0]

    def __getitem__(self, key):
        return self.values[key]

    def __array__(self, dtype=None, copy=None):
        if copy:
            return np.array(self.values, dtype=dtype, copy=True)
        if dtype is None:
            return self.values
        return self.values.astype(dtype)

    @property
    def n_cycles(self):
        return self.values.shape[0] - 1

    def to_frame(self):
        """Cycle x state table."""
        frame = pd.DataFrame(self.values, columns=STATE_NAMES)
        frame.index.name = "cycle"
        return frame


def check_distribution(initial):
    """
    Validate an initial cohort vector.

    Returns:
        np.ndarray: The vector as floats

    Raises:
        InvalidDistributionError: Wrong length, non-finite or negative mass,
            or total not equal to 1 within TOLERANCE
    """
    v = np.asarray(initial, dtype=float)
    if v.shape != (N_STATES,):
        raise InvalidDistributionError(
            f"Initial distribution must have {N_STATES} entries, got shape {v.shape}"
        )
    if not np.all(np.isfinite(v)):
        raise InvalidDistributionError("Initial distribution contains non-finite values")
    if (v < 0).any():
        i = int(np.argmax(v < 0))
        raise InvalidDistributionError(
            "Initial distribution contains negative mass", field=STATE_NAMES[i], value=float(v[i])
        )
    total = v.sum()
    if abs(total - 1.0) > TOLERANCE:
        raise InvalidDistributionError("Initial distribution does not sum to 1", value=float(total))
    return v


def trace_cohort(initial, matrix, n_cycles):
    """
    Run the Markov chain for a fixed number of cycles.

    Args:
        initial (array-like): Starting distribution over the 4 states
        matrix (TransitionMatrix): Validated transition matrix
        n_cycles (int): Number of cycles N

    Returns:
        CohortTrace: N+1 rows, row 0 is the initial distribution
    """
    if int(n_cycles) != n_cycles or n_cycles < 0:
        raise ValueError(f"n_cycles must be a non-negative integer, got {n_cycles}")
    n_cycles = int(n_cycles)
    v0 = check_distribution(initial)
    T = np.asarray(matrix, dtype=float)
    strategy = getattr(matrix, "strategy", None)

    trace = np.zeros((n_cycles + 1, N_STATES))
    trace[0] = v0
    # Each cycle depends on the previous one, so this loop stays sequential
    for t in range(n_cycles):
        trace[t + 1] = trace[t] @ T

    # Population conservation (row-sum error of T can compound once per cycle)
    allowed = TOLERANCE * max(1, n_cycles)
    drift = np.abs(trace.sum(axis=1) - 1.0)
    if (drift > allowed).any():
        t = int(np.argmax(drift > allowed))
        raise ComputationError(
            "Cohort trace lost population mass",
            strategy=strategy.value if strategy is not None else None,
            field=f"cycle {t}",
            value=float(trace[t].sum()),
        )

    return CohortTrace(trace, strategy=strategy)
