"""
Health states, strategies and model parameters of the Sick-Sicker model.

All rates are annual instantaneous rates; costs and utilities are annual
values. Strategy-specific overrides live in one place, ``strategy_inputs``,
so that the matrix builder and the reward accumulator never branch on the
strategy themselves.
"""

import dataclasses
from dataclasses import dataclass
from enum import Enum

import numpy as np


# ==========================================
# HEALTH STATES
# ==========================================

class HealthState(Enum):
    """Mutually exclusive health states, in matrix order. Dead is absorbing."""
    HEALTHY = 0
    SICK1 = 1
    SICK2 = 2
    DEAD = 3

    @property
    def label(self):
        return _STATE_LABELS[self]


_STATE_LABELS = {
    HealthState.HEALTHY: "Healthy",
    HealthState.SICK1: "Sick1",
    HealthState.SICK2: "Sick2",
    HealthState.DEAD: "Dead",
}

STATES = list(HealthState)
STATE_NAMES = [s.label for s in STATES]
N_STATES = len(STATES)

# Everyone starts healthy
DEFAULT_INITIAL = np.array([1.0, 0.0, 0.0, 0.0])


# ==========================================
# STRATEGIES
# ==========================================
# Declaration order is the fixed precedence used to break ties in the
# ICER calculator and in the acceptability curves.

class Strategy(Enum):
    STANDARD_OF_CARE = "Standard of care"
    TREATMENT_A = "Strategy A"
    TREATMENT_B = "Strategy B"
    TREATMENT_AB = "Strategy AB"

    @property
    def uses_a(self):
        """Treatment A raises Sick1 utility."""
        return self in (Strategy.TREATMENT_A, Strategy.TREATMENT_AB)

    @property
    def uses_b(self):
        """Treatment B slows Sick1 -> Sick2 progression."""
        return self in (Strategy.TREATMENT_B, Strategy.TREATMENT_AB)


STRATEGIES = list(Strategy)


# ==========================================
# PARAMETER SET
# ==========================================

@dataclass(frozen=True)
class ParameterSet:
    """
    Immutable record of every model input.

    Rates:
        r_hs1: Healthy -> Sick1
        r_s1h: Sick1 -> Healthy (recovery)
        r_s1s2: Sick1 -> Sick2 (progression)
        r_hd: background mortality
    Hazard ratios:
        hr_s1, hr_s2: mortality in Sick1 / Sick2 relative to background
        hr_s1s2_trtb: effect of treatment B on progression
    Costs (annual): c_h, c_s1, c_s2, c_d, c_trta, c_trtb
    Utilities (annual): u_h, u_s1, u_s2, u_d, u_trta
    Discounting: d_c (costs), d_e (effects), annual rates
    Time: cycle_length in years, n_cycles cycles in the horizon
    """
    r_hs1: float = 0.15
    r_s1h: float = 0.5
    r_s1s2: float = 0.105
    r_hd: float = 0.002
    hr_s1: float = 3.0
    hr_s2: float = 10.0
    hr_s1s2_trtb: float = 0.6
    c_h: float = 2000.0
    c_s1: float = 4000.0
    c_s2: float = 15000.0
    c_d: float = 0.0
    c_trta: float = 12000.0
    c_trtb: float = 13000.0
    u_h: float = 1.0
    u_s1: float = 0.75
    u_s2: float = 0.5
    u_d: float = 0.0
    u_trta: float = 0.95
    d_c: float = 0.03
    d_e: float = 0.03
    cycle_length: float = 1.0
    n_cycles: int = 75

    def __post_init__(self):
        if self.cycle_length <= 0:
            raise ValueError(f"cycle_length must be positive, got {self.cycle_length}")
        if int(self.n_cycles) != self.n_cycles or self.n_cycles < 1:
            raise ValueError(f"n_cycles must be a positive integer, got {self.n_cycles}")

    @classmethod
    def fields(cls):
        """Names of all parameters, in declaration order."""
        return [f.name for f in dataclasses.fields(cls)]

    def replace(self, **changes):
        """Return a copy with some fields changed. Unknown names raise KeyError."""
        unknown = set(changes) - set(self.fields())
        if unknown:
            raise KeyError(f"Unknown parameter(s): {', '.join(sorted(unknown))}")
        return dataclasses.replace(self, **changes)

    def as_dict(self):
        return dataclasses.asdict(self)


# Base case
BASE_PARAMS = ParameterSet()


# ==========================================
# STRATEGY -> EFFECTIVE INPUTS
# ==========================================

@dataclass(frozen=True)
class StrategyInputs:
    """
    Strategy-adjusted inputs for one (ParameterSet, Strategy) pair.

    ``costs`` and ``utilities`` are per-cycle reward vectors indexed by
    HealthState (annual values times the cycle length).
    """
    strategy: Strategy
    r_s1s2: float
    costs: np.ndarray
    utilities: np.ndarray


def strategy_inputs(params, strategy):
    """
    Map base parameters to the rates and rewards seen under a strategy.

    Args:
        params (ParameterSet): Base or sampled parameters
        strategy (Strategy): Strategy to evaluate

    Returns:
        StrategyInputs: Effective progression rate plus cost and utility vectors
    """
    r_s1s2 = params.r_s1s2
    if strategy.uses_b:
        r_s1s2 = params.r_s1s2 * params.hr_s1s2_trtb

    # Treatment costs are paid while sick (Sick1 and Sick2), both for AB
    c_trt = 0.0
    if strategy.uses_a:
        c_trt += params.c_trta
    if strategy.uses_b:
        c_trt += params.c_trtb

    u_s1 = params.u_trta if strategy.uses_a else params.u_s1

    costs = np.array([params.c_h, params.c_s1 + c_trt, params.c_s2 + c_trt, params.c_d])
    utilities = np.array([params.u_h, u_s1, params.u_s2, params.u_d])

    costs = costs * params.cycle_length
    utilities = utilities * params.cycle_length
    costs.flags.writeable = False
    utilities.flags.writeable = False

    return StrategyInputs(strategy=strategy, r_s1s2=r_s1s2, costs=costs, utilities=utilities)
