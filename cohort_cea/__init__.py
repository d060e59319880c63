"""
Cohort state-transition model for cost-effectiveness analysis (Sick-Sicker).
"""

from cohort_cea.cea import ceac, ceaf, evpi, expected_loss, net_monetary_benefit, wtp_grid
from cohort_cea.errors import (
    ComputationError,
    InvalidDistributionError,
    InvalidHorizonError,
    InvalidMatrixError,
    ModelError,
)
from cohort_cea.icer import DominanceStatus, ICEREntry, calculate_icers, icers_to_frame
from cohort_cea.model import CohortTrace, TransitionMatrix, build_transition_matrix, trace_cohort
from cohort_cea.owsa import run_owsa, tornado
from cohort_cea.params import (
    BASE_PARAMS,
    DEFAULT_INITIAL,
    STATE_NAMES,
    STRATEGIES,
    HealthState,
    ParameterSet,
    Strategy,
    strategy_inputs,
)
from cohort_cea.psa import DEFAULT_PSA_CATALOGUE, Beta, Gamma, LogNormal, PSAResult, run_psa
from cohort_cea.rewards import Outcome, accumulate, discount_weights, wcc_weights
from cohort_cea.runner import BaseCaseResult, run_base_case, run_strategy

__version__ = "0.1.0"
