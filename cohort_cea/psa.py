"""
Probabilistic sensitivity analysis (PSA).

Each Monte Carlo sample redraws the uncertain parameters from their
distributions, holds everything else at base-case values, and re-runs the
matrix -> trace -> rewards pipeline for every strategy.

Randomness contract: sample ``i`` draws from its own generator seeded with
``seed + i``, taking fields in catalogue order. Results therefore do not
depend on execution order, and sequential and parallel runs (``n_jobs``)
produce bit-identical tables.
"""

import logging
import math
from dataclasses import dataclass

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from cohort_cea.config import DEFAULT_N_JOBS, DEFAULT_N_SIM, DEFAULT_SEED, DEFAULT_WCC_METHOD
from cohort_cea.errors import ComputationError, InvalidMatrixError
from cohort_cea.icer import calculate_icers
from cohort_cea.model import check_distribution
from cohort_cea.params import BASE_PARAMS, DEFAULT_INITIAL, STRATEGIES, ParameterSet
from cohort_cea.rewards import wcc_weights
from cohort_cea.runner import run_strategy

logger = logging.getLogger(__name__)


# ==========================================
# PARAMETER DISTRIBUTIONS
# ==========================================
# Gamma for rates and costs (positive, right skewed), lognormal for hazard
# ratios (multiplicative), beta for utilities (bounded in [0, 1]).

@dataclass(frozen=True)
class Gamma:
    """Gamma distribution with shape k and rate (1 / scale)."""
    shape: float
    rate: float

    @classmethod
    def from_moments(cls, mean, sd):
        return cls(shape=(mean / sd) ** 2, rate=mean / sd ** 2)

    @property
    def mean(self):
        return self.shape / self.rate

    def sample(self, rng):
        return rng.gamma(self.shape, 1.0 / self.rate)


@dataclass(frozen=True)
class LogNormal:
    """Lognormal distribution; meanlog and sdlog are on the log scale."""
    meanlog: float
    sdlog: float

    @classmethod
    def from_moments(cls, mean, sd):
        sigma2 = math.log(1.0 + (sd / mean) ** 2)
        return cls(meanlog=math.log(mean) - sigma2 / 2.0, sdlog=math.sqrt(sigma2))

    @property
    def mean(self):
        return math.exp(self.meanlog + self.sdlog ** 2 / 2.0)

    def sample(self, rng):
        return rng.lognormal(self.meanlog, self.sdlog)


@dataclass(frozen=True)
class Beta:
    alpha: float
    beta: float

    @classmethod
    def from_moments(cls, mean, sd):
        var = sd ** 2
        if not 0 < mean < 1 or var >= mean * (1 - mean):
            raise ValueError(f"No beta distribution has mean={mean} and sd={sd}")
        common = mean * (1 - mean) / var - 1
        return cls(alpha=mean * common, beta=(1 - mean) * common)

    @property
    def mean(self):
        return self.alpha / (self.alpha + self.beta)

    def sample(self, rng):
        return rng.beta(self.alpha, self.beta)


# Standard uncertainty around the base case. Means are close to BASE_PARAMS
# (utilities sit slightly below it); background mortality and discount rates
# stay fixed.
DEFAULT_PSA_CATALOGUE = {
    'r_hs1': Gamma(shape=30, rate=200),              # mean 0.15
    'r_s1h': Gamma(shape=60, rate=120),              # mean 0.50
    'r_s1s2': Gamma(shape=84, rate=800),             # mean 0.105
    'hr_s1': LogNormal(meanlog=math.log(3), sdlog=0.01),
    'hr_s2': LogNormal(meanlog=math.log(10), sdlog=0.02),
    'hr_s1s2_trtb': LogNormal(meanlog=math.log(0.6), sdlog=0.02),
    'c_h': Gamma(shape=100, rate=1 / 20),            # mean 2,000
    'c_s1': Gamma(shape=177.8, rate=1 / 22.5),       # ~4,000
    'c_s2': Gamma(shape=225, rate=1 / 66.7),         # ~15,000
    'c_trta': Gamma(shape=73.5, rate=1 / 163.3),     # ~12,000
    'c_trtb': Gamma(shape=86.2, rate=1 / 150.8),     # ~13,000
    'u_h': Beta(alpha=200, beta=3),                  # ~0.985
    'u_s1': Beta(alpha=130, beta=45),                # ~0.743
    'u_s2': Beta(alpha=230, beta=230),               # 0.5
    'u_trta': Beta(alpha=300, beta=15),              # ~0.952
}

# Structural settings are not sampled
_FIXED_FIELDS = ('cycle_length', 'n_cycles')


# ==========================================
# SAMPLES AND RESULTS
# ==========================================

@dataclass(frozen=True)
class PSASample:
    """One draw: the sampled parameters and per-strategy totals."""
    index: int
    params: ParameterSet
    draws: dict
    costs: tuple
    effects: tuple


@dataclass(frozen=True)
class PSAResult:
    """
    Monte Carlo ensemble. Read-only once built.

    Attributes:
        strategies (tuple): Strategy names, in declaration order (= columns)
        costs (pd.DataFrame): n_sim x strategies discounted costs
        effects (pd.DataFrame): n_sim x strategies discounted QALYs
        parameters (pd.DataFrame): n_sim x sampled fields
        seed (int): Base seed of the run
    """
    strategies: tuple
    costs: pd.DataFrame
    effects: pd.DataFrame
    parameters: pd.DataFrame
    seed: int

    @property
    def n_sim(self):
        return len(self.costs)

    def summary(self):
        """Mean and standard deviation of cost and effect per strategy."""
        return pd.DataFrame({
            'Strategy': list(self.strategies),
            'Cost': self.costs.mean().to_numpy(),
            'Effect': self.effects.mean().to_numpy(),
            'Cost_SD': self.costs.std().to_numpy(),
            'Effect_SD': self.effects.std().to_numpy(),
        })

    def icers(self):
        """ICERs computed on the PSA means."""
        s = self.summary()
        return calculate_icers(zip(s['Strategy'], s['Cost'], s['Effect']))


# ==========================================
# ENGINE
# ==========================================

def validate_catalogue(catalogue):
    """Reject fields that are not sampleable ParameterSet fields."""
    known = set(ParameterSet.fields())
    for name in catalogue:
        if name not in known:
            raise KeyError(f"Unknown parameter in PSA catalogue: {name}")
        if name in _FIXED_FIELDS:
            raise ValueError(f"{name} is structural and cannot be sampled")


def draw_parameters(base, catalogue, rng, index=None):
    """
    Sample every declared field once, in catalogue order.

    Returns:
        tuple: (ParameterSet, dict of drawn values)

    Raises:
        ComputationError: If a draw is not finite
    """
    draws = {}
    for name, dist in catalogue.items():
        value = float(dist.sample(rng))
        if not np.isfinite(value):
            raise ComputationError("Sampled parameter is not finite", sample=index, field=name, value=value)
        draws[name] = value
    return base.replace(**draws), draws


def evaluate_sample(index, base, catalogue, seed, strategies, initial, method):
    """
    Run one PSA sample. Pure function of its arguments.

    Raises:
        ComputationError: With the sample index if the draw or any strategy fails
    """
    rng = np.random.default_rng(seed + index)
    params, draws = draw_parameters(base, catalogue, rng, index)

    costs, effects = [], []
    for strategy in strategies:
        try:
            _, outcome = run_strategy(params, strategy, initial, method)
        except (InvalidMatrixError, ComputationError) as exc:
            raise ComputationError(
                f"PSA sample failed: {exc.message}",
                sample=index,
                strategy=strategy.value,
                field=exc.field,
                value=exc.value,
            ) from exc
        costs.append(outcome.cost)
        effects.append(outcome.effect)

    return PSASample(index=index, params=params, draws=draws, costs=tuple(costs), effects=tuple(effects))


def run_psa(base=BASE_PARAMS, catalogue=None, n_sim=DEFAULT_N_SIM, seed=DEFAULT_SEED,
            strategies=STRATEGIES, initial=DEFAULT_INITIAL, method=DEFAULT_WCC_METHOD,
            n_jobs=DEFAULT_N_JOBS, progress=None):
    """
    Run a probabilistic sensitivity analysis.

    Args:
        base (ParameterSet): Values for every field not in the catalogue
        catalogue (dict): field name -> distribution (Gamma, LogNormal, Beta);
            defaults to DEFAULT_PSA_CATALOGUE
        n_sim (int): Number of Monte Carlo samples
        seed (int): Base seed; sample i uses seed + i
        strategies (list[Strategy]): Strategies to evaluate per sample
        initial (array-like): Starting distribution of the cohort
        method (str): Within-cycle correction
        n_jobs (int): 1 runs sequentially; anything else is passed to joblib
        progress (callable): Optional ``progress(done, total)`` hook, called
            after every sample in sequential mode

    Returns:
        PSAResult: Cost, effect and parameter tables

    Raises:
        ComputationError: First failing sample (fail fast, nothing skipped)
        InvalidHorizonError: "simpson" with an odd horizon, before any sampling
    """
    if catalogue is None:
        catalogue = DEFAULT_PSA_CATALOGUE
    if n_sim < 1:
        raise ValueError(f"n_sim must be at least 1, got {n_sim}")
    validate_catalogue(catalogue)
    # Horizon and correction method are shared by every sample
    wcc_weights(base.n_cycles, method)
    initial = check_distribution(initial)
    strategies = list(strategies)
    seed = int(seed)

    logger.info("Running PSA: %d samples x %d strategies (seed=%d, n_jobs=%s)",
                n_sim, len(strategies), seed, n_jobs)

    args = (base, dict(catalogue), seed, strategies, initial, method)
    if n_jobs == 1:
        samples = []
        for i in range(n_sim):
            samples.append(evaluate_sample(i, *args))
            if progress is not None:
                progress(i + 1, n_sim)
    else:
        samples = Parallel(n_jobs=n_jobs)(delayed(evaluate_sample)(i, *args) for i in range(n_sim))

    # Pre-sized tables, one write per sample slot
    names = tuple(s.value for s in strategies)
    fields = list(catalogue)
    costs = np.full((n_sim, len(names)), np.nan)
    effects = np.full((n_sim, len(names)), np.nan)
    draws = np.full((n_sim, len(fields)), np.nan)
    for sample in samples:
        costs[sample.index] = sample.costs
        effects[sample.index] = sample.effects
        draws[sample.index] = [sample.draws[f] for f in fields]

    logger.info("PSA finished: %d samples", n_sim)
    return PSAResult(
        strategies=names,
        costs=pd.DataFrame(costs, columns=list(names)),
        effects=pd.DataFrame(effects, columns=list(names)),
        parameters=pd.DataFrame(draws, columns=fields),
        seed=seed,
    )
