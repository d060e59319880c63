"""
Decision uncertainty from a PSA ensemble.

For a willingness-to-pay (WTP) value w, the net monetary benefit of
strategy s in sample i is

    nmb_i(s) = effect_i(s) * w - cost_i(s)

- CEAC: share of samples in which each strategy has the highest NMB.
- CEAF: the strategy with the highest *mean* NMB (what a risk-neutral
  decision maker would pick).
- ELC: expected loss of choosing s, mean(max_s' nmb_i(s') - nmb_i(s)).
- EVPI: expected value of perfect information, the smallest expected loss.

The CEAF/ELC optimum and the CEAC mode can differ when NMB distributions
are skewed; that is expected, not an error.
"""

import numpy as np
import pandas as pd

from cohort_cea.errors import ComputationError


def wtp_grid(lower, upper, step):
    """Evenly spaced WTP values from lower to upper (inclusive)."""
    if step <= 0:
        raise ValueError(f"WTP step must be positive, got {step}")
    if upper < lower:
        raise ValueError(f"WTP upper bound {upper} is below lower bound {lower}")
    n = int(np.floor((upper - lower) / step + 1e-9)) + 1
    return lower + step * np.arange(n, dtype=float)


def _wtp_index(wtp):
    return pd.Index(np.atleast_1d(np.asarray(wtp, dtype=float)), name="WTP")


def net_monetary_benefit(result, wtp):
    """
    NMB of every sample and strategy at every WTP.

    Returns:
        np.ndarray: shape (n_wtp, n_sim, n_strategies)
    """
    w = np.atleast_1d(np.asarray(wtp, dtype=float))
    effects = result.effects.to_numpy()
    costs = result.costs.to_numpy()
    nmb = effects[np.newaxis, :, :] * w[:, np.newaxis, np.newaxis] - costs[np.newaxis, :, :]
    if not np.all(np.isfinite(nmb)):
        k, i, s = np.argwhere(~np.isfinite(nmb))[0]
        raise ComputationError(
            "Net monetary benefit is not finite",
            sample=int(i),
            strategy=result.strategies[s],
            field=f"WTP={w[k]:g}",
        )
    return nmb


def ceac(result, wtp):
    """
    Cost-effectiveness acceptability curve.

    Ties in NMB go to the earliest-declared strategy.

    Returns:
        pd.DataFrame: WTP x strategy probabilities; each row sums to 1
    """
    nmb = net_monetary_benefit(result, wtp)
    best = np.argmax(nmb, axis=2)   # first maximum wins ties
    n_strat = len(result.strategies)
    probs = np.stack([(best == s).mean(axis=1) for s in range(n_strat)], axis=1)
    return pd.DataFrame(probs, index=_wtp_index(wtp), columns=list(result.strategies))


def ceaf(result, wtp):
    """
    Cost-effectiveness acceptability frontier.

    Returns:
        pd.DataFrame: indexed by WTP, with columns Strategy (highest mean NMB),
            Mean_NMB and Probability (its CEAC value)
    """
    nmb = net_monetary_benefit(result, wtp)
    mean_nmb = nmb.mean(axis=1)
    best = np.argmax(mean_nmb, axis=1)
    acceptability = ceac(result, wtp).to_numpy()
    rows = np.arange(len(best))
    return pd.DataFrame({
        'Strategy': [result.strategies[s] for s in best],
        'Mean_NMB': mean_nmb[rows, best],
        'Probability': acceptability[rows, best],
    }, index=_wtp_index(wtp))


def expected_loss(result, wtp):
    """
    Expected loss curves.

    Returns:
        pd.DataFrame: WTP x strategy expected loss (>= 0)
    """
    nmb = net_monetary_benefit(result, wtp)
    loss = nmb.max(axis=2, keepdims=True) - nmb
    return pd.DataFrame(loss.mean(axis=1), index=_wtp_index(wtp), columns=list(result.strategies))


def evpi(result, wtp):
    """
    Expected value of perfect information per cohort member.

    EVPI(w) = mean_i(max_s nmb_i(s)) - max_s mean_i(nmb_i(s))
    """
    nmb = net_monetary_benefit(result, wtp)
    value = nmb.max(axis=2).mean(axis=1) - nmb.mean(axis=1).max(axis=1)
    return pd.Series(value, index=_wtp_index(wtp), name="EVPI")
