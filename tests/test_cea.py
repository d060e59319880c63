import numpy as np
import pandas as pd
import pytest

from cohort_cea.cea import ceac, ceaf, evpi, expected_loss, net_monetary_benefit, wtp_grid
from cohort_cea.errors import ComputationError
from cohort_cea.params import BASE_PARAMS
from cohort_cea.psa import PSAResult, run_psa


def make_result(costs, effects, strategies=("A", "B")):
    return PSAResult(
        strategies=tuple(strategies),
        costs=pd.DataFrame(costs, columns=list(strategies), dtype=float),
        effects=pd.DataFrame(effects, columns=list(strategies), dtype=float),
        parameters=pd.DataFrame(index=range(len(costs))),
        seed=0,
    )


@pytest.fixture
def skewed():
    # B wins 3 of 4 samples by a little, A wins one sample by a lot
    return make_result(
        costs=[[0, 0], [0, 0], [0, 0], [0, 0]],
        effects=[[1.0, 1.1], [1.0, 1.1], [1.0, 1.1], [2.0, 1.1]],
    )


@pytest.fixture
def psa():
    return run_psa(BASE_PARAMS.replace(n_cycles=20), n_sim=40, seed=2024)


def test_wtp_grid_is_inclusive():
    np.testing.assert_array_equal(wtp_grid(0, 100000, 25000), [0, 25000, 50000, 75000, 100000])
    np.testing.assert_array_equal(wtp_grid(0, 0.3, 0.1), [0, 0.1, 0.2, 0.30000000000000004])
    assert len(wtp_grid(5, 5, 1)) == 1


@pytest.mark.parametrize("lower, upper, step", [(0, 10, 0), (10, 0, 1)])
def test_wtp_grid_rejects_bad_bounds(lower, upper, step):
    with pytest.raises(ValueError):
        wtp_grid(lower, upper, step)


def test_nmb_formula():
    result = make_result(costs=[[100, 300]], effects=[[1.0, 2.0]])
    nmb = net_monetary_benefit(result, [0, 1000])

    assert nmb.shape == (2, 1, 2)
    np.testing.assert_array_equal(nmb[0, 0], [-100, -300])
    np.testing.assert_array_equal(nmb[1, 0], [900, 1700])


def test_ceac_counts_per_sample_winner(skewed):
    curve = ceac(skewed, [1000])
    assert curve.loc[1000.0, "A"] == pytest.approx(0.25)
    assert curve.loc[1000.0, "B"] == pytest.approx(0.75)


def test_ceac_ties_go_to_first_declared():
    result = make_result(costs=[[0, 0]], effects=[[1.0, 1.0]])
    curve = ceac(result, [0, 500])
    assert curve["A"].tolist() == [1.0, 1.0]
    assert curve["B"].tolist() == [0.0, 0.0]


def test_ceaf_uses_mean_nmb_not_mode(skewed):
    frontier = ceaf(skewed, [1000])
    # Mean effect: A = 1.25, B = 1.1 -> A maximises expected NMB
    assert frontier.loc[1000.0, "Strategy"] == "A"
    assert frontier.loc[1000.0, "Mean_NMB"] == pytest.approx(1250.0)
    assert frontier.loc[1000.0, "Probability"] == pytest.approx(0.25)
    # ... while the CEAC mode is B
    assert ceac(skewed, [1000]).loc[1000.0].idxmax() == "B"


def test_expected_loss(skewed):
    loss = expected_loss(skewed, [1000])
    # A loses 100 in three samples; B loses 900 in one
    assert loss.loc[1000.0, "A"] == pytest.approx(75.0)
    assert loss.loc[1000.0, "B"] == pytest.approx(225.0)


def test_evpi_equals_minimum_expected_loss(skewed):
    value = evpi(skewed, [1000])
    assert value.loc[1000.0] == pytest.approx(75.0)
    assert value.name == "EVPI"


def test_curves_on_real_psa(psa):
    wtp = wtp_grid(0, 150000, 10000)
    curve = ceac(psa, wtp)
    loss = expected_loss(psa, wtp)
    frontier = ceaf(psa, wtp)
    info = evpi(psa, wtp)

    assert curve.index.name == "WTP"
    assert curve.shape == (len(wtp), 4)
    np.testing.assert_allclose(curve.sum(axis=1), 1.0)
    assert (loss.to_numpy() >= 0).all()
    np.testing.assert_allclose(info.to_numpy(), loss.min(axis=1).to_numpy(), atol=1e-6)

    # The expected-loss minimiser is the CEAF strategy
    assert list(loss.idxmin(axis=1)) == list(frontier["Strategy"])
    # At WTP = 0 the cheapest strategy (no treatment costs) is optimal everywhere
    assert frontier["Strategy"].iloc[0] == "Standard of care"
    assert curve.iloc[0]["Standard of care"] == 1.0


def test_non_finite_nmb_is_reported():
    result = make_result(costs=[[0, np.inf]], effects=[[1.0, 1.0]])
    with pytest.raises(ComputationError) as info:
        ceac(result, [100])
    assert info.value.strategy == "B"
    assert info.value.sample == 0
