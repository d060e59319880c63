import math

import numpy as np
import pytest

from cohort_cea.errors import ComputationError, InvalidDistributionError, InvalidMatrixError
from cohort_cea.model import (
    CohortTrace,
    TransitionMatrix,
    build_transition_matrix,
    rate_to_prob,
    trace_cohort,
)
from cohort_cea.params import BASE_PARAMS, DEFAULT_INITIAL, STATE_NAMES, STRATEGIES, Strategy


@pytest.mark.parametrize("strategy", STRATEGIES)
def test_matrix_is_row_stochastic(strategy):
    T = build_transition_matrix(BASE_PARAMS, strategy)

    assert T.shape == (4, 4)
    assert np.all(T.values >= 0) and np.all(T.values <= 1)
    np.testing.assert_allclose(T.values.sum(axis=1), 1.0, atol=1e-9)
    assert T.values[3].tolist() == [0.0, 0.0, 0.0, 1.0]


def test_first_cycle_probabilities_standard_of_care():
    T = build_transition_matrix(BASE_PARAMS, Strategy.STANDARD_OF_CARE)

    p_hd = 1 - math.exp(-0.002)
    p_hs1 = 1 - math.exp(-0.15)
    p_s1d = 1 - math.exp(-0.006)
    p_s2d = 1 - math.exp(-0.02)

    assert p_hs1 == pytest.approx(0.1393, abs=1e-4)
    assert p_s1d == pytest.approx(0.005982, abs=1e-6)
    assert p_s2d == pytest.approx(0.019801, abs=1e-6)

    assert T[0, 0] == pytest.approx((1 - p_hd) * (1 - p_hs1))
    assert T[0, 1] == pytest.approx((1 - p_hd) * p_hs1)
    assert T[0, 3] == pytest.approx(p_hd)
    assert T[1, 3] == pytest.approx(p_s1d)
    assert T[2, 3] == pytest.approx(p_s2d)
    assert T[2, 2] == pytest.approx(1 - p_s2d)


def test_treatment_b_slows_progression_only():
    soc = build_transition_matrix(BASE_PARAMS, Strategy.STANDARD_OF_CARE)
    trt_b = build_transition_matrix(BASE_PARAMS, Strategy.TREATMENT_B)
    trt_a = build_transition_matrix(BASE_PARAMS, Strategy.TREATMENT_A)

    p_s1d = rate_to_prob(BASE_PARAMS.r_hd * BASE_PARAMS.hr_s1)
    expected = (1 - p_s1d) * rate_to_prob(BASE_PARAMS.r_s1s2 * 0.6)

    assert trt_b[1, 2] == pytest.approx(expected)
    assert trt_b[1, 2] < soc[1, 2]
    np.testing.assert_array_equal(trt_a.values, soc.values)
    np.testing.assert_array_equal(trt_b.values[0], soc.values[0])


def test_matrix_is_read_only():
    T = build_transition_matrix(BASE_PARAMS, Strategy.STANDARD_OF_CARE)
    with pytest.raises(ValueError):
        T.values[0, 0] = 0.5


def test_array_copy_does_not_share_memory():
    T = build_transition_matrix(BASE_PARAMS, Strategy.STANDARD_OF_CARE)
    copied = T.__array__(copy=True)
    assert not np.shares_memory(copied, T.values)
    assert copied.flags.writeable
    assert not np.shares_memory(np.array(T), T.values)

    trace = trace_cohort(DEFAULT_INITIAL, T, 3)
    assert not np.shares_memory(trace.__array__(copy=True), trace.values)


def test_pathological_rates_are_rejected_not_clamped():
    # Recovery + progression probabilities above 1 leave a negative Sick1 -> Sick1 entry
    params = BASE_PARAMS.replace(r_s1h=5.0, r_s1s2=5.0)

    with pytest.raises(InvalidMatrixError) as info:
        build_transition_matrix(params, Strategy.STANDARD_OF_CARE)

    assert info.value.field == "Sick1->Sick1"
    assert info.value.value < 0
    assert info.value.strategy == "Standard of care"


def test_negative_rate_is_rejected():
    with pytest.raises(InvalidMatrixError):
        build_transition_matrix(BASE_PARAMS.replace(r_hs1=-0.1), Strategy.STANDARD_OF_CARE)


def test_matrix_row_sum_check():
    values = np.eye(4)
    values[0] = [0.5, 0.4, 0.0, 0.0]
    with pytest.raises(InvalidMatrixError) as info:
        TransitionMatrix(values)
    assert info.value.field == "Healthy"


def test_dead_state_must_be_absorbing():
    values = np.eye(4)
    values[3] = [0.5, 0.0, 0.0, 0.5]
    with pytest.raises(InvalidMatrixError):
        TransitionMatrix(values)


def test_matrix_frame_is_labelled():
    frame = build_transition_matrix(BASE_PARAMS, Strategy.STANDARD_OF_CARE).to_frame()
    assert list(frame.index) == STATE_NAMES
    assert list(frame.columns) == STATE_NAMES


@pytest.mark.parametrize("strategy", STRATEGIES)
def test_trace_conserves_population_and_dead_is_monotone(strategy):
    T = build_transition_matrix(BASE_PARAMS, strategy)
    trace = trace_cohort(DEFAULT_INITIAL, T, 75)

    assert len(trace) == 76
    assert trace.n_cycles == 75
    np.testing.assert_allclose(trace.values.sum(axis=1), 1.0, atol=1e-9)
    assert np.all(np.diff(trace[:, 3]) >= 0)


def test_trace_first_cycle_is_healthy_row():
    T = build_transition_matrix(BASE_PARAMS, Strategy.STANDARD_OF_CARE)
    trace = trace_cohort([1, 0, 0, 0], T, 2)

    np.testing.assert_array_equal(trace[0], [1, 0, 0, 0])
    np.testing.assert_allclose(trace[1], T.values[0])
    np.testing.assert_allclose(trace[2], T.values[0] @ T.values)
    assert trace[1, 2] == 0.0


def test_trace_frame():
    T = build_transition_matrix(BASE_PARAMS, Strategy.TREATMENT_AB)
    frame = trace_cohort(DEFAULT_INITIAL, T, 10).to_frame()

    assert frame.shape == (11, 4)
    assert list(frame.columns) == STATE_NAMES
    assert frame.index.name == "cycle"


def test_zero_cycles_returns_initial_only():
    T = build_transition_matrix(BASE_PARAMS, Strategy.STANDARD_OF_CARE)
    trace = trace_cohort([0.5, 0.5, 0, 0], T, 0)
    assert isinstance(trace, CohortTrace)
    assert trace.values.shape == (1, 4)


@pytest.mark.parametrize("initial", [
    [0.5, 0.4, 0.0, 0.0],       # sums to 0.9
    [1.2, -0.2, 0.0, 0.0],      # negative mass
    [1.0, 0.0, 0.0],            # wrong length
    [np.nan, 1.0, 0.0, 0.0],
])
def test_invalid_initial_distribution(initial):
    T = build_transition_matrix(BASE_PARAMS, Strategy.STANDARD_OF_CARE)
    with pytest.raises(InvalidDistributionError):
        trace_cohort(initial, T, 5)


def test_leaky_raw_array_is_caught_during_propagation():
    values = np.eye(4)
    values[0] = [0.9, 0.0, 0.0, 0.0]
    with pytest.raises(ComputationError) as info:
        trace_cohort([1, 0, 0, 0], values, 3)
    assert info.value.field == "cycle 1"
