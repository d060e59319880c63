import math

import numpy as np
import pytest

from cohort_cea.errors import ComputationError
from cohort_cea.icer import DominanceStatus, calculate_icers, frontier, icers_to_frame
from cohort_cea.rewards import Outcome
from cohort_cea.runner import run_base_case

ND = DominanceStatus.ON_FRONTIER
D = DominanceStatus.DOMINATED
ED = DominanceStatus.EXTENDEDLY_DOMINATED


def by_name(entries):
    return {e.strategy: e for e in entries}


def test_empty_input_gives_empty_frontier():
    assert calculate_icers([]) == []


def test_single_strategy_is_reference():
    (entry,) = calculate_icers([("SoC", 100.0, 10.0)])
    assert entry.status is ND
    assert entry.ratio is None
    assert entry.reference is None


def test_two_strategy_icer():
    entries = calculate_icers([("SoC", 1000.0, 10.0), ("New", 3000.0, 10.5)])
    new = by_name(entries)["New"]

    assert new.status is ND
    assert new.reference == "SoC"
    assert new.incremental_cost == pytest.approx(2000.0)
    assert new.incremental_effect == pytest.approx(0.5)
    assert new.ratio == pytest.approx(4000.0)


def test_strictly_more_costly_and_less_effective_is_dominated():
    # B: cheaper and more effective than A (hazard ratio 0.6 on progression)
    entries = calculate_icers([
        ("Standard of care", 150000.0, 20.7),
        ("Strategy A", 285000.0, 21.5),
        ("Strategy B", 259000.0, 22.2),
        ("Strategy AB", 379000.0, 23.1),
    ])
    status = {e.strategy: e.status for e in entries}

    assert status["Strategy A"] is D
    assert frontier(entries) == ["Standard of care", "Strategy B", "Strategy AB"]
    assert by_name(entries)["Strategy A"].ratio is None


def test_equal_effect_higher_cost_is_dominated():
    entries = calculate_icers([("X", 100.0, 5.0), ("Y", 200.0, 5.0)])
    assert by_name(entries)["Y"].status is D


def test_extended_dominance():
    # B lies above the line joining A and C
    entries = calculate_icers([("A", 0.0, 0.0), ("B", 100.0, 1.0), ("C", 150.0, 3.0)])
    status = {e.strategy: e.status for e in entries}

    assert status == {"A": ND, "B": ED, "C": ND}
    c = by_name(entries)["C"]
    assert c.reference == "A"
    assert c.ratio == pytest.approx(50.0)


def test_extended_dominance_cascades():
    entries = calculate_icers([
        ("A", 0.0, 0.0),
        ("B", 10.0, 0.1),     # ratio 100
        ("C", 20.0, 0.5),     # ratio 25 -> B out; C vs A is then 40
        ("D", 30.0, 2.0),     # D vs C is 10 -> C out
        ("E", 100.0, 2.5),
    ])
    assert frontier(entries) == ["A", "D", "E"]
    ratios = [e.ratio for e in entries if e.status is ND and e.ratio is not None]
    assert ratios == sorted(ratios)


def test_equal_ratios_both_stay_on_frontier():
    entries = calculate_icers([("A", 0.0, 0.0), ("B", 10.0, 1.0), ("C", 20.0, 2.0)])
    assert frontier(entries) == ["A", "B", "C"]


def test_exact_duplicates_keep_first_declared():
    entries = calculate_icers([("First", 10.0, 1.0), ("Second", 10.0, 1.0), ("Base", 0.0, 0.0)])
    status = {e.strategy: e.status for e in entries}
    assert status["First"] is ND
    assert status["Second"] is D


def test_cost_ties_are_ordered_by_declaration():
    entries = calculate_icers([("Late", 10.0, 1.0), ("Early", 10.0, 2.0), ("Base", 0.0, 0.0)])
    assert [e.strategy for e in entries] == ["Base", "Late", "Early"]
    assert by_name(entries)["Late"].status is D


def test_results_are_ordered_by_cost():
    entries = calculate_icers([("C", 300.0, 3.0), ("A", 100.0, 1.0), ("B", 200.0, 2.5)])
    assert [e.strategy for e in entries] == ["A", "B", "C"]


def test_accepts_outcome_records():
    entries = calculate_icers([Outcome("SoC", 1.0, 1.0), Outcome("New", 3.0, 2.0)])
    assert by_name(entries)["New"].ratio == pytest.approx(2.0)


def test_non_finite_input_raises():
    with pytest.raises(ComputationError) as info:
        calculate_icers([("SoC", 1.0, 1.0), ("Bad", math.nan, 2.0)])
    assert info.value.strategy == "Bad"


def test_frame_has_nan_for_undefined_values():
    frame = icers_to_frame(calculate_icers([("A", 0.0, 0.0), ("B", 100.0, 1.0), ("C", 150.0, 3.0)]))

    assert list(frame.columns) == ['Strategy', 'Cost', 'Effect', 'Inc_Cost', 'Inc_Effect', 'ICER',
                                   'Status', 'Reference']
    assert np.isnan(frame.loc[0, 'ICER'])
    assert np.isnan(frame.loc[1, 'ICER'])
    assert frame.loc[2, 'ICER'] == pytest.approx(50.0)
    assert frame.loc[1, 'Status'] == "Extendedly dominated"


def test_base_case_frontier_invariants():
    result = run_base_case()
    entries = result.icers

    assert len(entries) == 4
    # Standard of care carries no treatment cost and is the reference
    assert entries[0].strategy == "Standard of care"
    assert entries[0].status is ND

    on = [e for e in entries if e.status is ND]
    ratios = [e.ratio for e in on[1:]]
    assert ratios == sorted(ratios)
    assert all(r > 0 for r in ratios)

    # Nothing on the frontier is dominated by any other strategy
    for e in on:
        for other in entries:
            if other is e:
                continue
            assert not (other.cost <= e.cost and other.effect >= e.effect
                        and (other.cost < e.cost or other.effect > e.effect))
