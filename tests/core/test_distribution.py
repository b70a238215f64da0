"""
Tests for question allocation strategies.
"""
import itertools

import pytest

from assessment_engine.core.distribution import (
    AllocationSlot,
    PriorityFirstStrategy,
    WaterfallStrategy,
    WeightedStrategy,
    strategy_for_goal,
)
from assessment_engine.core.exceptions import AssemblyError
from assessment_engine.models.models import AssessmentGoal


def slots(*weights, caps=None, priorities=None):
    caps = caps or [None] * len(weights)
    priorities = priorities or [0.0] * len(weights)
    return [
        AllocationSlot(id=f"s{i}", weight=w, priority=p, max_count=c)
        for i, (w, c, p) in enumerate(zip(weights, caps, priorities))
    ]


class TestAllocationSlot:
    """Tests for slot capacity."""

    def test_uncapped_capacity_is_none(self):
        assert AllocationSlot(id="a").capacity(10) is None

    def test_capacity_never_negative(self):
        slot = AllocationSlot(id="a", max_count=3)
        assert slot.capacity(1) == 2
        assert slot.capacity(5) == 0


@pytest.mark.parametrize(
    "strategy", [WaterfallStrategy(), WeightedStrategy(), PriorityFirstStrategy()]
)
class TestCommonEdgeCases:
    """Edge cases every strategy shares."""

    def test_no_slots_returns_empty(self, strategy):
        assert strategy.allocate([], 10) == {}

    @pytest.mark.parametrize("budget", [0, -3])
    def test_non_positive_budget_returns_empty(self, strategy, budget):
        assert strategy.allocate(slots(1, 1), budget) == {}

    def test_total_never_exceeds_budget(self, strategy):
        result = strategy.allocate(slots(1, 2, 3), 7)
        assert sum(result.values()) == 7


class TestWaterfallStrategy:
    """Tests for round-robin allocation."""

    def test_even_split(self):
        assert WaterfallStrategy().allocate(slots(1, 1, 1), 6) == {
            "s0": 2,
            "s1": 2,
            "s2": 2,
        }

    def test_remainder_goes_to_earlier_slots(self):
        assert WaterfallStrategy().allocate(slots(1, 1, 1), 5) == {
            "s0": 2,
            "s1": 2,
            "s2": 1,
        }

    def test_weights_are_ignored(self):
        result = WaterfallStrategy().allocate(slots(10, 1), 4)
        assert result == {"s0": 2, "s1": 2}

    @pytest.mark.parametrize(
        "slot_count, budget", list(itertools.product(range(1, 6), range(0, 21)))
    )
    def test_balance_invariant(self, slot_count, budget):
        """Max minus min allocation is at most one for uncapped slots."""
        result = WaterfallStrategy().allocate(slots(*[1] * slot_count), budget)
        if budget <= 0:
            assert result == {}
            return
        assert max(result.values()) - min(result.values()) <= 1
        assert sum(result.values()) == budget

    def test_capped_slots_skip_rounds(self):
        result = WaterfallStrategy().allocate(slots(1, 1, 1, caps=[1, None, None]), 7)
        assert result == {"s0": 1, "s1": 3, "s2": 3}

    def test_stops_when_all_slots_capped(self):
        result = WaterfallStrategy().allocate(slots(1, 1, caps=[2, 1]), 10)
        assert result == {"s0": 2, "s1": 1}


class TestWeightedStrategy:
    """Tests for proportional allocation."""

    def test_exact_proportions(self):
        result = WeightedStrategy().allocate(slots(0.5, 0.3, 0.2), 10)
        assert result == {"s0": 5, "s1": 3, "s2": 2}

    def test_largest_fraction_gets_remainder(self):
        # Exact shares 3.5, 2.1, 1.4
        result = WeightedStrategy().allocate(slots(0.5, 0.3, 0.2), 7)
        assert result == {"s0": 4, "s1": 2, "s2": 1}

    def test_equal_fractions_tie_break_by_input_order(self):
        result = WeightedStrategy().allocate(slots(1, 1, 1), 7)
        assert result == {"s0": 3, "s1": 2, "s2": 2}

    def test_over_cap_share_is_redistributed(self):
        result = WeightedStrategy().allocate(slots(3, 1, caps=[4, None]), 8)
        assert result == {"s0": 4, "s1": 4}

    @pytest.mark.parametrize(
        "weights, caps, budget",
        [
            ((1, 1), (2, 3), 10),
            ((0.7, 0.2, 0.1), (None, 1, 1), 9),
            ((5, 1, 1, 1), (2, None, None, None), 11),
            ((1, 2, 3), (1, 1, 1), 2),
        ],
    )
    def test_total_equals_min_of_budget_and_caps(self, weights, caps, budget):
        result = WeightedStrategy().allocate(slots(*weights, caps=list(caps)), budget)
        capacity = (
            float("inf") if any(c is None for c in caps) else sum(c for c in caps)
        )
        assert sum(result.values()) == min(budget, capacity)
        for slot_id, cap in zip(sorted(result), caps):
            if cap is not None:
                assert result[slot_id] <= cap

    def test_zero_weight_slot_gets_nothing_beside_weighted_slots(self):
        result = WeightedStrategy().allocate(slots(1, 0), 3)
        assert result == {"s0": 3, "s1": 0}

    def test_all_zero_weights_fall_back_to_round_robin(self):
        """Known quirk: zero-weight pools still receive units."""
        result = WeightedStrategy().allocate(slots(0, 0), 3)
        assert result == {"s0": 2, "s1": 1}

    def test_largest_weight_gets_largest_share(self):
        result = WeightedStrategy().allocate(slots(0.2, 0.5, 0.3), 10)
        assert max(result, key=result.get) == "s1"


class TestPriorityFirstStrategy:
    """Tests for greedy priority allocation."""

    def test_fills_highest_priority_first(self):
        result = PriorityFirstStrategy().allocate(
            slots(1, 1, 1, caps=[3, 3, 3], priorities=[0.1, 0.9, 0.5]), 5
        )
        assert result == {"s0": 0, "s1": 3, "s2": 2}

    def test_uncapped_slot_takes_everything(self):
        result = PriorityFirstStrategy().allocate(
            slots(1, 1, priorities=[0.2, 0.8]), 6
        )
        assert result == {"s0": 0, "s1": 6}

    def test_equal_priorities_keep_input_order(self):
        result = PriorityFirstStrategy().allocate(
            slots(1, 1, caps=[2, 2], priorities=[0.5, 0.5]), 3
        )
        assert result == {"s0": 2, "s1": 1}

    def test_higher_priority_never_receives_less(self):
        priorities = [0.3, 0.9, 0.6, 0.1]
        result = PriorityFirstStrategy().allocate(
            slots(1, 1, 1, 1, caps=[2, 2, 2, 2], priorities=priorities), 5
        )
        ordered = sorted(zip(priorities, sorted(result)), reverse=True)
        counts = [result[slot_id] for _, slot_id in ordered]
        assert counts == sorted(counts, reverse=True)


class TestStrategyForGoal:
    """Tests for the goal -> strategy table."""

    @pytest.mark.parametrize(
        "goal, expected",
        [
            (AssessmentGoal.OVERVIEW, WaterfallStrategy),
            (AssessmentGoal.JOB_FIT, WeightedStrategy),
            (AssessmentGoal.TEAM_FIT, PriorityFirstStrategy),
            ("JOB_FIT", WeightedStrategy),
        ],
    )
    def test_goal_mapping(self, goal, expected):
        assert isinstance(strategy_for_goal(goal), expected)

    def test_unknown_goal_raises(self):
        with pytest.raises(AssemblyError, match="No distribution strategy"):
            strategy_for_goal("CAREER_PATH")
