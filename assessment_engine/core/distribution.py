"""
Question allocation strategies.

A distribution strategy splits a question budget across weighted slots. The
assembler applies the same strategy twice: first across a blueprint's
competencies, then across the indicators inside each competency.

Strategies:
    Waterfall      - round-robin, one unit per slot per round (OVERVIEW)
    Weighted       - floor of the proportional share, remainder by largest
                     fractional part (JOB_FIT)
    PriorityFirst  - fill the highest-priority slot to its cap before moving
                     on (TEAM_FIT)

All strategies are pure: no I/O, no randomness. Ties are broken by the input
order of the slots, so the same input always yields the same allocation.

Usage:
    from assessment_engine.core.distribution import AllocationSlot, strategy_for_goal

    slots = [AllocationSlot("comm", 0.5), AllocationSlot("lead", 0.3)]
    counts = strategy_for_goal(AssessmentGoal.JOB_FIT).allocate(slots, 10)
"""
import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Sequence

from assessment_engine.core.exceptions import AssemblyError
from assessment_engine.models.models import AssessmentGoal

logger = logging.getLogger(__name__)

# Absorbs float error such as 10 * 0.7 / 1.0 == 6.999999999999999
_FLOOR_TOLERANCE = 1e-9


@dataclass(frozen=True)
class AllocationSlot:
    """A weighted recipient of questions (a competency or an indicator)."""

    id: str
    weight: float = 1.0
    priority: float = 0.0
    max_count: Optional[int] = None

    def capacity(self, allocated: int) -> Optional[int]:
        """Units this slot can still take, or None when uncapped."""
        if self.max_count is None:
            return None
        return max(0, self.max_count - allocated)


class DistributionStrategy(Protocol):
    """Protocol for allocation strategies."""

    name: str

    def allocate(
        self, slots: Sequence[AllocationSlot], budget: int
    ) -> Dict[str, int]:
        """Return slot id -> count. Empty when there are no slots or no budget."""
        ...


def _empty_allocation(slots: Sequence[AllocationSlot], budget: int) -> bool:
    return not slots or budget <= 0


class WaterfallStrategy:
    """
    Round-robin allocation.

    Each round hands one unit to every slot that still has capacity, in
    input order, until the budget runs out or every slot is capped. Among
    uncapped slots the allocation differs by at most one.
    """

    name = "WATERFALL"

    def allocate(
        self, slots: Sequence[AllocationSlot], budget: int
    ) -> Dict[str, int]:
        if _empty_allocation(slots, budget):
            return {}

        counts = {slot.id: 0 for slot in slots}
        remaining = budget
        while remaining > 0:
            progressed = False
            for slot in slots:
                if remaining == 0:
                    break
                if slot.capacity(counts[slot.id]) == 0:
                    continue
                counts[slot.id] += 1
                remaining -= 1
                progressed = True
            if not progressed:
                break

        if remaining:
            logger.debug(f"Waterfall left {remaining} units unallocated (all slots capped)")
        return counts


class WeightedStrategy:
    """
    Proportional allocation with largest-remainder rounding.

    Each slot gets ``floor(budget * weight / total_weight)``; the leftover
    units go one by one to the slots with the largest fractional part, ties
    by input order. A slot whose share exceeds its cap is fixed at the cap
    and the excess is re-apportioned over the remaining slots, so the total
    allocated equals ``min(budget, sum of caps)``.

    Known quirk: when every remaining slot has weight 0 the units are handed
    out round-robin in input order, so a zero-weight slot can receive
    questions.
    """

    name = "WEIGHTED"

    def allocate(
        self, slots: Sequence[AllocationSlot], budget: int
    ) -> Dict[str, int]:
        if _empty_allocation(slots, budget):
            return {}

        counts = {slot.id: 0 for slot in slots}
        active: List[AllocationSlot] = list(slots)
        remaining = budget

        while remaining > 0 and active:
            shares = self._apportion(active, remaining)
            over_cap = [
                slot
                for slot in active
                if slot.max_count is not None and shares[slot.id] > slot.max_count
            ]
            if not over_cap:
                for slot in active:
                    counts[slot.id] = shares[slot.id]
                remaining = 0
                break

            for slot in over_cap:
                counts[slot.id] = slot.max_count
                remaining -= slot.max_count
            capped_ids = {slot.id for slot in over_cap}
            active = [slot for slot in active if slot.id not in capped_ids]

        return counts

    @staticmethod
    def _apportion(slots: Sequence[AllocationSlot], units: int) -> Dict[str, int]:
        total_weight = sum(slot.weight for slot in slots)
        if total_weight <= 0:
            base, extra = divmod(units, len(slots))
            return {
                slot.id: base + (1 if index < extra else 0)
                for index, slot in enumerate(slots)
            }

        shares: Dict[str, int] = {}
        fractions = []
        for index, slot in enumerate(slots):
            exact = units * slot.weight / total_weight
            whole = math.floor(exact + _FLOOR_TOLERANCE)
            shares[slot.id] = whole
            fractions.append((max(0.0, exact - whole), index, slot.id))

        leftover = units - sum(shares.values())
        # Largest fractional part first; input order breaks ties
        fractions.sort(key=lambda item: (-item[0], item[1]))
        for _, _, slot_id in fractions[:leftover]:
            shares[slot_id] += 1
        return shares


class PriorityFirstStrategy:
    """
    Greedy allocation by descending priority.

    Slots are visited from highest to lowest priority (stable for equal
    priorities) and each is filled to its cap before the next one gets
    anything. An uncapped slot absorbs the whole remaining budget.
    """

    name = "PRIORITY_FIRST"

    def allocate(
        self, slots: Sequence[AllocationSlot], budget: int
    ) -> Dict[str, int]:
        if _empty_allocation(slots, budget):
            return {}

        counts = {slot.id: 0 for slot in slots}
        remaining = budget
        for slot in sorted(slots, key=lambda s: -s.priority):
            if remaining == 0:
                break
            take = remaining if slot.max_count is None else min(slot.max_count, remaining)
            counts[slot.id] = take
            remaining -= take
        return counts


# Static goal -> strategy table
_STRATEGIES: Dict[AssessmentGoal, DistributionStrategy] = {
    AssessmentGoal.OVERVIEW: WaterfallStrategy(),
    AssessmentGoal.JOB_FIT: WeightedStrategy(),
    AssessmentGoal.TEAM_FIT: PriorityFirstStrategy(),
}


def strategy_for_goal(goal: AssessmentGoal) -> DistributionStrategy:
    """
    Resolve the distribution strategy for an assessment goal.

    Raises:
        AssemblyError: if the goal has no registered strategy.
    """
    try:
        return _STRATEGIES[AssessmentGoal(goal)]
    except (KeyError, ValueError) as e:
        raise AssemblyError(f"No distribution strategy for goal {goal!r}") from e
