"""
Result types for reliability analysis.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from assessment_engine.core.datetime_utils import utc_now
from assessment_engine.models.models import ReliabilityStatus

# Improvements smaller than this are treated as ties
_IMPROVEMENT_TOLERANCE = 1e-12


@dataclass(frozen=True)
class CompetencyReliability:
    """
    Reliability snapshot for one competency.

    Fields:
        competency_id: Competency analysed.
        cronbach_alpha: Alpha over all items, or None below the sample floor
            or when the total score has no variance.
        sample_size: Sessions that passed the completeness filter.
        item_count: Distinct items (questions) seen for the competency.
        status: RELIABLE, ACCEPTABLE, UNRELIABLE or INSUFFICIENT_DATA.
        alpha_if_deleted: Item id -> alpha recomputed without that item.
            Empty when alpha is None or fewer than three items exist.
        last_calculated_at: When the snapshot was computed.
    """

    competency_id: str
    cronbach_alpha: Optional[float]
    sample_size: int
    item_count: int
    status: ReliabilityStatus
    alpha_if_deleted: Dict[str, Optional[float]] = field(default_factory=dict)
    last_calculated_at: datetime = field(default_factory=utc_now)

    @property
    def most_problematic_item(self) -> Optional[str]:
        """
        Item whose deletion raises alpha the most.

        Ties go to the lowest item id; None when no deletion improves alpha.
        """
        if self.cronbach_alpha is None:
            return None
        best_item: Optional[str] = None
        best_gain = 0.0
        for item_id in sorted(self.alpha_if_deleted):
            alpha_without = self.alpha_if_deleted[item_id]
            if alpha_without is None:
                continue
            gain = alpha_without - self.cronbach_alpha
            if gain > best_gain + _IMPROVEMENT_TOLERANCE:
                best_item, best_gain = item_id, gain
        return best_item

    @property
    def has_problematic_items(self) -> bool:
        return self.most_problematic_item is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "competency_id": self.competency_id,
            "cronbach_alpha": self.cronbach_alpha,
            "sample_size": self.sample_size,
            "item_count": self.item_count,
            "status": self.status.value,
            "alpha_if_deleted": dict(self.alpha_if_deleted),
            "most_problematic_item": self.most_problematic_item,
            "last_calculated_at": self.last_calculated_at.isoformat(),
        }
