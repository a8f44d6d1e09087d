"""Four-point inspection totals per warp and per order."""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from ..models import InspectionType


@dataclass
class WarpInspectionTotals:
    warp_id: int
    warp_number: str
    inspected: float = 0.0
    mistakes: float = 0.0
    inspection_count: int = 0
    fabric_numbers: List[str] = field(default_factory=list)

    @property
    def ok(self) -> float:
        # negative when mistakes exceed inspected; shown as-is
        return self.inspected - self.mistakes

    def to_dict(self) -> dict:
        return {
            "warpId": self.warp_id,
            "warpNumber": self.warp_number,
            "inspected": round(self.inspected, 2),
            "mistakes": round(self.mistakes, 2),
            "ok": round(self.ok, 2),
            "inspectionCount": self.inspection_count,
            "fabricNumbers": self.fabric_numbers,
        }


@dataclass
class InspectionSummary:
    per_warp: List[WarpInspectionTotals]

    @property
    def order_totals(self) -> dict:
        inspected = sum(w.inspected for w in self.per_warp)
        mistakes = sum(w.mistakes for w in self.per_warp)
        return {
            "inspected": round(inspected, 2),
            "mistakes": round(mistakes, 2),
            "ok": round(inspected - mistakes, 2),
            "inspectionCount": sum(w.inspection_count for w in self.per_warp),
            "warpCount": len(self.per_warp),
        }

    def to_dict(self) -> dict:
        return {
            "perWarp": [w.to_dict() for w in self.per_warp],
            "orderTotals": self.order_totals,
        }


def _is_four_point(inspection_type) -> bool:
    value = getattr(inspection_type, "value", inspection_type)
    try:
        return InspectionType.parse(str(value)) == InspectionType.FOUR_POINT
    except ValueError:
        return False


class InspectionAggregator:

    @staticmethod
    def aggregate(inspections: Iterable, warps: Iterable, fabric_cuts: Iterable) -> InspectionSummary:
        """
        Sum four-point inspected and mistake quantities per warp.

        Every warp appears, including those with no inspections. An
        inspection is attributed through its fabric cut's warp, falling back
        to its own warp_id; inspections outside the given warps are ignored.
        """
        totals: Dict[int, WarpInspectionTotals] = {}
        for warp in warps:
            totals[warp.id] = WarpInspectionTotals(warp_id=warp.id, warp_number=warp.warp_number)

        cut_warp: Dict[int, Optional[int]] = {c.id: c.warp_id for c in fabric_cuts}

        for inspection in inspections:
            if not _is_four_point(inspection.inspection_type):
                continue
            warp_id = cut_warp.get(inspection.fabric_cut_id) or inspection.warp_id
            bucket = totals.get(warp_id)
            if bucket is None:
                continue
            bucket.inspected += float(inspection.inspected_quantity or 0)
            bucket.mistakes += float(inspection.mistake_quantity or 0)
            bucket.inspection_count += 1
            if inspection.fabric_number:
                bucket.fabric_numbers.append(inspection.fabric_number)

        return InspectionSummary(per_warp=list(totals.values()))
