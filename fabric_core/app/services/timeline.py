"""
Production Timeline
===================
Per-warp daily production over a dense day axis, for the order detail view.

The axis covers every planned window and every day with actual activity,
so pre-start cuts and late completions are never clipped. Each warp has a
value for every axis day (0.0 when idle); the result is a rectangular
day x warp matrix.

All timestamps are bucketed by UTC calendar day. Naive datetimes are
taken to be UTC already.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Iterable

from ..models import WarpStatus


def to_day(value) -> Optional[date]:
    """UTC calendar day of a datetime or date; None passes through"""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"Cannot convert {type(value).__name__} to a calendar day")


def _status_value(status) -> str:
    if status is None:
        return ""
    return str(getattr(status, "value", status)).lower()


@dataclass
class CutRecord:
    quantity: float
    created_at: Optional[datetime]


@dataclass
class TimelineEntry:
    """A warp's plan plus the cuts woven from it"""
    warp_id: Optional[int]
    warp_number: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    completion_date: Optional[datetime] = None
    status: str = WarpStatus.ACTIVE.value
    target_quantity: float = 0.0
    cuts: List[CutRecord] = field(default_factory=list)

    @classmethod
    def from_models(cls, warp, fabric_cuts: Iterable) -> "TimelineEntry":
        return cls(
            warp_id=warp.id,
            warp_number=warp.warp_number,
            start_date=warp.start_date,
            end_date=warp.end_date,
            completion_date=warp.completion_date,
            status=_status_value(warp.status),
            target_quantity=warp.quantity or 0.0,
            cuts=[CutRecord(quantity=c.quantity or 0.0, created_at=c.created_at) for c in fabric_cuts],
        )


@dataclass
class WarpTimeline:
    warp_id: Optional[int]
    warp_number: str
    planned_start: Optional[date]
    planned_end: Optional[date]
    completion_day: Optional[date]
    status: str
    target_quantity: float
    daily: Dict[date, float]
    total_production: float
    total_cuts: int
    is_late: bool
    is_overdue: bool

    def in_plan(self, day: date) -> bool:
        if self.planned_start is None or self.planned_end is None:
            return False
        return self.planned_start <= day <= self.planned_end

    def to_dict(self) -> dict:
        return {
            "warpId": self.warp_id,
            "warpNumber": self.warp_number,
            "plannedStart": self.planned_start.isoformat() if self.planned_start else None,
            "plannedEnd": self.planned_end.isoformat() if self.planned_end else None,
            "completionDate": self.completion_day.isoformat() if self.completion_day else None,
            "status": self.status,
            "targetQuantity": self.target_quantity,
            "daily": {d.isoformat(): q for d, q in self.daily.items()},
            "plannedDays": [d.isoformat() for d in self.daily if self.in_plan(d)],
            "totalProduction": self.total_production,
            "totalCuts": self.total_cuts,
            "isLate": self.is_late,
            "isOverdue": self.is_overdue,
        }


@dataclass
class ProductionTimeline:
    date_axis: List[date]
    per_warp: List[WarpTimeline]
    daily_totals: Dict[date, float]

    def to_dict(self) -> dict:
        return {
            "dateAxis": [d.isoformat() for d in self.date_axis],
            "perWarpDaily": [w.to_dict() for w in self.per_warp],
            "dailyTotals": {d.isoformat(): q for d, q in self.daily_totals.items()},
        }


def date_range(first: date, last: date) -> List[date]:
    """Inclusive, one entry per day"""
    days = []
    current = first
    while current <= last:
        days.append(current)
        current += timedelta(days=1)
    return days


class ProductionTimelineAggregator:
    """Pure aggregation; callers load warps and cuts"""

    @staticmethod
    def axis_bounds(entries: List[TimelineEntry]):
        lows, highs = [], []
        for entry in entries:
            start = to_day(entry.start_date)
            end = to_day(entry.end_date)
            completed = to_day(entry.completion_date)
            if start:
                lows.append(start)
            if end:
                highs.append(end)
            if completed:
                highs.append(completed)
            for cut in entry.cuts:
                day = to_day(cut.created_at)
                if day:
                    lows.append(day)
                    highs.append(day)
        if not lows and not highs:
            return None, None
        # a warp with only an end date still anchors the axis
        first = min(lows) if lows else min(highs)
        last = max(highs) if highs else max(lows)
        # end or completion recorded before the start
        return first, max(last, first)

    @staticmethod
    def aggregate(entries: List[TimelineEntry], today: Optional[date] = None) -> ProductionTimeline:
        """
        Build the day x warp production matrix.

        - axis: [min(start dates, earliest cut), max(end dates, latest cut,
          completion dates)], dense and inclusive; [today] with no dated
          input; empty with no warps
        - daily_totals: per-day sum across warps, rounded to 2 decimals
        - is_late: completed on a day after the planned end day
        - is_overdue: still active and today is after the planned end day
        """
        today = today or datetime.now(timezone.utc).date()
        if not entries:
            return ProductionTimeline(date_axis=[], per_warp=[], daily_totals={})

        first, last = ProductionTimelineAggregator.axis_bounds(entries)
        if first is None:
            axis = [today]
        else:
            axis = date_range(first, last)

        per_warp = []
        for entry in entries:
            daily = {day: 0.0 for day in axis}
            total = 0.0
            for cut in entry.cuts:
                quantity = float(cut.quantity or 0)
                total += quantity
                day = to_day(cut.created_at)
                if day is not None:
                    daily[day] = daily.get(day, 0.0) + quantity

            planned_end = to_day(entry.end_date)
            completion_day = to_day(entry.completion_date)
            status = _status_value(entry.status)

            per_warp.append(WarpTimeline(
                warp_id=entry.warp_id,
                warp_number=entry.warp_number,
                planned_start=to_day(entry.start_date),
                planned_end=planned_end,
                completion_day=completion_day,
                status=status,
                target_quantity=float(entry.target_quantity or 0),
                daily=daily,
                total_production=round(total, 2),
                total_cuts=len(entry.cuts),
                is_late=bool(completion_day and planned_end and completion_day > planned_end),
                is_overdue=bool(
                    status == WarpStatus.ACTIVE.value
                    and completion_day is None
                    and planned_end
                    and today > planned_end
                ),
            ))

        daily_totals = {
            day: round(sum(w.daily[day] for w in per_warp), 2)
            for day in axis
        }
        return ProductionTimeline(date_axis=axis, per_warp=per_warp, daily_totals=daily_totals)
