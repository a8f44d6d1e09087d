"""Read-only aggregate views for the order detail screen."""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..models import Order, Warp, FabricCut, Inspection
from .errors import NotFoundError, storage_errors
from .inspection_summary import InspectionAggregator, InspectionSummary
from .timeline import ProductionTimelineAggregator, ProductionTimeline, TimelineEntry

logger = logging.getLogger(__name__)


class OrderViewService:

    @staticmethod
    def _load(db: Session, order_id: int):
        order = db.get(Order, order_id)
        if not order:
            raise NotFoundError("Order not found", {"orderId": order_id})
        warps = db.query(Warp).filter(Warp.order_id == order.id).order_by(Warp.id.asc()).all()
        warp_ids = [w.id for w in warps]
        cuts = []
        if warp_ids:
            cuts = db.query(FabricCut).filter(FabricCut.warp_id.in_(warp_ids)).order_by(
                FabricCut.cut_number.asc(), FabricCut.id.asc()
            ).all()
        return order, warps, cuts

    @staticmethod
    def production_timeline(db: Session, order_id: int, today: Optional[date] = None) -> ProductionTimeline:
        with storage_errors(action=f"production timeline for order {order_id}"):
            order, warps, cuts = OrderViewService._load(db, order_id)

        by_warp = {w.id: [] for w in warps}
        for cut in cuts:
            by_warp[cut.warp_id].append(cut)
        entries = [TimelineEntry.from_models(w, by_warp[w.id]) for w in warps]
        return ProductionTimelineAggregator.aggregate(entries, today=today)

    @staticmethod
    def inspection_summary(db: Session, order_id: int) -> InspectionSummary:
        with storage_errors(action=f"inspection summary for order {order_id}"):
            order, warps, cuts = OrderViewService._load(db, order_id)
            warp_ids = [w.id for w in warps]
            cut_ids = [c.id for c in cuts]
            inspections = []
            if warp_ids or cut_ids:
                inspections = db.query(Inspection).filter(
                    or_(Inspection.fabric_cut_id.in_(cut_ids), Inspection.warp_id.in_(warp_ids))
                ).order_by(Inspection.id.asc()).all()
        return InspectionAggregator.aggregate(inspections, warps, cuts)
