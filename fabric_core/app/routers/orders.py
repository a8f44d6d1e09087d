from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..deps import get_db, raise_http
from ..services.errors import FabricError
from ..services.order_views import OrderViewService

router = APIRouter(prefix="/api/orders", tags=["Orders"])


@router.get("/{order_id}/production-timeline")
def get_production_timeline(order_id: int, today: Optional[date] = None, db: Session = Depends(get_db)):
    """
    Day x warp production matrix for an order.
    `today` only affects the overdue flag; defaults to the current UTC day.
    """
    try:
        return OrderViewService.production_timeline(db, order_id, today=today).to_dict()
    except FabricError as e:
        raise_http(e)


@router.get("/{order_id}/inspection-summary")
def get_inspection_summary(order_id: int, db: Session = Depends(get_db)):
    try:
        return OrderViewService.inspection_summary(db, order_id).to_dict()
    except FabricError as e:
        raise_http(e)
