from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..deps import get_db, raise_http
from ..schemas import ProcessingReceiptOut
from ..services.duplicates import DuplicateResolver
from ..services.errors import FabricError
from ..services.reconciler import ProcessingReconciler

router = APIRouter(prefix="/api/processing-receipts", tags=["Processing Receipts"])


@router.post("/sync")
def sync_processing_receipts(db: Session = Depends(get_db)):
    """Rebuild receipts from processing orders. 503 means nothing changed; retry."""
    try:
        result = ProcessingReconciler.reconcile(db)
    except FabricError as e:
        raise_http(e)
    return {"message": "Processing receipts synchronized successfully", **result.to_dict()}


@router.get("", response_model=List[ProcessingReceiptOut])
def list_processing_receipts(db: Session = Depends(get_db)):
    try:
        return ProcessingReconciler.list_receipts(db)
    except FabricError as e:
        raise_http(e)


@router.get("/remaps")
def list_remaps(
    processing_order_id: Optional[int] = Query(None, alias="processingOrderId"),
    limit: int = Query(200, le=1000),
    db: Session = Depends(get_db),
):
    """Old -> new fabric numbers assigned by duplicate repair, newest first"""
    try:
        rows = DuplicateResolver.list_remaps(db, processing_order_id=processing_order_id, limit=limit)
    except FabricError as e:
        raise_http(e)
    return [
        {
            "id": row.id,
            "processingOrderId": row.entity_id,
            "orderFormNumber": (row.new_values or {}).get("orderFormNumber"),
            "oldFabricNumber": (row.old_values or {}).get("fabricNumber"),
            "newFabricNumber": (row.new_values or {}).get("fabricNumber"),
            "createdAt": row.created_at.isoformat() if row.created_at else None,
        }
        for row in rows
    ]
