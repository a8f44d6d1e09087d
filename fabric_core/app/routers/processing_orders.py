"""
Processing Orders API Router
============================
Batches sent to processing centers and the cuts received back.
Updates to received cuts renumber duplicates and resync receipts before
the response is sent.
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..deps import get_db, raise_http
from ..schemas import ProcessingOrderCreate, ProcessingOrderUpdate, ProcessingOrderOut
from ..services.errors import FabricError
from ..services.processing_service import ProcessingOrderService

router = APIRouter(prefix="/api/processing-orders", tags=["Processing Orders"])


@router.post("", status_code=201, response_model=ProcessingOrderOut)
def create_processing_order(data: ProcessingOrderCreate, db: Session = Depends(get_db)):
    try:
        return ProcessingOrderService.create_order(
            db,
            order_form_number=data.order_form_number,
            processing_center=data.processing_center,
            fabric_cuts=[c.model_dump(by_alias=True, exclude_none=True, mode="json") for c in data.fabric_cuts],
            processes=data.processes,
            order_details=data.order_details,
            total_fabric_cuts=data.total_fabric_cuts,
            total_quantity=data.total_quantity,
            vehicle_number=data.vehicle_number,
            delivery_date=data.delivery_date,
            delivered_by=data.delivered_by,
            status=data.status,
            created_at=data.created_at,
        )
    except FabricError as e:
        raise_http(e)


@router.get("", response_model=List[ProcessingOrderOut])
def list_processing_orders(db: Session = Depends(get_db)):
    try:
        return ProcessingOrderService.list_orders(db)
    except FabricError as e:
        raise_http(e)


@router.get("/check-fabric-cut/{identifier:path}")
def check_fabric_cut(identifier: str, db: Session = Depends(get_db)):
    """Whether a cut already sits on a processing order's sent list"""
    try:
        return ProcessingOrderService.check_fabric_cut(db, identifier)
    except FabricError as e:
        raise_http(e)


@router.post("/cleanup-duplicates")
def cleanup_duplicates(db: Session = Depends(get_db)):
    """
    Repair sweep: renumber duplicate received identifiers across all orders
    (oldest order keeps its numbers), migrate legacy per-delivery data and
    resync receipts. Safe to run repeatedly.
    """
    try:
        result = ProcessingOrderService.cleanup_duplicates(db)
    except FabricError as e:
        raise_http(e)
    return {"message": "Duplicate fabric numbers cleanup completed", **result.to_dict()}


@router.get("/{order_id}", response_model=ProcessingOrderOut)
def get_processing_order(order_id: int, db: Session = Depends(get_db)):
    try:
        return ProcessingOrderService.get_order(db, order_id)
    except FabricError as e:
        raise_http(e)


@router.put("/{order_id}")
def update_processing_order(order_id: int, data: ProcessingOrderUpdate, db: Session = Depends(get_db)):
    try:
        outcome = ProcessingOrderService.update_order(db, order_id, data.to_patch())
    except FabricError as e:
        raise_http(e)

    response = {
        "message": "Processing order updated successfully",
        "id": order_id,
        "order": ProcessingOrderOut.model_validate(outcome.order).model_dump(by_alias=True, mode="json"),
        "reassignments": [r.to_dict() for r in outcome.remaps],
    }
    if outcome.reconcile is not None:
        response["sync"] = outcome.reconcile.to_dict()
    return response


@router.delete("/{order_id}")
def delete_processing_order(order_id: int, db: Session = Depends(get_db)):
    try:
        result = ProcessingOrderService.delete_order(db, order_id)
    except FabricError as e:
        raise_http(e)
    return {"message": "Processing order deleted successfully", "id": order_id, "sync": result.to_dict()}
