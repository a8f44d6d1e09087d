"""
Fabric Movements API Router
===========================
Moving inspected or processed fabric cuts between locations:
- search a cut and check it may move
- create a movement (every cut re-checked)
- receive a movement at its destination
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..deps import get_db, raise_http
from ..models import MovementStatus
from ..schemas import MovementCreate, MovementReceive, MovementOut
from ..services.errors import FabricError
from ..services.movement_service import FabricMovementService
from ..services.registry import FabricCutRegistry

router = APIRouter(prefix="/api/fabric-movements", tags=["Fabric Movements"])


@router.get("", response_model=List[MovementOut])
def list_movements(status: Optional[MovementStatus] = None, db: Session = Depends(get_db)):
    try:
        return FabricMovementService.list_movements(db, status=status)
    except FabricError as e:
        raise_http(e)


@router.get("/search/{identifier:path}")
def search_fabric_cut(identifier: str, db: Session = Depends(get_db)):
    """
    Look up a scanned or typed fabric number.

    404 when the cut is in neither namespace. A found cut is returned with
    `eligible` and a reason, so the operator sees why it cannot move.
    """
    try:
        result = FabricCutRegistry.lookup(db, identifier)
    except FabricError as e:
        raise_http(e)

    if not result.found:
        raise HTTPException(status_code=404, detail={
            "message": result.eligibility.message,
            "exists": False,
            "reason": result.eligibility.reason.value,
        })

    return {
        "exists": True,
        "isEligible": result.eligible,
        **result.to_dict(),
    }


@router.post("", status_code=201, response_model=MovementOut)
def create_movement(data: MovementCreate, db: Session = Depends(get_db)):
    try:
        return FabricMovementService.create_movement(
            db,
            fabric_cuts=data.identifiers(),
            from_location=data.from_location,
            to_location=data.to_location,
            moved_by=data.moved_by,
            notes=data.notes,
        )
    except FabricError as e:
        raise_http(e)


@router.put("/{movement_id}/receive", response_model=MovementOut)
def receive_movement(movement_id: int, data: MovementReceive, db: Session = Depends(get_db)):
    try:
        return FabricMovementService.receive_movement(
            db, movement_id, received_by=data.received_by, received_location=data.received_location
        )
    except FabricError as e:
        raise_http(e)
