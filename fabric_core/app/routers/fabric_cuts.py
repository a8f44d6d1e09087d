"""
Fabric Cuts API Router
======================
Scan-time creation, registry lookup and inspection arrival.
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..deps import get_db, raise_http
from ..schemas import FabricCutCreate, FabricCutOut, CreatedFabricCutOut
from ..services.errors import FabricError
from ..services.fabric_cut_service import FabricCutService
from ..services.registry import FabricCutRegistry

router = APIRouter(prefix="/api/fabric-cuts", tags=["Fabric Cuts"])


@router.post("", status_code=201, response_model=List[CreatedFabricCutOut])
def create_fabric_cuts(data: FabricCutCreate, db: Session = Depends(get_db)):
    """
    Create fabric cuts for a warp, one per quantity.
    Each cut comes back with its QR sticker payload and label details.
    """
    try:
        created = FabricCutService.create_cuts(db, data.warp_id, [c.quantity for c in data.fabric_cuts])
    except FabricError as e:
        raise_http(e)

    return [
        CreatedFabricCutOut(
            **FabricCutOut.model_validate(item.fabric_cut).model_dump(),
            qr_data=item.qr_data,
            label=item.label,
        )
        for item in created
    ]


@router.get("/lookup/{identifier:path}")
def lookup_fabric_cut(identifier: str, db: Session = Depends(get_db)):
    """Registry lookup; always 200, `found` and `eligibility` say the rest"""
    try:
        return FabricCutRegistry.lookup(db, identifier).to_dict()
    except FabricError as e:
        raise_http(e)


@router.patch("/{fabric_cut_id}/inspection-arrival", response_model=FabricCutOut)
def mark_inspection_arrival(fabric_cut_id: int, db: Session = Depends(get_db)):
    try:
        return FabricCutService.mark_inspection_arrival(db, fabric_cut_id)
    except FabricError as e:
        raise_http(e)
