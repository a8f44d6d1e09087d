from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..deps import get_db, raise_http
from ..schemas import InspectionCreate, InspectionUpdate, InspectionOut
from ..services.errors import FabricError
from ..services.fabric_cut_service import FabricCutService

router = APIRouter(prefix="/api/inspections", tags=["Inspections"])


@router.post("", status_code=201, response_model=InspectionOut)
def create_inspection(data: InspectionCreate, db: Session = Depends(get_db)):
    """Record an inspection and mark the stage complete on its fabric cut."""
    try:
        return FabricCutService.record_inspection(
            db,
            fabric_cut_id=data.fabric_cut_id,
            inspection_type=data.inspection_type,
            inspected_quantity=data.inspected_quantity,
            mistake_quantity=data.mistake_quantity,
            inspection_date=data.inspection_date,
            inspector=data.inspector,
            remarks=data.remarks,
        )
    except FabricError as e:
        raise_http(e)


@router.put("/{inspection_id}", response_model=InspectionOut)
def update_inspection(inspection_id: int, data: InspectionUpdate, db: Session = Depends(get_db)):
    try:
        return FabricCutService.update_inspection(db, inspection_id, data.model_dump(exclude_unset=True))
    except FabricError as e:
        raise_http(e)
