"""
Fabric Cut Service
==================
Scan-time creation of fabric cuts and the inspection records against them.

Identifiers are allocated, checked against both namespaces, then written
(allocate-then-check-then-write). Two terminals scanning the same warp at
the same instant can still collide; DuplicateResolver and the registry's
invariant check catch that afterwards.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models import FabricCut, Warp, Order, Loom, Inspection, InspectionType
from .errors import ValidationError, NotFoundError, storage_errors
from .identifiers import format_identifier, qr_payload
from .registry import FabricCutRegistry

logger = logging.getLogger(__name__)

# inspection type -> (completed flag, date column) on FabricCut
INSPECTION_FLAGS = {
    InspectionType.FOUR_POINT: ("four_point_completed", "four_point_date"),
    InspectionType.UNWASHED: ("unwashed_completed", "unwashed_date"),
    InspectionType.WASHED: ("washed_completed", "washed_date"),
}


@dataclass
class CreatedCut:
    fabric_cut: FabricCut
    qr_data: str
    label: dict


def parse_inspection_type(value) -> InspectionType:
    try:
        return InspectionType.parse(str(getattr(value, "value", value)))
    except ValueError:
        raise ValidationError(
            f"Unknown inspection type {value!r}",
            {"allowed": [t.value for t in InspectionType]},
        )


def _check_quantity(name: str, value, allow_zero: bool = True) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number", {"field": name})
    if number < 0 or (number == 0 and not allow_zero):
        raise ValidationError(f"{name} must be {'zero or ' if allow_zero else ''}positive", {"field": name})
    return number


class FabricCutService:
    """Service class for fabric cut and inspection operations"""

    @staticmethod
    def create_cuts(db: Session, warp_id: int, quantities: List[float]) -> List[CreatedCut]:
        """
        Create one fabric cut per quantity for a warp.

        Numbering continues from the warp's highest cut number and skips any
        identifier already claimed in either namespace. `total_cuts` is the
        size of this batch.
        """
        if not quantities:
            raise ValidationError("At least one fabric cut quantity is required")
        checked = [_check_quantity("quantity", q, allow_zero=False) for q in quantities]

        with storage_errors(db, action="fabric cut creation"):
            warp = db.get(Warp, warp_id)
            if not warp:
                raise NotFoundError("Warp not found", {"warpId": warp_id})
            if not (warp.warp_number or "").strip():
                raise ValidationError("Warp has no warp number to derive fabric numbers from", {"warpId": warp_id})

            order = db.get(Order, warp.order_id) if warp.order_id else None
            loom = db.get(Loom, warp.loom_id) if warp.loom_id else None
            prefix = warp.warp_number.strip()

            highest = db.query(func.max(FabricCut.cut_number)).filter(
                FabricCut.warp_id == warp.id
            ).scalar() or 0
            taken = FabricCutRegistry.claimed_identifiers(db, prefix=prefix)

            created = []
            sequence = highest + 1
            for quantity in checked:
                while format_identifier(prefix, sequence) in taken:
                    logger.warning("Fabric number %s already claimed; skipping", format_identifier(prefix, sequence))
                    sequence += 1
                fabric_number = format_identifier(prefix, sequence)
                taken.add(fabric_number)

                cut = FabricCut(
                    fabric_number=fabric_number,
                    warp_id=warp.id,
                    quantity=quantity,
                    cut_number=sequence,
                    total_cuts=len(checked),
                    loom_id=warp.loom_id,
                    loom_name=loom.loom_name if loom else None,
                    company_name=loom.company_name if loom else None,
                )
                db.add(cut)
                created.append(CreatedCut(
                    fabric_cut=cut,
                    qr_data=qr_payload(prefix, sequence),
                    label={
                        "fabricNumber": fabric_number,
                        "warpNumber": prefix,
                        "orderNumber": order.order_number if order else "N/A",
                        "designName": (order.design_name if order else None) or "N/A",
                        "designNumber": (order.design_number if order else None) or "N/A",
                        "quantity": quantity,
                        "loomName": loom.loom_name if loom else "N/A",
                        "companyName": (loom.company_name if loom else None) or "N/A",
                        "cutNumber": sequence,
                        "totalCuts": len(checked),
                    },
                ))
                sequence += 1

            db.commit()
            for item in created:
                db.refresh(item.fabric_cut)

        logger.info(
            "Created %d fabric cut(s) for warp %s: %s..%s",
            len(created), prefix,
            created[0].fabric_cut.fabric_number, created[-1].fabric_cut.fabric_number,
        )
        return created

    @staticmethod
    def get_cut(db: Session, fabric_cut_id: int) -> FabricCut:
        with storage_errors(action="fabric cut fetch"):
            cut = db.get(FabricCut, fabric_cut_id)
        if not cut:
            raise NotFoundError("Fabric cut not found", {"fabricCutId": fabric_cut_id})
        return cut

    @staticmethod
    def mark_inspection_arrival(db: Session, fabric_cut_id: int) -> FabricCut:
        """Stamp arrival at the inspection table; a second stamp is rejected"""
        cut = FabricCutService.get_cut(db, fabric_cut_id)
        if cut.inspection_arrival:
            raise ValidationError(
                "Fabric cut already marked as arrived at inspection",
                {"arrivalTime": cut.inspection_arrival.isoformat()},
            )
        with storage_errors(db, action="inspection arrival"):
            cut.inspection_arrival = datetime.utcnow()
            db.commit()
            db.refresh(cut)
        return cut

    @staticmethod
    def record_inspection(
        db: Session,
        fabric_cut_id: int,
        inspection_type,
        inspected_quantity: float,
        mistake_quantity: float = 0,
        inspection_date: Optional[datetime] = None,
        inspector: Optional[str] = None,
        remarks: Optional[str] = None,
    ) -> Inspection:
        """
        Store an inspection and mark the stage complete on the cut.

        fabric_number and warp_id are copied from the cut so the record
        stays attributable if the cut is later renumbered.
        """
        kind = parse_inspection_type(inspection_type)
        inspected = _check_quantity("inspectedQuantity", inspected_quantity)
        mistakes = _check_quantity("mistakeQuantity", mistake_quantity or 0)
        cut = FabricCutService.get_cut(db, fabric_cut_id)
        when = inspection_date or datetime.utcnow()

        with storage_errors(db, action="inspection recording"):
            inspection = Inspection(
                fabric_cut_id=cut.id,
                fabric_number=cut.fabric_number,
                warp_id=cut.warp_id,
                inspection_type=kind,
                inspected_quantity=inspected,
                mistake_quantity=mistakes,
                inspection_date=when,
                inspector=inspector,
                remarks=remarks,
            )
            db.add(inspection)

            completed_flag, date_column = INSPECTION_FLAGS[kind]
            setattr(cut, completed_flag, True)
            setattr(cut, date_column, when)
            cut.updated_at = datetime.utcnow()

            db.commit()
            db.refresh(inspection)

        logger.info("%s inspection recorded for %s", kind.value, cut.fabric_number)
        return inspection

    @staticmethod
    def update_inspection(db: Session, inspection_id: int, patch: dict) -> Inspection:
        """Corrective edit of quantities, date, inspector or remarks"""
        with storage_errors(action="inspection fetch"):
            inspection = db.get(Inspection, inspection_id)
        if not inspection:
            raise NotFoundError("Inspection not found", {"inspectionId": inspection_id})

        values = {}
        if patch.get("inspected_quantity") is not None:
            values["inspected_quantity"] = _check_quantity("inspectedQuantity", patch["inspected_quantity"])
        if patch.get("mistake_quantity") is not None:
            values["mistake_quantity"] = _check_quantity("mistakeQuantity", patch["mistake_quantity"])
        for name in ("inspection_date", "inspector", "remarks"):
            if name in patch:
                values[name] = patch[name]

        with storage_errors(db, action="inspection update"):
            for name, value in values.items():
                setattr(inspection, name, value)

            if values.get("inspection_date"):
                cut = db.get(FabricCut, inspection.fabric_cut_id)
                if cut is not None:
                    _, date_column = INSPECTION_FLAGS[parse_inspection_type(inspection.inspection_type)]
                    setattr(cut, date_column, values["inspection_date"])

            inspection.updated_at = datetime.utcnow()
            db.commit()
            db.refresh(inspection)
        return inspection
