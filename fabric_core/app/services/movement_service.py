"""
Fabric Movement Service
=======================
Transfers of fabric cuts between locations.

Creation re-checks every cut against the registry; a single ineligible
cut rejects the whole movement with a reason per cut. Receiving writes the
new location onto the authoritative record of each cut: the FabricCut row
for main-yard cuts, the processing order's received list (mirrored onto
the receipt row) for processed cuts. No reconciliation is triggered.
"""

import logging
from datetime import datetime
from typing import List, Optional, Union

from sqlalchemy import or_
from sqlalchemy.orm import Session

from .. import config
from ..models import (
    FabricMovement, FabricCut, ProcessingOrder, ProcessingReceipt, MovementStatus,
)
from .counters import next_sequence
from .duplicates import received_identifier
from .errors import ValidationError, IneligibleFabricCutError, NotFoundError, storage_errors
from .identifiers import canonicalize, canonical_key
from .registry import FabricCutRegistry, Namespace

logger = logging.getLogger(__name__)

MOVEMENT_SCOPE = "fabric_movements"


def _relocated(cuts, keys: set, location: str):
    """Copy of a received list with matching cuts moved; (list, changed)"""
    if not isinstance(cuts, list):
        return cuts, False
    changed = False
    updated = []
    for cut in cuts:
        if isinstance(cut, dict) and canonical_key(received_identifier(cut)) in keys:
            cut = {**cut, "location": location}
            changed = True
        updated.append(cut)
    return updated, changed


def _requested_identifier(item: Union[str, dict]) -> Optional[str]:
    if isinstance(item, dict):
        item = item.get("fabricNumber")
    if item is None:
        return None
    text = str(item).strip()
    return text or None


class FabricMovementService:
    """Service class for fabric movement operations"""

    @staticmethod
    def create_movement(
        db: Session,
        fabric_cuts: List[Union[str, dict]],
        from_location: str,
        to_location: str,
        moved_by: str,
        notes: Optional[str] = None,
    ) -> FabricMovement:
        """
        Create a pending movement for a set of cuts.

        Raises:
            ValidationError: missing locations, mover or cuts, or a cut listed twice
            IneligibleFabricCutError: any cut not found, not inspected or
                committed to processing
        """
        if not fabric_cuts:
            raise ValidationError("At least one fabric cut is required")
        if not (from_location or "").strip() or not (to_location or "").strip():
            raise ValidationError("From and to locations are required")
        if not (moved_by or "").strip():
            raise ValidationError("Moved by field is required")

        requested = []
        seen = set()
        for item in fabric_cuts:
            raw = _requested_identifier(item)
            if raw is None:
                raise ValidationError("Every fabric cut needs a fabricNumber")
            key = canonical_key(raw)
            if key in seen:
                raise ValidationError(f"Fabric cut {key} is listed more than once", {"fabricNumber": key})
            seen.add(key)
            requested.append(raw)

        lines = []
        failures = []
        for raw in requested:
            result = FabricCutRegistry.lookup(db, raw)
            if not result.eligible:
                failures.append({
                    "fabricNumber": raw,
                    "reason": result.eligibility.reason.value,
                    "message": result.eligibility.message,
                })
                continue
            lines.append({
                "fabricNumber": result.fabric_number,
                "quantity": result.context.get("quantity"),
                "orderNumber": result.context.get("orderNumber"),
                "designName": result.context.get("designName"),
                "designNumber": result.context.get("designNumber"),
                "location": result.location,
                "isProcessingReceived": result.namespace == Namespace.PROCESSING,
            })

        if failures:
            logger.info("Movement rejected: %d of %d cuts ineligible", len(failures), len(requested))
            raise IneligibleFabricCutError(
                f"{len(failures)} fabric cut(s) are not eligible for movement",
                failures,
            )

        with storage_errors(db, action="fabric movement creation"):
            movement = FabricMovement(
                movement_order_number=next_sequence(
                    db, MOVEMENT_SCOPE, config.MOVEMENT_NUMBER_PREFIX, config.MOVEMENT_NUMBER_PADDING
                ),
                fabric_cuts=lines,
                from_location=from_location.strip(),
                to_location=to_location.strip(),
                moved_by=moved_by.strip(),
                notes=notes or "",
                status=MovementStatus.PENDING,
            )
            db.add(movement)
            db.commit()
            db.refresh(movement)

        logger.info(
            "Movement %s created: %d cut(s) %s -> %s by %s",
            movement.movement_order_number, len(lines),
            movement.from_location, movement.to_location, movement.moved_by,
        )
        return movement

    @staticmethod
    def receive_movement(
        db: Session,
        movement_id: int,
        received_by: str,
        received_location: Optional[str] = None,
    ) -> FabricMovement:
        """
        Mark a movement received and move its cuts to the new location.

        All location updates and the status change are one commit.
        """
        if not (received_by or "").strip():
            raise ValidationError("Received by field is required")

        with storage_errors(db, action="fabric movement receipt"):
            movement = db.get(FabricMovement, movement_id)
            if not movement:
                raise NotFoundError("Movement record not found", {"movementId": movement_id})
            if movement.status == MovementStatus.RECEIVED:
                raise ValidationError(
                    "This movement has already been received",
                    {"movementOrderNumber": movement.movement_order_number},
                )

            location = (received_location or "").strip() or movement.to_location
            processed = []
            for line in movement.fabric_cuts or []:
                number = line.get("fabricNumber")
                if line.get("isProcessingReceived"):
                    processed.append(number)
                else:
                    FabricMovementService._relocate_main_yard(db, number, location)

            if processed:
                FabricMovementService._relocate_processed(db, processed, location)

            movement.status = MovementStatus.RECEIVED
            movement.received_at = datetime.utcnow()
            movement.received_by = received_by.strip()
            movement.received_location = location
            db.commit()
            db.refresh(movement)

        logger.info(
            "Movement %s received at %s by %s",
            movement.movement_order_number, location, movement.received_by,
        )
        return movement

    @staticmethod
    def list_movements(db: Session, status: Optional[MovementStatus] = None) -> List[FabricMovement]:
        with storage_errors(action="fabric movement listing"):
            query = db.query(FabricMovement)
            if status is not None:
                query = query.filter(FabricMovement.status == status)
            return query.order_by(FabricMovement.created_at.desc(), FabricMovement.id.desc()).all()

    # -------------------------------------------------------------------------

    @staticmethod
    def _relocate_main_yard(db: Session, fabric_number: str, location: str) -> None:
        cid = canonicalize(fabric_number)
        cuts = db.query(FabricCut).filter(FabricCut.fabric_number.in_(cid.candidates)).all()
        if not cuts:
            logger.warning("Fabric cut %s no longer exists; location not updated", cid.value)
        for cut in cuts:
            cut.location = location
            cut.updated_at = datetime.utcnow()

    @staticmethod
    def _relocate_processed(db: Session, fabric_numbers: List[str], location: str) -> None:
        keys = {canonical_key(n) for n in fabric_numbers}
        candidates = set()
        for number in fabric_numbers:
            candidates.update(canonicalize(number).candidates)

        # authoritative copy on the processing order, legacy per-delivery map included
        for order in db.query(ProcessingOrder).all():
            updated, changed = _relocated(order.received_fabric_cuts, keys, location)
            if changed:
                order.received_fabric_cuts = updated

            legacy = order.received_fabric_cuts_by_delivery
            if isinstance(legacy, dict) and legacy:
                remapped = {}
                legacy_changed = False
                for delivery_number, delivery_cuts in legacy.items():
                    cuts, moved = _relocated(delivery_cuts, keys, location)
                    remapped[delivery_number] = cuts
                    legacy_changed = legacy_changed or moved
                if legacy_changed:
                    order.received_fabric_cuts_by_delivery = remapped

        # mirrored on the projection
        receipts = db.query(ProcessingReceipt).filter(
            or_(
                ProcessingReceipt.fabric_number.in_(candidates),
                ProcessingReceipt.new_fabric_number.in_(candidates),
            )
        ).all()
        for receipt in receipts:
            receipt.received_location = location
            receipt.updated_at = datetime.utcnow()
