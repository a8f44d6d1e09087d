"""
Processing Order Service
========================
Authoritative writes to processing orders. Every change to the received
lists is followed by duplicate resolution and a reconciliation pass in the
same transaction, so the receipt projection never lags behind.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models import ProcessingOrder
from .duplicates import DuplicateResolver, Remap, received_identifier
from .errors import ValidationError, IneligibleFabricCutError, NotFoundError, ConflictError, storage_errors
from .identifiers import canonicalize
from .reconciler import ProcessingReconciler, ReconcileResult
from .registry import FabricCutRegistry, EligibilityReason

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "processing_center", "processes", "order_details", "total_fabric_cuts",
    "total_quantity", "vehicle_number", "delivery_date", "delivered_by", "status",
)


@dataclass
class ProcessingOrderUpdate:
    order: ProcessingOrder
    reconcile: Optional[ReconcileResult] = None
    remaps: List[Remap] = field(default_factory=list)


def _sent_identifier(cut) -> Optional[str]:
    if isinstance(cut, dict):
        cut = cut.get("fabricNumber")
    if cut is None:
        return None
    text = str(cut).strip()
    return text or None


class ProcessingOrderService:
    """Service class for processing order operations"""

    @staticmethod
    def _validate_sent_cuts(db: Session, fabric_cuts: List, order_id: Optional[int] = None) -> List[dict]:
        """
        Canonicalize the sent list and check each new cut may leave the yard.

        Cuts already on this order pass through; anything else must be an
        inspected main-yard cut not committed to another order.
        """
        if not fabric_cuts:
            raise ValidationError("At least one fabric cut is required")

        existing = set()
        if order_id is not None:
            current = db.get(ProcessingOrder, order_id)
            for cut in (current.fabric_cuts if current else None) or []:
                number = _sent_identifier(cut)
                if number:
                    existing.add(canonicalize(number).value)

        cleaned = []
        seen = set()
        failures = []
        for cut in fabric_cuts:
            number = _sent_identifier(cut)
            if number is None:
                raise ValidationError("Every fabric cut needs a fabricNumber")
            key = canonicalize(number).value
            if key in seen:
                raise ValidationError(f"Fabric cut {key} is listed more than once", {"fabricNumber": key})
            seen.add(key)

            entry = dict(cut) if isinstance(cut, dict) else {}
            entry["fabricNumber"] = key
            cleaned.append(entry)
            if key in existing:
                continue

            result = FabricCutRegistry.lookup(db, number)
            if result.eligible and result.is_processing_received:
                failures.append({
                    "fabricNumber": number,
                    "reason": "processing received",
                    "message": "Cut has already been through processing",
                })
            elif not result.eligible:
                failures.append({
                    "fabricNumber": number,
                    "reason": result.eligibility.reason.value,
                    "message": result.eligibility.message,
                })
            else:
                entry.setdefault("quantity", result.context.get("quantity"))

        if failures:
            raise IneligibleFabricCutError(
                f"{len(failures)} fabric cut(s) cannot be sent for processing", failures
            )
        return cleaned

    @staticmethod
    def _check_received_cuts(db: Session, received: List) -> None:
        """A received identifier may not already name a main-yard cut"""
        numbers = [received_identifier(c) for c in received if isinstance(c, dict)]
        clashes = FabricCutRegistry.main_yard_identifiers(db, [n for n in numbers if n])
        if clashes:
            raise ConflictError(
                "Received fabric numbers already exist in the main yard",
                {"fabricNumbers": sorted(clashes)},
            )

    @staticmethod
    def create_order(
        db: Session,
        order_form_number: str,
        processing_center: str,
        fabric_cuts: List,
        **fields,
    ) -> ProcessingOrder:
        """
        Record a batch sent to a processing center.

        Raises:
            ValidationError: missing order form number, center or cuts
            IneligibleFabricCutError: a sent cut is not in the main yard,
                not inspected, or already committed to processing
        """
        if not (order_form_number or "").strip() or not (processing_center or "").strip():
            raise ValidationError("Missing required fields: orderFormNumber and processingCenter")

        sent = ProcessingOrderService._validate_sent_cuts(db, fabric_cuts)

        values = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS and v is not None}
        values.setdefault("status", "sent")
        values.setdefault("total_fabric_cuts", len(sent))
        if values.get("total_quantity") is None:
            values["total_quantity"] = round(sum(float(c.get("quantity") or 0) for c in sent), 2)

        with storage_errors(db, action="processing order creation"):
            order = ProcessingOrder(
                order_form_number=order_form_number.strip(),
                processing_center=processing_center.strip(),
                fabric_cuts=sent,
                received_fabric_cuts=[],
                **values,
            )
            if fields.get("created_at"):
                order.created_at = fields["created_at"]
            db.add(order)
            db.commit()
            db.refresh(order)

        logger.info(
            "Processing order %s created for %s with %d cut(s)",
            order.order_form_number, order.processing_center, len(sent),
        )
        return order

    @staticmethod
    def get_order(db: Session, order_id: int) -> ProcessingOrder:
        with storage_errors(action="processing order fetch"):
            order = db.get(ProcessingOrder, order_id)
        if not order:
            raise NotFoundError("Processing order not found", {"processingOrderId": order_id})
        return order

    @staticmethod
    def list_orders(db: Session) -> List[ProcessingOrder]:
        with storage_errors(action="processing order listing"):
            return db.query(ProcessingOrder).order_by(
                ProcessingOrder.created_at.desc(), ProcessingOrder.id.desc()
            ).all()

    @staticmethod
    def update_order(db: Session, order_id: int, patch: dict) -> ProcessingOrderUpdate:
        """
        Apply a partial update.

        When `received_fabric_cuts` is present, duplicates are resolved
        against a fresh read of every other order, the legacy per-delivery
        map is dropped, and the receipt projection is reconciled before the
        single commit.
        """
        order = ProcessingOrderService.get_order(db, order_id)
        outcome = ProcessingOrderUpdate(order=order)

        # validate everything before touching the row
        if "order_form_number" in patch and not (patch["order_form_number"] or "").strip():
            raise ValidationError("orderFormNumber cannot be empty")
        sent = None
        if "fabric_cuts" in patch:
            sent = ProcessingOrderService._validate_sent_cuts(db, patch["fabric_cuts"], order_id=order.id)
        if patch.get("received_fabric_cuts") is not None:
            ProcessingOrderService._check_received_cuts(db, patch["received_fabric_cuts"])

        with storage_errors(db, action=f"processing order {order_id} update"):
            for name in UPDATABLE_FIELDS:
                if name in patch:
                    setattr(order, name, patch[name])
            if "order_form_number" in patch:
                order.order_form_number = patch["order_form_number"].strip()
            if sent is not None:
                order.fabric_cuts = sent

            received = patch.get("received_fabric_cuts")
            if received is not None:
                peers = DuplicateResolver.peer_identifiers(db, order.id)
                result = DuplicateResolver.resolve(order, peers, cuts=received)
                DuplicateResolver.apply(db, order, result)
                outcome.remaps = result.remaps

            order.updated_at = datetime.utcnow()

            if received is not None:
                db.flush()
                outcome.reconcile = ProcessingReconciler.reconcile(db)
            else:
                db.commit()
            db.refresh(order)

        logger.info("Processing order %s updated (%s)", order.id, ", ".join(sorted(patch)) or "no fields")
        return outcome

    @staticmethod
    def delete_order(db: Session, order_id: int) -> ReconcileResult:
        """Delete an order and drop its receipts in the same commit"""
        order = ProcessingOrderService.get_order(db, order_id)
        with storage_errors(db, action=f"processing order {order_id} delete"):
            db.delete(order)
            db.flush()
        result = ProcessingReconciler.reconcile(db)
        logger.info("Processing order %s deleted; %d receipt(s) removed", order_id, result.removed)
        return result

    @staticmethod
    def check_fabric_cut(db: Session, raw: str) -> dict:
        """Whether a cut is on any order's sent list"""
        order = FabricCutRegistry.committed_order(db, raw)
        if order is None:
            return {"isUsed": False, "fabricNumber": canonicalize(raw).value}
        return {
            "isUsed": True,
            "fabricNumber": canonicalize(raw).value,
            "processingOrderId": order.id,
            "orderFormNumber": order.order_form_number,
            "reason": EligibilityReason.COMMITTED_TO_PROCESSING.value,
        }

    @staticmethod
    def cleanup_duplicates(db: Session) -> ReconcileResult:
        """Repair sweep over every order followed by a reconcile, one commit"""
        return ProcessingReconciler.reconcile(db, repair_duplicates=True)
