"""
Processing Reconciler
=====================
Rebuilds the ProcessingReceipt projection from the authoritative
ProcessingOrder.received_fabric_cuts lists by diffing:

    target  = every received cut of every order, keyed by canonical id
    current = every receipt row, keyed by fabric_number (or the legacy
              new_fabric_number)

Target-only entries are inserted, current-only rows are deleted, shared
rows are rewritten only where a denormalized field differs. The whole
pass is one commit; on failure the projection keeps its previous state
and the caller may simply retry.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import ProcessingOrder, ProcessingReceipt
from .duplicates import DuplicateResolver, Remap, flatten_received, received_identifier
from .errors import StorageError
from .identifiers import canonical_key

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    added: int = 0
    removed: int = 0
    updated: int = 0
    total_current: int = 0
    migrated_orders: int = 0
    reassignments: List[Remap] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "addedCount": self.added,
            "removedCount": self.removed,
            "updatedCount": self.updated,
            "totalCurrent": self.total_current,
            "migratedOrders": self.migrated_orders,
            "reassignments": [r.to_dict() for r in self.reassignments],
        }


def parse_timestamp(value) -> Optional[datetime]:
    """Accepts datetimes and ISO-8601 strings (trailing Z allowed); naive UTC out"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning("Ignoring unparseable timestamp %r", value)
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _order_context(order: ProcessingOrder) -> dict:
    details = order.order_details or {}
    return {
        "order_number": details.get("orderNumber") or "N/A",
        "design_name": details.get("designName") or "N/A",
        "design_number": details.get("designNumber") or "N/A",
    }


class ProcessingReconciler:
    """Diff-based sync of processing receipts"""

    @staticmethod
    def build_target(orders: List[ProcessingOrder]) -> Dict[str, dict]:
        """
        Receipt rows the current orders imply, keyed by canonical identifier.
        Orders are expected oldest first; the first claim of an id wins.
        """
        target = {}
        for order in orders:
            context = _order_context(order)
            for cut in flatten_received(order):
                number = received_identifier(cut)
                if not number:
                    continue
                key = canonical_key(number)
                if key in target:
                    logger.warning(
                        "Fabric cut %s received on processing orders %s and %s; "
                        "run cleanup-duplicates to renumber",
                        key, target[key]["processing_order_id"], order.id,
                    )
                    continue
                target[key] = {
                    "fabric_number": key,
                    "new_fabric_number": key,
                    "original_fabric_number": cut.get("originalFabricNumber") or "N/A",
                    "order_form_number": order.order_form_number,
                    "processing_order_id": order.id,
                    "processing_center": order.processing_center,
                    "quantity": cut.get("quantity"),
                    "delivery_number": cut.get("deliveryNumber"),
                    "received_by": cut.get("receivedBy"),
                    "received_location": cut.get("location"),
                    "received_at": parse_timestamp(cut.get("receivedAt")),
                    **context,
                }
        return target

    @staticmethod
    def refresh_receipt(receipt: ProcessingReceipt, values: dict) -> bool:
        """Copy target values onto a stored row; False when it already matches"""
        changed = False
        for name, value in values.items():
            if getattr(receipt, name) != value:
                setattr(receipt, name, value)
                changed = True
        if changed:
            receipt.updated_at = datetime.utcnow()
        return changed

    @staticmethod
    def reconcile(db: Session, repair_duplicates: bool = False, commit: bool = True) -> ReconcileResult:
        """
        One full reconciliation pass.

        Legacy per-delivery orders are flattened, deduplicated and rewritten
        in the same transaction. With `repair_duplicates`, every order is
        swept for duplicate identifiers first.

        Idempotent: a second call with no authoritative change reports
        0 added, 0 removed and 0 updated. Raises StorageError after rolling back.
        """
        result = ReconcileResult()
        try:
            sweep = DuplicateResolver.sweep(db, legacy_only=not repair_duplicates)
            result.migrated_orders = sweep.migrated_orders
            result.reassignments = sweep.remaps
            db.flush()

            orders = db.query(ProcessingOrder).order_by(
                ProcessingOrder.created_at.asc(), ProcessingOrder.id.asc()
            ).all()
            target = ProcessingReconciler.build_target(orders)

            current: Dict[str, ProcessingReceipt] = {}
            for receipt in db.query(ProcessingReceipt).order_by(ProcessingReceipt.id.asc()).all():
                key = canonical_key(receipt.fabric_number or receipt.new_fabric_number)
                if not key or key not in target or key in current:
                    # stale, blank or surplus duplicate row
                    db.delete(receipt)
                    result.removed += 1
                    continue
                current[key] = receipt

            for key, values in target.items():
                receipt = current.get(key)
                if receipt is None:
                    db.add(ProcessingReceipt(**values))
                    result.added += 1
                elif ProcessingReconciler.refresh_receipt(receipt, values):
                    result.updated += 1

            result.total_current = len(target)

            if commit:
                db.commit()
            else:
                db.flush()
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("Processing receipt reconciliation failed; projection unchanged")
            raise StorageError(f"Reconciliation failed: {e.__class__.__name__}") from e

        logger.info(
            "Processing receipts reconciled: added=%d removed=%d updated=%d total=%d migrated=%d reassigned=%d",
            result.added, result.removed, result.updated, result.total_current,
            result.migrated_orders, len(result.reassignments),
        )
        return result

    @staticmethod
    def list_receipts(db: Session) -> List[ProcessingReceipt]:
        try:
            return db.query(ProcessingReceipt).order_by(
                ProcessingReceipt.received_at.desc(), ProcessingReceipt.id.desc()
            ).all()
        except SQLAlchemyError as e:
            logger.exception("Failed to list processing receipts")
            raise StorageError("Failed to fetch processing receipts") from e
