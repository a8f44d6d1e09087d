"""
Duplicate Resolver
==================
Detects fabric cut identifier collisions in processing order receipts and
renumbers the colliding entries deterministically.

Collisions come from concurrent receipt entry and from the legacy
per-delivery structure, which repeated cuts already in the flat list.
Nothing here prevents a collision up front; it is repaired afterwards.

Every reassignment is logged at WARNING and written to the audit trail so
operators can relabel the physical cut.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from .. import config
from ..models import ProcessingOrder, AuditLog
from .errors import ConflictError, storage_errors
from .identifiers import (
    canonical_key, next_available, order_numbering_prefix, parse_identifier,
)

logger = logging.getLogger(__name__)

REMAP_ACTION = "fabric_number_reassigned"


# =============================================================================
# RECEIVED CUT HELPERS
# =============================================================================

def received_identifier(cut: dict) -> Optional[str]:
    """Identifier a received cut was labelled with (older rows use fabricNumber)"""
    if not isinstance(cut, dict):
        return None
    value = cut.get("newFabricNumber") or cut.get("fabricNumber")
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def has_legacy_structure(order: ProcessingOrder) -> bool:
    return bool(order.received_fabric_cuts_by_delivery)


def flatten_received(order: ProcessingOrder) -> List[dict]:
    """
    All received cuts of an order as one flat list.

    Entries of the legacy {deliveryNumber: [cut, ...]} map that repeat a cut
    already present (same new and original identifier) are the same physical
    cut and are dropped. Copies are returned; the order is not modified.
    """
    cuts = [dict(c) for c in (order.received_fabric_cuts or []) if isinstance(c, dict)]
    legacy = order.received_fabric_cuts_by_delivery or {}
    if not legacy:
        return cuts

    seen = {
        (canonical_key(received_identifier(c)), c.get("originalFabricNumber"))
        for c in cuts
    }
    for delivery_number, delivery_cuts in legacy.items():
        if not isinstance(delivery_cuts, list):
            continue
        for cut in delivery_cuts:
            if not isinstance(cut, dict):
                continue
            key = (canonical_key(received_identifier(cut)), cut.get("originalFabricNumber"))
            if key in seen:
                continue
            seen.add(key)
            entry = dict(cut)
            entry.setdefault("deliveryNumber", delivery_number)
            cuts.append(entry)
    return cuts


def order_identifiers(cuts: Iterable[dict]) -> set:
    """Canonical identifiers held by a list of received cuts"""
    ids = set()
    for cut in cuts:
        number = received_identifier(cut)
        if number:
            ids.add(canonical_key(number))
    return ids


# =============================================================================
# RESOLVER
# =============================================================================

@dataclass
class Remap:
    processing_order_id: Optional[int]
    order_form_number: Optional[str]
    position: int
    old_fabric_number: str
    new_fabric_number: str

    def to_dict(self) -> dict:
        return {
            "processingOrderId": self.processing_order_id,
            "orderFormNumber": self.order_form_number,
            "position": self.position,
            "oldFabricNumber": self.old_fabric_number,
            "newFabricNumber": self.new_fabric_number,
        }


@dataclass
class ResolveResult:
    cuts: List[dict]
    remaps: List[Remap] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.remaps)


@dataclass
class SweepResult:
    orders_changed: int = 0
    migrated_orders: int = 0
    remaps: List[Remap] = field(default_factory=list)


class DuplicateResolver:
    """Keeps received fabric cut identifiers unique across processing orders"""

    @staticmethod
    def numbering_prefix(order: ProcessingOrder, cuts: List[dict]) -> str:
        """
        Prefix new identifiers are allocated under for this order.

        1. the single prefix shared by the order's parseable identifiers
        2. WR-<last segment of the order form number>
        """
        prefixes = set()
        for cut in cuts:
            parsed = parse_identifier(received_identifier(cut))
            if parsed:
                prefixes.add(parsed[0])
        if len(prefixes) == 1:
            return prefixes.pop()

        prefix = order_numbering_prefix(order.order_form_number, config.RECEIPT_NUMBER_PREFIX)
        if prefix:
            return prefix

        raise ConflictError(
            f"Cannot renumber duplicate fabric cuts on processing order {order.id}: "
            "identifier prefix is ambiguous and the order has no order form number",
            {"processingOrderId": order.id, "prefixes": sorted(prefixes)},
        )

    @staticmethod
    def resolve(
        order: ProcessingOrder,
        global_taken: Iterable[str],
        cuts: Optional[List[dict]] = None,
        reserved: Iterable[str] = (),
    ) -> ResolveResult:
        """
        Walk the order's received cuts in order and renumber collisions.

        The first occurrence of an identifier is kept. A later occurrence, or
        one already in `global_taken`, gets the lowest free number under the
        order's prefix. New numbers also avoid every identifier the order
        already holds and anything in `reserved`, so a cut that does not
        collide is never renumbered.

        Kept identifiers are stored in canonical form. Does no I/O; call
        record_remaps() to write the audit trail.
        """
        source = flatten_received(order) if cuts is None else [dict(c) for c in cuts]
        global_taken = {canonical_key(t) for t in global_taken}
        avoid = set(global_taken) | order_identifiers(source) | {canonical_key(r) for r in reserved}

        seen = set()
        cleaned = []
        remaps = []
        prefix = None

        for position, cut in enumerate(source):
            number = received_identifier(cut)
            if not number:
                logger.warning(
                    "Processing order %s: received cut at position %d has no fabric number",
                    order.id, position,
                )
                cleaned.append(cut)
                continue

            key = canonical_key(number)
            if key not in seen and key not in global_taken:
                seen.add(key)
                cut["newFabricNumber"] = key
                cleaned.append(cut)
                continue

            if prefix is None:
                prefix = DuplicateResolver.numbering_prefix(order, source)
            new_number = next_available(prefix, avoid | seen)
            seen.add(new_number)
            avoid.add(new_number)

            cut["newFabricNumber"] = new_number
            cut["reassignedFrom"] = number
            cleaned.append(cut)

            remap = Remap(
                processing_order_id=order.id,
                order_form_number=order.order_form_number,
                position=position,
                old_fabric_number=number,
                new_fabric_number=new_number,
            )
            remaps.append(remap)
            logger.warning(
                "Processing order %s (%s): fabric cut %s reassigned to %s",
                order.id, order.order_form_number, number, new_number,
            )

        return ResolveResult(cuts=cleaned, remaps=remaps)

    @staticmethod
    def record_remaps(db: Session, remaps: List[Remap]) -> None:
        for remap in remaps:
            db.add(AuditLog(
                entity_type="processing_order",
                entity_id=remap.processing_order_id,
                action=REMAP_ACTION,
                old_values={"fabricNumber": remap.old_fabric_number, "position": remap.position},
                new_values={
                    "fabricNumber": remap.new_fabric_number,
                    "orderFormNumber": remap.order_form_number,
                },
            ))

    @staticmethod
    def peer_identifiers(db: Session, order_id: Optional[int]) -> set:
        """Identifiers held by every other processing order, read fresh"""
        with storage_errors(action="peer identifier scan"):
            query = db.query(ProcessingOrder)
            if order_id is not None:
                query = query.filter(ProcessingOrder.id != order_id)
            taken = set()
            for peer in query.all():
                taken |= order_identifiers(flatten_received(peer))
        return taken

    @staticmethod
    def apply(db: Session, order: ProcessingOrder, result: ResolveResult) -> None:
        """Write resolved cuts back onto the order (flat structure only)"""
        order.received_fabric_cuts = list(result.cuts)
        order.received_fabric_cuts_by_delivery = None
        DuplicateResolver.record_remaps(db, result.remaps)

    @staticmethod
    def sweep(db: Session, legacy_only: bool = False, commit: bool = False) -> SweepResult:
        """
        Repair pass over all processing orders, oldest first.

        Earlier orders claim identifiers first; later orders' identifiers are
        reserved so renumbering an earlier order never creates a new
        collision. Safe to re-run from scratch.

        With `legacy_only`, only orders still carrying the per-delivery map
        are rewritten; the others just claim their identifiers.
        """
        summary = SweepResult()
        with storage_errors(db, action="duplicate fabric number sweep"):
            orders = db.query(ProcessingOrder).order_by(
                ProcessingOrder.created_at.asc(), ProcessingOrder.id.asc()
            ).all()
            flat = {o.id: flatten_received(o) for o in orders}

            claimed = set()
            for index, order in enumerate(orders):
                legacy = has_legacy_structure(order)
                if legacy_only and not legacy:
                    claimed |= order_identifiers(flat[order.id])
                    continue

                later = set()
                for other in orders[index + 1:]:
                    later |= order_identifiers(flat[other.id])

                result = DuplicateResolver.resolve(order, claimed, cuts=flat[order.id], reserved=later)
                claimed |= order_identifiers(result.cuts)

                if legacy or result.changed or result.cuts != (order.received_fabric_cuts or []):
                    DuplicateResolver.apply(db, order, result)
                    summary.orders_changed += 1
                    if legacy:
                        summary.migrated_orders += 1
                        logger.info("Processing order %s: migrated legacy per-delivery receipts", order.id)
                summary.remaps.extend(result.remaps)

            if commit:
                db.commit()

        if summary.remaps:
            logger.warning("Duplicate sweep reassigned %d fabric cut(s)", len(summary.remaps))
        return summary

    @staticmethod
    def list_remaps(db: Session, processing_order_id: Optional[int] = None, limit: int = 200) -> List[AuditLog]:
        with storage_errors(action="remap listing"):
            query = db.query(AuditLog).filter(AuditLog.action == REMAP_ACTION)
            if processing_order_id is not None:
                query = query.filter(AuditLog.entity_id == processing_order_id)
            return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
