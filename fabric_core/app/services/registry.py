"""
Fabric Cut Registry
===================
Answers "does this identifier exist, where, and may it move?".

A cut lives in exactly one namespace at a time:
- main yard: the FabricCut collection (woven, inspected, stored)
- processing: the ProcessingReceipt projection (returned from a
  processing center under a new identifier)

Eligibility rules, in order:
1. the cut must exist in exactly one namespace
2. a main-yard cut must have completed four-point inspection
3. a main-yard cut listed in any ProcessingOrder.fabric_cuts is committed
   to processing and is tracked through its receipt instead
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from .. import config
from ..models import FabricCut, ProcessingReceipt, ProcessingOrder, Warp, Order
from .errors import InvariantViolation, storage_errors
from .identifiers import CanonicalId, canonicalize, canonical_key

logger = logging.getLogger(__name__)


class Namespace(str, Enum):
    MAIN_YARD = "main_yard"
    PROCESSING = "processing"


class EligibilityReason(str, Enum):
    ELIGIBLE = "eligible"
    NOT_FOUND = "not found"
    NOT_INSPECTED = "not inspected"
    COMMITTED_TO_PROCESSING = "committed to processing"


REASON_MESSAGES = {
    EligibilityReason.ELIGIBLE: "Fabric cut is eligible for movement",
    EligibilityReason.NOT_FOUND: "Fabric cut not found",
    EligibilityReason.NOT_INSPECTED: "This fabric cut has not completed 4-point inspection",
    EligibilityReason.COMMITTED_TO_PROCESSING: (
        "This fabric cut has been sent to processing and cannot be moved. "
        "Use processing-received cuts instead."
    ),
}


@dataclass
class Eligibility:
    eligible: bool
    reason: EligibilityReason
    message: str

    @classmethod
    def of(cls, reason: EligibilityReason) -> "Eligibility":
        return cls(
            eligible=reason == EligibilityReason.ELIGIBLE,
            reason=reason,
            message=REASON_MESSAGES[reason],
        )


@dataclass
class LookupResult:
    identifier: str
    canonical: str
    found: bool
    eligibility: Eligibility
    namespace: Optional[Namespace] = None
    fabric_number: Optional[str] = None
    location: Optional[str] = None
    context: dict = field(default_factory=dict)

    @property
    def eligible(self) -> bool:
        return self.eligibility.eligible

    @property
    def is_processing_received(self) -> bool:
        return self.namespace == Namespace.PROCESSING

    def to_dict(self) -> dict:
        return {
            "identifier": self.identifier,
            "canonical": self.canonical,
            "found": self.found,
            "namespace": self.namespace.value if self.namespace else None,
            "fabricNumber": self.fabric_number,
            "location": self.location,
            "context": dict(self.context),
            "eligible": self.eligible,
            "eligibility": {
                "eligible": self.eligibility.eligible,
                "reason": self.eligibility.reason.value,
                "message": self.eligibility.message,
            },
            "isProcessingReceived": self.is_processing_received,
        }


class FabricCutRegistry:
    """Read-only queries over the two fabric cut namespaces"""

    @staticmethod
    def lookup(db: Session, raw: str) -> LookupResult:
        """
        Locate a cut by any accepted identifier form and evaluate whether it
        may move.

        Never raises for a missing or ineligible cut. Raises StorageError on
        storage failure and InvariantViolation when the cut sits in both
        namespaces or is stored twice in the main yard.
        """
        cid = canonicalize(raw)
        with storage_errors(action=f"lookup of fabric cut {cid.value!r}"):
            cut = FabricCutRegistry._find_main_yard(db, cid)
            receipt = FabricCutRegistry._find_receipt(db, cid)

            if cut is not None and receipt is not None:
                raise InvariantViolation(
                    f"Fabric cut {cid.value} exists both in the main yard and as a processing receipt",
                    {"fabricCutId": cut.id, "processingReceiptId": receipt.id},
                )

            if cut is not None:
                return FabricCutRegistry._main_yard_result(db, raw, cid, cut)
            if receipt is not None:
                return FabricCutRegistry._processing_result(raw, cid, receipt)

        return LookupResult(
            identifier=raw,
            canonical=cid.value,
            found=False,
            eligibility=Eligibility.of(EligibilityReason.NOT_FOUND),
        )

    @staticmethod
    def committed_order(db: Session, raw: str) -> Optional[ProcessingOrder]:
        """Processing order whose sent list holds this cut, if any"""
        cid = canonicalize(raw)
        with storage_errors(action=f"processing check of {cid.value!r}"):
            return FabricCutRegistry._committed_order(db, cid)

    @staticmethod
    def claimed_identifiers(db: Session, prefix: Optional[str] = None) -> set:
        """
        Canonical identifiers currently claimed in either namespace.
        With `prefix`, only identifiers under that prefix.
        """
        taken = set()
        with storage_errors(action="identifier scan"):
            main = db.query(FabricCut.fabric_number)
            receipts = db.query(ProcessingReceipt.fabric_number, ProcessingReceipt.new_fabric_number)
            if prefix:
                main = main.filter(FabricCut.fabric_number.like(f"{prefix}%"))
            for (number,) in main.all():
                taken.add(canonical_key(number))
            for number, legacy_number in receipts.all():
                key = canonical_key(number or legacy_number)
                if key:
                    taken.add(key)
        if prefix:
            taken = {t for t in taken if t.startswith(f"{prefix}-")}
        return taken

    @staticmethod
    def main_yard_identifiers(db: Session, identifiers) -> set:
        """Canonical forms of `identifiers` that are FabricCut rows"""
        wanted = {}
        for raw in identifiers:
            cid = canonicalize(raw)
            for candidate in cid.candidates:
                wanted[candidate] = cid.value
        if not wanted:
            return set()
        with storage_errors(action="main yard identifier check"):
            rows = db.query(FabricCut.fabric_number).filter(
                FabricCut.fabric_number.in_(list(wanted))
            ).all()
        return {wanted[number] for (number,) in rows}

    # -------------------------------------------------------------------------

    @staticmethod
    def _find_main_yard(db: Session, cid: CanonicalId) -> Optional[FabricCut]:
        if not cid.candidates:
            return None
        rows = db.query(FabricCut).filter(
            FabricCut.fabric_number.in_(cid.candidates)
        ).order_by(FabricCut.id.asc()).all()
        if len(rows) > 1:
            raise InvariantViolation(
                f"Fabric cut {cid.value} is stored {len(rows)} times in the main yard",
                {"fabricCutIds": [r.id for r in rows]},
            )
        return rows[0] if rows else None

    @staticmethod
    def _find_receipt(db: Session, cid: CanonicalId) -> Optional[ProcessingReceipt]:
        if not cid.candidates:
            return None
        rows = db.query(ProcessingReceipt).filter(
            or_(
                ProcessingReceipt.fabric_number.in_(cid.candidates),
                ProcessingReceipt.new_fabric_number.in_(cid.candidates),
            )
        ).order_by(ProcessingReceipt.id.asc()).all()
        if len(rows) > 1:
            # projection drift, the next reconcile pass drops the surplus rows
            logger.warning(
                "Fabric cut %s has %d processing receipt rows; using id=%s",
                cid.value, len(rows), rows[0].id,
            )
        return rows[0] if rows else None

    @staticmethod
    def _committed_order(db: Session, cid: CanonicalId) -> Optional[ProcessingOrder]:
        if not cid.candidates:
            return None
        for order in db.query(ProcessingOrder).order_by(ProcessingOrder.id.asc()).all():
            for sent in order.fabric_cuts or []:
                number = sent.get("fabricNumber") if isinstance(sent, dict) else sent
                if number is None:
                    continue
                if canonical_key(number) == cid.value:
                    return order
        return None

    @staticmethod
    def _main_yard_result(db: Session, raw: str, cid: CanonicalId, cut: FabricCut) -> LookupResult:
        context = FabricCutRegistry._cut_context(db, cut)
        result = LookupResult(
            identifier=raw,
            canonical=cid.value,
            found=True,
            namespace=Namespace.MAIN_YARD,
            fabric_number=cut.fabric_number,
            location=cut.location or config.DEFAULT_LOCATION,
            context=context,
            eligibility=Eligibility.of(EligibilityReason.ELIGIBLE),
        )

        if not cut.four_point_completed:
            result.eligibility = Eligibility.of(EligibilityReason.NOT_INSPECTED)
            return result

        order = FabricCutRegistry._committed_order(db, cid)
        if order is not None:
            result.eligibility = Eligibility.of(EligibilityReason.COMMITTED_TO_PROCESSING)
            result.context["processingOrderId"] = order.id
            result.context["orderFormNumber"] = order.order_form_number
        return result

    @staticmethod
    def _processing_result(raw: str, cid: CanonicalId, receipt: ProcessingReceipt) -> LookupResult:
        # processed cuts count as inspected
        return LookupResult(
            identifier=raw,
            canonical=cid.value,
            found=True,
            namespace=Namespace.PROCESSING,
            fabric_number=receipt.fabric_number or receipt.new_fabric_number,
            location=receipt.received_location or config.DEFAULT_LOCATION,
            eligibility=Eligibility.of(EligibilityReason.ELIGIBLE),
            context={
                "quantity": receipt.quantity,
                "orderNumber": receipt.order_number or "N/A",
                "designName": receipt.design_name or "N/A",
                "designNumber": receipt.design_number or "N/A",
                "processingCenter": receipt.processing_center or "N/A",
                "deliveryNumber": receipt.delivery_number or "N/A",
                "originalFabricNumber": receipt.original_fabric_number or "N/A",
                "processingOrderId": receipt.processing_order_id,
            },
        )

    @staticmethod
    def _cut_context(db: Session, cut: FabricCut) -> dict:
        """Warp and order details; any of them may have been deleted"""
        context = {
            "fabricCutId": cut.id,
            "quantity": cut.quantity,
            "warpNumber": "N/A",
            "orderNumber": "N/A",
            "designName": "N/A",
            "designNumber": "N/A",
        }
        warp = db.get(Warp, cut.warp_id) if cut.warp_id else None
        if warp is None:
            return context
        context["warpNumber"] = warp.warp_number or "N/A"
        order = db.get(Order, warp.order_id) if warp.order_id else None
        if order is not None:
            context["orderNumber"] = order.order_number or "N/A"
            context["designName"] = order.design_name or "N/A"
            context["designNumber"] = order.design_number or "N/A"
        return context
