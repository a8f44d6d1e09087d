"""
Fabric Production Tracking - Data Models
========================================
Every collection is an independent table. Relationships are stored
identifiers only: there are no ForeignKey constraints, so a referenced
warp, order or loom may be missing and readers must tolerate it.

List-valued fields (cuts sent to processing, cuts received back, cuts in a
movement) are JSON columns holding camelCase dicts, the shape the shop-floor
clients submit.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Column, Integer, String, DateTime, Text, Boolean, Float, JSON,
    Enum as SQLEnum, Index, UniqueConstraint,
)
from .db import Base


# =============================================================================
# ENUMS
# =============================================================================

class OrderStatus(str, Enum):
    NEW = "new"
    ACTIVE = "active"
    COMPLETE = "complete"


class WarpStatus(str, Enum):
    ACTIVE = "active"
    COMPLETE = "complete"
    STOPPED = "stopped"


class InspectionType(str, Enum):
    """Quality inspection stages a cut can pass through"""
    FOUR_POINT = "four-point"
    UNWASHED = "unwashed"
    WASHED = "washed"

    @classmethod
    def parse(cls, value: str) -> "InspectionType":
        # older clients send "4-point"
        normalized = (value or "").strip().lower()
        if normalized == "4-point":
            return cls.FOUR_POINT
        return cls(normalized)


class MovementStatus(str, Enum):
    PENDING = "pending"
    RECEIVED = "received"


# =============================================================================
# PLANNING
# =============================================================================

class Order(Base):
    """Business order placed for a design"""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(50), nullable=False, index=True)
    design_name = Column(String(200), nullable=True)
    design_number = Column(String(100), nullable=True)
    order_quantity = Column(Float, nullable=False, default=0)
    warping_quantity = Column(Float, nullable=True)
    status = Column(SQLEnum(OrderStatus), default=OrderStatus.NEW)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Loom(Base):
    __tablename__ = "looms"

    id = Column(Integer, primary_key=True, index=True)
    loom_name = Column(String(100), nullable=False)
    company_name = Column(String(200), nullable=True)
    status = Column(String(20), default="idle")
    created_at = Column(DateTime, default=datetime.utcnow)


class Warp(Base):
    """
    A production run of an order on a loom.

    `warp_number` is the warp code that prefixes every fabric cut
    identifier woven from it.
    """
    __tablename__ = "warps"

    id = Column(Integer, primary_key=True, index=True)
    warp_number = Column(String(50), nullable=False, index=True)
    order_id = Column(Integer, nullable=True, index=True)
    loom_id = Column(Integer, nullable=True)
    quantity = Column(Float, nullable=False, default=0)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    status = Column(SQLEnum(WarpStatus), default=WarpStatus.ACTIVE)
    completion_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# =============================================================================
# FABRIC CUTS - THE CORE
# =============================================================================

class FabricCut(Base):
    """
    Atomic unit of woven output, created once when scanned off the loom.

    After creation only the location and inspection flags change. The
    identifier must not also exist as a processing receipt.
    """
    __tablename__ = "fabric_cuts"

    id = Column(Integer, primary_key=True, index=True)
    fabric_number = Column(String(80), nullable=False, index=True)
    warp_id = Column(Integer, nullable=True, index=True)
    quantity = Column(Float, nullable=False, default=0)
    cut_number = Column(Integer, nullable=False, default=0)
    total_cuts = Column(Integer, nullable=True)

    # Loom snapshot kept for history, looms may be deleted later
    loom_id = Column(Integer, nullable=True)
    loom_name = Column(String(100), nullable=True)
    company_name = Column(String(200), nullable=True)

    inspection_arrival = Column(DateTime, nullable=True)
    four_point_completed = Column(Boolean, default=False)
    four_point_date = Column(DateTime, nullable=True)
    unwashed_completed = Column(Boolean, default=False)
    unwashed_date = Column(DateTime, nullable=True)
    washed_completed = Column(Boolean, default=False)
    washed_date = Column(DateTime, nullable=True)

    location = Column(String(100), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('ix_fabric_cut_warp_cut', 'warp_id', 'cut_number'),
    )


class Inspection(Base):
    """Quality record against one fabric cut"""
    __tablename__ = "inspections"

    id = Column(Integer, primary_key=True, index=True)
    fabric_cut_id = Column(Integer, nullable=False, index=True)
    fabric_number = Column(String(80), nullable=True)
    warp_id = Column(Integer, nullable=True, index=True)
    inspection_type = Column(SQLEnum(InspectionType), nullable=False)
    inspected_quantity = Column(Float, nullable=False, default=0)
    mistake_quantity = Column(Float, nullable=False, default=0)
    inspection_date = Column(DateTime, nullable=True)
    inspector = Column(String(100), nullable=True)
    remarks = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# =============================================================================
# PROCESSING
# =============================================================================

class ProcessingOrder(Base):
    """
    Authoritative record of a batch sent to a processing center.

    fabric_cuts: cuts sent out, [{"fabricNumber", "quantity", ...}]
    received_fabric_cuts: cuts returned, each under a new identifier,
        [{"newFabricNumber", "originalFabricNumber", "quantity",
          "deliveryNumber", "receivedBy", "location", "receivedAt"}]
    received_fabric_cuts_by_delivery: legacy {deliveryNumber: [cut, ...]}
        map, folded into received_fabric_cuts by the reconciler.
    """
    __tablename__ = "processing_orders"

    id = Column(Integer, primary_key=True, index=True)
    order_form_number = Column(String(50), nullable=False, index=True)
    processing_center = Column(String(200), nullable=False)
    processes = Column(JSON, nullable=True)
    fabric_cuts = Column(JSON, nullable=False, default=list)
    received_fabric_cuts = Column(JSON, nullable=True)
    received_fabric_cuts_by_delivery = Column(JSON, nullable=True)
    order_details = Column(JSON, nullable=True)
    total_fabric_cuts = Column(Integer, nullable=True)
    total_quantity = Column(Float, nullable=True)
    vehicle_number = Column(String(20), nullable=True)
    delivery_date = Column(DateTime, nullable=True)
    delivered_by = Column(String(100), nullable=True)
    status = Column(String(20), default="sent")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ProcessingReceipt(Base):
    """
    Derived row per cut received back from processing.

    Regenerated from ProcessingOrder.received_fabric_cuts by the
    reconciler; never edited by hand. Older rows carry the identifier
    only in new_fabric_number.
    """
    __tablename__ = "processing_receipts"

    id = Column(Integer, primary_key=True, index=True)
    fabric_number = Column(String(80), nullable=True, index=True)
    new_fabric_number = Column(String(80), nullable=True, index=True)
    original_fabric_number = Column(String(80), nullable=True)
    order_form_number = Column(String(50), nullable=True)
    processing_order_id = Column(Integer, nullable=True, index=True)
    processing_center = Column(String(200), nullable=True)
    order_number = Column(String(50), nullable=True)
    design_name = Column(String(200), nullable=True)
    design_number = Column(String(100), nullable=True)
    quantity = Column(Float, nullable=True)
    delivery_number = Column(String(50), nullable=True)
    received_by = Column(String(100), nullable=True)
    received_location = Column(String(100), nullable=True)
    received_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# =============================================================================
# MOVEMENT
# =============================================================================

class FabricMovement(Base):
    """Transfer of a set of cuts between two locations"""
    __tablename__ = "fabric_movements"

    id = Column(Integer, primary_key=True, index=True)
    movement_order_number = Column(String(50), unique=True, nullable=False)
    fabric_cuts = Column(JSON, nullable=False, default=list)
    from_location = Column(String(100), nullable=False)
    to_location = Column(String(100), nullable=False)
    moved_by = Column(String(100), nullable=False)
    notes = Column(Text, nullable=True)
    status = Column(SQLEnum(MovementStatus), default=MovementStatus.PENDING)
    received_at = Column(DateTime, nullable=True)
    received_by = Column(String(100), nullable=True)
    received_location = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


# =============================================================================
# SYSTEM TABLES
# =============================================================================

class Counter(Base):
    """
    Monotonic sequence per scope string.
    Incremented with a single conditional UPDATE, never read-then-write.
    """
    __tablename__ = "counters"

    id = Column(Integer, primary_key=True, index=True)
    scope = Column(String(100), nullable=False)
    value = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('scope', name='uq_counter_scope'),
    )


class AuditLog(Base):
    """
    Audit trail of identifier changes.
    Operators use the old -> new pairs to relabel physical cuts.
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Integer, nullable=True)
    action = Column(String(50), nullable=False)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_audit_entity', 'entity_type', 'entity_id'),
    )
