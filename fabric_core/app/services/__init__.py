"""
Services package initialization.
Business logic layer for fabric cut identity, processing reconciliation
and production views.
"""

from .errors import (
    FabricError,
    ValidationError,
    IneligibleFabricCutError,
    NotFoundError,
    ConflictError,
    StorageError,
    InvariantViolation,
)
from .identifiers import (
    CanonicalId,
    canonicalize,
    canonical_key,
    next_available,
    format_identifier,
    qr_payload,
)
from .counters import next_counter_value, next_sequence
from .registry import FabricCutRegistry, LookupResult, Namespace, EligibilityReason
from .duplicates import DuplicateResolver, ResolveResult, Remap
from .reconciler import ProcessingReconciler, ReconcileResult
from .timeline import ProductionTimelineAggregator, ProductionTimeline, TimelineEntry
from .inspection_summary import InspectionAggregator, InspectionSummary
from .fabric_cut_service import FabricCutService
from .movement_service import FabricMovementService
from .processing_service import ProcessingOrderService
from .order_views import OrderViewService

__all__ = [
    'FabricError',
    'ValidationError',
    'IneligibleFabricCutError',
    'NotFoundError',
    'ConflictError',
    'StorageError',
    'InvariantViolation',
    'CanonicalId',
    'canonicalize',
    'canonical_key',
    'next_available',
    'format_identifier',
    'qr_payload',
    'next_counter_value',
    'next_sequence',
    'FabricCutRegistry',
    'LookupResult',
    'Namespace',
    'EligibilityReason',
    'DuplicateResolver',
    'ResolveResult',
    'Remap',
    'ProcessingReconciler',
    'ReconcileResult',
    'ProductionTimelineAggregator',
    'ProductionTimeline',
    'TimelineEntry',
    'InspectionAggregator',
    'InspectionSummary',
    'FabricCutService',
    'FabricMovementService',
    'ProcessingOrderService',
    'OrderViewService',
]
