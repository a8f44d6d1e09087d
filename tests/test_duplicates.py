"""Tests for duplicate received-identifier detection and renumbering."""
from datetime import datetime
import logging

import pytest

from fabric_core.app.models import ProcessingOrder, AuditLog
from fabric_core.app.services.duplicates import (
    DuplicateResolver, REMAP_ACTION, flatten_received,
)
from fabric_core.app.services.errors import ConflictError


def _order(received, form="PO/2024/00017", by_delivery=None, order_id=1):
    return ProcessingOrder(
        id=order_id,
        order_form_number=form,
        processing_center="Sri Dyeing",
        fabric_cuts=[],
        received_fabric_cuts=received,
        received_fabric_cuts_by_delivery=by_delivery,
    )


def _ids(cuts):
    return [c["newFabricNumber"] for c in cuts]


def test_duplicate_within_one_order_is_reassigned(caplog):
    order = _order([{"newFabricNumber": "WR-01"}, {"newFabricNumber": "WR-01"}])

    with caplog.at_level(logging.WARNING):
        result = DuplicateResolver.resolve(order, set())

    assert _ids(result.cuts) == ["WR-01", "WR-02"]
    assert result.cuts[1]["reassignedFrom"] == "WR-01"
    assert len(result.remaps) == 1
    assert result.remaps[0].old_fabric_number == "WR-01"
    assert result.remaps[0].new_fabric_number == "WR-02"
    assert any("WR-01" in r.getMessage() and "WR-02" in r.getMessage() for r in caplog.records)


def test_no_collision_means_no_reassignment():
    order = _order([{"newFabricNumber": "WR-1"}, {"newFabricNumber": "WR/02"}])
    result = DuplicateResolver.resolve(order, {"WR-05"})
    assert _ids(result.cuts) == ["WR-01", "WR-02"]
    assert result.remaps == []
    assert not result.changed


def test_collision_with_other_orders_avoids_every_held_identifier():
    order = _order([{"newFabricNumber": "WR-01"}, {"newFabricNumber": "WR-02"}])
    result = DuplicateResolver.resolve(order, {"WR-01"})
    assert _ids(result.cuts) == ["WR-03", "WR-02"]
    assert [r.old_fabric_number for r in result.remaps] == ["WR-01"]


def test_later_unique_identifier_is_never_displaced():
    order = _order([
        {"newFabricNumber": "WR-01"},
        {"newFabricNumber": "WR-01"},
        {"newFabricNumber": "WR-02"},
    ])
    result = DuplicateResolver.resolve(order, set())
    assert _ids(result.cuts) == ["WR-01", "WR-03", "WR-02"]
    assert len(result.remaps) == 1


def test_output_identifiers_are_always_distinct():
    order = _order([{"newFabricNumber": "WR-01"}] * 5 + [{"newFabricNumber": "WR/1"}])
    result = DuplicateResolver.resolve(order, {"WR-02", "WR-04"})
    ids = _ids(result.cuts)
    assert len(ids) == len(set(ids))
    assert not set(ids) & {"WR-02", "WR-04"}


def test_mixed_prefixes_fall_back_to_order_form_number():
    order = _order([
        {"newFabricNumber": "A-01"},
        {"newFabricNumber": "B-01"},
        {"newFabricNumber": "A-01"},
    ])
    result = DuplicateResolver.resolve(order, set())
    assert _ids(result.cuts) == ["A-01", "B-01", "WR-00017-01"]


def test_ambiguous_prefix_without_form_number_is_a_conflict():
    order = _order(
        [{"newFabricNumber": "A-01"}, {"newFabricNumber": "B-01"}, {"newFabricNumber": "A-01"}],
        form=None,
    )
    with pytest.raises(ConflictError):
        DuplicateResolver.resolve(order, set())


def test_flatten_drops_legacy_repeats_of_the_same_cut():
    first = {"newFabricNumber": "WR-01", "originalFabricNumber": "W1-01"}
    order = _order(
        [dict(first)],
        by_delivery={"D1": [dict(first), {"newFabricNumber": "WR-02", "originalFabricNumber": "W1-02"}]},
    )
    flat = flatten_received(order)
    assert _ids(flat) == ["WR-01", "WR-02"]
    assert flat[1]["deliveryNumber"] == "D1"


def test_sweep_lets_older_order_keep_its_numbers(db, make_processing_order):
    older = make_processing_order(
        order_form_number="PO/2024/00001",
        received=[{"newFabricNumber": "WR-01", "originalFabricNumber": "W1-01"}],
        created_at=datetime(2024, 1, 1),
    )
    newer = make_processing_order(
        order_form_number="PO/2024/00002",
        received=[
            {"newFabricNumber": "WR-01", "originalFabricNumber": "W2-01"},
            {"newFabricNumber": "WR-02", "originalFabricNumber": "W2-02"},
        ],
        created_at=datetime(2024, 2, 1),
    )

    summary = DuplicateResolver.sweep(db, commit=True)

    db.refresh(older)
    db.refresh(newer)
    assert _ids(older.received_fabric_cuts) == ["WR-01"]
    assert _ids(newer.received_fabric_cuts) == ["WR-03", "WR-02"]
    assert len(summary.remaps) == 1

    audit = db.query(AuditLog).filter(AuditLog.action == REMAP_ACTION).all()
    assert len(audit) == 1
    assert audit[0].entity_id == newer.id
    assert audit[0].old_values["fabricNumber"] == "WR-01"
    assert audit[0].new_values["fabricNumber"] == "WR-03"

    assert DuplicateResolver.sweep(db, commit=True).remaps == []


def test_sweep_renumbering_never_lands_on_a_later_orders_number(db, make_processing_order):
    make_processing_order(
        received=[{"newFabricNumber": "WR-01"}, {"newFabricNumber": "WR-01"}],
        created_at=datetime(2024, 1, 1),
    )
    later = make_processing_order(
        received=[{"newFabricNumber": "WR-02"}],
        created_at=datetime(2024, 2, 1),
    )
    DuplicateResolver.sweep(db, commit=True)
    db.refresh(later)
    assert _ids(later.received_fabric_cuts) == ["WR-02"]


def test_peer_identifiers_exclude_the_order_itself(db, make_processing_order):
    own = make_processing_order(received=[{"newFabricNumber": "WR-01"}])
    make_processing_order(received=[{"newFabricNumber": "WR-07"}])
    assert DuplicateResolver.peer_identifiers(db, own.id) == {"WR-07"}
