"""End-to-end tests through the HTTP API."""
from datetime import datetime

from fabric_core.app.models import FabricCut, ProcessingOrder, ProcessingReceipt


def _create_cuts(client, warp_id, *quantities):
    resp = client.post("/api/fabric-cuts", json={
        "warpId": warp_id,
        "fabricCuts": [{"quantity": q} for q in quantities],
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


def _inspect(client, cut_id, inspected=50, mistakes=0, kind="4-point"):
    resp = client.post("/api/inspections", json={
        "fabricCutId": cut_id,
        "inspectionType": kind,
        "inspectedQuantity": inspected,
        "mistakeQuantity": mistakes,
        "inspector": "Meena",
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_fabric_cut_creation_numbers_and_labels(client, make_order, make_warp, make_loom):
    warp = make_warp(order=make_order(), warp_number="W1", loom=make_loom())

    created = _create_cuts(client, warp.id, 40, 35.5)
    assert [c["fabricNumber"] for c in created] == ["W1-01", "W1-02"]
    assert created[0]["qrData"] == "W1/01"
    assert created[0]["totalCuts"] == 2
    assert created[0]["loomName"] == "Loom 7"
    assert created[1]["label"]["orderNumber"] == "ORD-001"

    more = _create_cuts(client, warp.id, 20)
    assert more[0]["fabricNumber"] == "W1-03"
    assert more[0]["cutNumber"] == 3
    assert more[0]["totalCuts"] == 1


def test_fabric_cut_creation_skips_claimed_identifier(client, make_warp, make_receipt):
    warp = make_warp(warp_number="W5")
    make_receipt(fabric_number="W5-01")
    created = _create_cuts(client, warp.id, 10)
    assert created[0]["fabricNumber"] == "W5-02"


def test_fabric_cut_creation_unknown_warp(client):
    resp = client.post("/api/fabric-cuts", json={"warpId": 404, "fabricCuts": [{"quantity": 1}]})
    assert resp.status_code == 404


def test_inspection_sets_flags_and_search_follows(client, make_warp):
    warp = make_warp(warp_number="W1")
    cut = _create_cuts(client, warp.id, 40)[0]

    before = client.get("/api/fabric-movements/search/W1/1")
    assert before.status_code == 200
    assert before.json()["isEligible"] is False
    assert before.json()["eligibility"]["reason"] == "not inspected"

    inspection = _inspect(client, cut["id"], inspected=40, mistakes=1.5)
    assert inspection["inspectionType"] == "four-point"
    assert inspection["fabricNumber"] == "W1-01"

    after = client.get("/api/fabric-movements/search/W1/1")
    assert after.json()["isEligible"] is True
    assert after.json()["fabricNumber"] == "W1-01"


def test_unknown_inspection_type_rejected(client, make_cut):
    cut = make_cut("W1-01", inspected=False)
    resp = client.post("/api/inspections", json={
        "fabricCutId": cut.id, "inspectionType": "ultrasound", "inspectedQuantity": 1,
    })
    assert resp.status_code == 400


def test_inspection_corrective_edit(client, make_cut):
    cut = make_cut("W1-01", inspected=False)
    created = _inspect(client, cut.id, inspected=40, mistakes=1)
    resp = client.put(f"/api/inspections/{created['id']}", json={"mistakeQuantity": 3, "remarks": "recount"})
    assert resp.status_code == 200
    assert resp.json()["mistakeQuantity"] == 3
    assert resp.json()["inspectedQuantity"] == 40
    assert resp.json()["remarks"] == "recount"


def test_search_unknown_cut_is_404(client):
    resp = client.get("/api/fabric-movements/search/NOPE-01")
    assert resp.status_code == 404
    assert resp.json()["detail"]["reason"] == "not found"


def test_registry_lookup_endpoint_always_answers(client):
    resp = client.get("/api/fabric-cuts/lookup/NOPE-01")
    assert resp.status_code == 200
    assert resp.json()["found"] is False


def test_inspection_arrival_only_once(client, make_cut):
    cut = make_cut("W1-01")
    first = client.patch(f"/api/fabric-cuts/{cut.id}/inspection-arrival")
    assert first.status_code == 200
    assert first.json()["inspectionArrival"] is not None
    second = client.patch(f"/api/fabric-cuts/{cut.id}/inspection-arrival")
    assert second.status_code == 400
    assert client.patch("/api/fabric-cuts/9999/inspection-arrival").status_code == 404


def test_movement_lifecycle(client, db, make_cut):
    cut = make_cut("W1-01")

    resp = client.post("/api/fabric-movements", json={
        "fabricCuts": ["W1/1"],
        "fromLocation": "Veerapandi",
        "toLocation": "Tiruppur",
        "movedBy": "Kumar",
    })
    assert resp.status_code == 201, resp.text
    movement = resp.json()
    assert movement["movementOrderNumber"] == "MV/0001"
    assert movement["status"] == "pending"
    assert movement["fabricCuts"][0]["fabricNumber"] == "W1-01"

    received = client.put(f"/api/fabric-movements/{movement['id']}/receive", json={"receivedBy": "Selvi"})
    assert received.status_code == 200
    assert received.json()["status"] == "received"
    assert received.json()["receivedLocation"] == "Tiruppur"

    db.expire_all()
    assert db.get(FabricCut, cut.id).location == "Tiruppur"

    again = client.put(f"/api/fabric-movements/{movement['id']}/receive", json={"receivedBy": "Selvi"})
    assert again.status_code == 400

    listed = client.get("/api/fabric-movements").json()
    assert [m["movementOrderNumber"] for m in listed] == ["MV/0001"]


def test_movement_numbers_increase(client, make_cut):
    make_cut("W1-01")
    make_cut("W1-02")
    numbers = []
    for cut in ("W1-01", "W1-02"):
        resp = client.post("/api/fabric-movements", json={
            "fabricCuts": [{"fabricNumber": cut}],
            "fromLocation": "A", "toLocation": "B", "movedBy": "Kumar",
        })
        numbers.append(resp.json()["movementOrderNumber"])
    assert numbers == ["MV/0001", "MV/0002"]


def test_movement_rejects_ineligible_cuts_with_reasons(client, db, make_cut, make_processing_order):
    make_cut("W1-01")
    make_cut("W1-02", inspected=False)
    make_cut("W1-03")
    make_processing_order(sent=["W1-03"])

    resp = client.post("/api/fabric-movements", json={
        "fabricCuts": ["W1-01", "W1-02", "W1-03", "W9-09"],
        "fromLocation": "Veerapandi",
        "toLocation": "Tiruppur",
        "movedBy": "Kumar",
    })

    assert resp.status_code == 400
    reasons = {f["fabricNumber"]: f["reason"] for f in resp.json()["detail"]["failures"]}
    assert reasons == {
        "W1-02": "not inspected",
        "W1-03": "committed to processing",
        "W9-09": "not found",
    }
    assert client.get("/api/fabric-movements").json() == []


def test_movement_requires_mover(client, make_cut):
    make_cut("W1-01")
    resp = client.post("/api/fabric-movements", json={
        "fabricCuts": ["W1-01"], "fromLocation": "A", "toLocation": "B", "movedBy": " ",
    })
    assert resp.status_code == 400


def test_processing_round_trip(client, db, make_order, make_warp, make_cut):
    warp = make_warp(order=make_order(), warp_number="W1")
    make_cut("W1-01", warp=warp, quantity=40)
    make_cut("W1-02", warp=warp, quantity=45)

    created = client.post("/api/processing-orders", json={
        "orderFormNumber": "PO/2024/00017",
        "processingCenter": "Sri Dyeing",
        "fabricCuts": [{"fabricNumber": "W1/1"}, {"fabricNumber": "W1-02"}],
        "orderDetails": {"orderNumber": "ORD-001", "designName": "Paisley"},
    })
    assert created.status_code == 201, created.text
    order = created.json()
    assert [c["fabricNumber"] for c in order["fabricCuts"]] == ["W1-01", "W1-02"]
    assert order["totalQuantity"] == 85

    check = client.get("/api/processing-orders/check-fabric-cut/W1/01").json()
    assert check["isUsed"] is True
    assert check["orderFormNumber"] == "PO/2024/00017"

    search = client.get("/api/fabric-movements/search/W1-01").json()
    assert search["isEligible"] is False
    assert search["eligibility"]["reason"] == "committed to processing"

    again = client.post("/api/processing-orders", json={
        "orderFormNumber": "PO/2024/00018",
        "processingCenter": "Sri Dyeing",
        "fabricCuts": [{"fabricNumber": "W1-01"}],
    })
    assert again.status_code == 400

    updated = client.put(f"/api/processing-orders/{order['id']}", json={
        "receivedFabricCuts": [
            {"newFabricNumber": "WR-01", "originalFabricNumber": "W1-01", "quantity": 39},
            {"newFabricNumber": "WR-01", "originalFabricNumber": "W1-02", "quantity": 44,
             "receivedAt": "2024-03-01T08:00:00Z"},
        ],
    })
    assert updated.status_code == 200, updated.text
    body = updated.json()
    assert [c["newFabricNumber"] for c in body["order"]["receivedFabricCuts"]] == ["WR-01", "WR-02"]
    assert body["reassignments"][0]["oldFabricNumber"] == "WR-01"
    assert body["reassignments"][0]["newFabricNumber"] == "WR-02"
    assert body["sync"]["addedCount"] == 2

    receipts = client.get("/api/processing-receipts").json()
    assert sorted(r["fabricNumber"] for r in receipts) == ["WR-01", "WR-02"]
    assert {r["orderNumber"] for r in receipts} == {"ORD-001"}

    remaps = client.get("/api/processing-receipts/remaps").json()
    assert [(r["oldFabricNumber"], r["newFabricNumber"]) for r in remaps] == [("WR-01", "WR-02")]

    processed = client.get("/api/fabric-movements/search/WR/2").json()
    assert processed["isEligible"] is True
    assert processed["isProcessingReceived"] is True

    movement = client.post("/api/fabric-movements", json={
        "fabricCuts": ["WR-02"], "fromLocation": "Veerapandi", "toLocation": "Godown 2", "movedBy": "Kumar",
    }).json()
    client.put(f"/api/fabric-movements/{movement['id']}/receive", json={"receivedBy": "Selvi"})

    db.expire_all()
    receipt = db.query(ProcessingReceipt).filter(ProcessingReceipt.fabric_number == "WR-02").one()
    assert receipt.received_location == "Godown 2"
    stored = db.get(ProcessingOrder, order["id"])
    assert {c["newFabricNumber"]: c.get("location") for c in stored.received_fabric_cuts}["WR-02"] == "Godown 2"

    sync = client.post("/api/processing-receipts/sync").json()
    assert (sync["addedCount"], sync["removedCount"], sync["totalCurrent"]) == (0, 0, 2)

    deleted = client.delete(f"/api/processing-orders/{order['id']}")
    assert deleted.status_code == 200
    assert deleted.json()["sync"]["removedCount"] == 2
    assert client.get("/api/processing-receipts").json() == []
    assert client.get("/api/processing-orders/check-fabric-cut/W1-01").json()["isUsed"] is False


def test_update_avoids_identifiers_held_by_other_orders(client, make_processing_order):
    make_processing_order(order_form_number="PO/2024/00001", received=[{"newFabricNumber": "WR-01"}],
                          created_at=datetime(2024, 1, 1))
    target = make_processing_order(order_form_number="PO/2024/00002", received=[])

    resp = client.put(f"/api/processing-orders/{target.id}", json={
        "receivedFabricCuts": [{"newFabricNumber": "WR-01"}],
    })

    assert resp.status_code == 200
    assert resp.json()["order"]["receivedFabricCuts"][0]["newFabricNumber"] == "WR-02"
    assert resp.json()["sync"]["totalCurrent"] == 2


def test_update_without_received_cuts_does_not_sync(client, make_processing_order):
    order = make_processing_order()
    resp = client.put(f"/api/processing-orders/{order.id}", json={"vehicleNumber": "TN 38 AB 1234"})
    assert resp.status_code == 200
    assert "sync" not in resp.json()
    assert resp.json()["order"]["vehicleNumber"] == "TN 38 AB 1234"


def test_processing_order_validation_and_missing(client):
    resp = client.post("/api/processing-orders", json={
        "orderFormNumber": "PO/1", "processingCenter": "X", "fabricCuts": [],
    })
    assert resp.status_code == 400
    assert client.put("/api/processing-orders/999", json={"status": "closed"}).status_code == 404
    assert client.delete("/api/processing-orders/999").status_code == 404


def test_cleanup_duplicates_endpoint(client, make_processing_order):
    make_processing_order(received=[{"newFabricNumber": "WR-01"}], created_at=datetime(2024, 1, 1))
    make_processing_order(received=[{"newFabricNumber": "WR-01"}], created_at=datetime(2024, 1, 2))

    first = client.post("/api/processing-orders/cleanup-duplicates").json()
    assert len(first["reassignments"]) == 1
    assert first["totalCurrent"] == 2

    second = client.post("/api/processing-orders/cleanup-duplicates").json()
    assert second["reassignments"] == []
    assert (second["addedCount"], second["removedCount"]) == (0, 0)


def test_order_views(client, make_order, make_warp, make_cut):
    order = make_order()
    warp = make_warp(order=order, warp_number="W1",
                     start=datetime(2024, 1, 1), end=datetime(2024, 1, 3))
    make_warp(order=order, warp_number="W2")
    cut = make_cut("W1-01", warp=warp, quantity=30, inspected=False, created_at=datetime(2024, 1, 1, 10))
    make_cut("W1-02", warp=warp, quantity=40, inspected=False, created_at=datetime(2024, 1, 3, 10))
    _inspect(client, cut.id, inspected=30, mistakes=2)

    timeline = client.get(f"/api/orders/{order.id}/production-timeline", params={"today": "2024-01-02"}).json()
    assert timeline["dateAxis"] == ["2024-01-01", "2024-01-02", "2024-01-03"]
    assert timeline["dailyTotals"] == {"2024-01-01": 30, "2024-01-02": 0, "2024-01-03": 40}
    assert [w["warpNumber"] for w in timeline["perWarpDaily"]] == ["W1", "W2"]

    summary = client.get(f"/api/orders/{order.id}/inspection-summary").json()
    assert [w["warpNumber"] for w in summary["perWarp"]] == ["W1", "W2"]
    assert summary["orderTotals"]["ok"] == 28

    assert client.get("/api/orders/999/production-timeline").status_code == 404
    assert client.get("/api/orders/999/inspection-summary").status_code == 404


def test_received_number_already_in_main_yard_is_rejected(client, db, make_cut, make_processing_order):
    make_cut("W1-01")
    order = make_processing_order(received=[])

    resp = client.put(f"/api/processing-orders/{order.id}", json={
        "receivedFabricCuts": [{"newFabricNumber": "W1/1"}],
    })

    assert resp.status_code == 409
    assert resp.json()["detail"]["fabricNumbers"] == ["W1-01"]
    db.expire_all()
    assert db.get(ProcessingOrder, order.id).received_fabric_cuts == []
    assert client.get("/api/processing-receipts").json() == []
    search = client.get("/api/fabric-movements/search/W1-01")
    assert search.status_code == 200
    assert search.json()["namespace"] == "main_yard"


def test_corrected_received_quantity_reaches_search(client, make_processing_order):
    order = make_processing_order(received=[])
    client.put(f"/api/processing-orders/{order.id}", json={
        "receivedFabricCuts": [{"newFabricNumber": "WR-01", "quantity": 10}],
    })

    resp = client.put(f"/api/processing-orders/{order.id}", json={
        "receivedFabricCuts": [{"newFabricNumber": "WR-01", "quantity": 12.5}],
    })

    assert resp.json()["sync"]["updatedCount"] == 1
    search = client.get("/api/fabric-movements/search/WR-01").json()
    assert search["context"]["quantity"] == 12.5


def test_receiving_moves_cut_held_in_legacy_delivery_map(client, db, make_processing_order, make_receipt):
    order = make_processing_order(
        received=None,
        by_delivery={"DC-1": [{"newFabricNumber": "WR-00017-01", "originalFabricNumber": "W1-01"}]},
    )
    make_receipt(fabric_number="WR-00017-01", processing_order_id=order.id)

    movement = client.post("/api/fabric-movements", json={
        "fabricCuts": ["WR-00017-01"], "fromLocation": "Veerapandi", "toLocation": "Godown 2", "movedBy": "Kumar",
    }).json()
    client.put(f"/api/fabric-movements/{movement['id']}/receive", json={"receivedBy": "Selvi"})

    db.expire_all()
    stored = db.get(ProcessingOrder, order.id)
    assert stored.received_fabric_cuts_by_delivery["DC-1"][0]["location"] == "Godown 2"

    client.post("/api/processing-receipts/sync")
    db.expire_all()
    receipt = db.query(ProcessingReceipt).one()
    assert receipt.received_location == "Godown 2"
