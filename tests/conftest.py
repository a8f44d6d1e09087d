from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fabric_core.app.db import Base, create_db_and_tables
from fabric_core.app.deps import get_db
from fabric_core.app.main import app
from fabric_core.app.models import (
    Order, Warp, Loom, FabricCut, ProcessingOrder, ProcessingReceipt, WarpStatus,
)


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_db_and_tables(bind=engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


# ------------------------------------------------------------------
# Record builders
# ------------------------------------------------------------------

@pytest.fixture()
def make_order(db):
    def _make(order_number="ORD-001", design_name="Paisley", design_number="D-17", quantity=500):
        order = Order(
            order_number=order_number,
            design_name=design_name,
            design_number=design_number,
            order_quantity=quantity,
        )
        db.add(order)
        db.commit()
        return order
    return _make


@pytest.fixture()
def make_warp(db):
    def _make(order=None, warp_number="W1", start=None, end=None, quantity=100,
              status=WarpStatus.ACTIVE, completion=None, loom=None):
        warp = Warp(
            warp_number=warp_number,
            order_id=order.id if order else None,
            loom_id=loom.id if loom else None,
            quantity=quantity,
            start_date=start,
            end_date=end,
            status=status,
            completion_date=completion,
        )
        db.add(warp)
        db.commit()
        return warp
    return _make


@pytest.fixture()
def make_loom(db):
    def _make(name="Loom 7", company="Ashok Textiles"):
        loom = Loom(loom_name=name, company_name=company)
        db.add(loom)
        db.commit()
        return loom
    return _make


@pytest.fixture()
def make_cut(db):
    def _make(fabric_number, warp=None, quantity=50.0, inspected=True, created_at=None, location=None):
        cut = FabricCut(
            fabric_number=fabric_number,
            warp_id=warp.id if warp else None,
            quantity=quantity,
            cut_number=int(fabric_number.replace("/", "-").rsplit("-", 1)[-1]),
            four_point_completed=inspected,
            four_point_date=datetime(2024, 1, 5) if inspected else None,
            location=location,
        )
        if created_at is not None:
            cut.created_at = created_at
        db.add(cut)
        db.commit()
        return cut
    return _make


@pytest.fixture()
def make_processing_order(db):
    def _make(order_form_number="PO/2024/00017", sent=(), received=None, by_delivery=None,
              order_details=None, created_at=None, center="Sri Dyeing"):
        order = ProcessingOrder(
            order_form_number=order_form_number,
            processing_center=center,
            fabric_cuts=[{"fabricNumber": n} for n in sent],
            received_fabric_cuts=received,
            received_fabric_cuts_by_delivery=by_delivery,
            order_details=order_details,
        )
        if created_at is not None:
            order.created_at = created_at
        db.add(order)
        db.commit()
        return order
    return _make


@pytest.fixture()
def make_receipt(db):
    def _make(fabric_number=None, new_fabric_number=None, received_location=None, **kwargs):
        receipt = ProcessingReceipt(
            fabric_number=fabric_number,
            new_fabric_number=new_fabric_number,
            received_location=received_location,
            **kwargs,
        )
        db.add(receipt)
        db.commit()
        return receipt
    return _make
