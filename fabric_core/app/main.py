import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_cors_origins
from .db import create_db_and_tables
from .logging_setup import setup_logging
from .routers.fabric_cuts import router as fabric_cuts_router
from .routers.inspections import router as inspections_router
from .routers.fabric_movements import router as fabric_movements_router
from .routers.processing_orders import router as processing_orders_router
from .routers.processing_receipts import router as processing_receipts_router
from .routers.orders import router as orders_router

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    setup_logging()

    app = FastAPI(
        title="Fabric Production Tracking",
        description="Fabric cut identity, movement eligibility and processing receipt reconciliation",
        version="1.0.0"
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(fabric_cuts_router)
    app.include_router(inspections_router)
    app.include_router(fabric_movements_router)
    app.include_router(processing_orders_router)
    app.include_router(processing_receipts_router)
    app.include_router(orders_router)

    @app.on_event("startup")
    def on_startup():
        logger.info("Creating database tables at startup...")
        create_db_and_tables()
        logger.info("Database ready.")

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
