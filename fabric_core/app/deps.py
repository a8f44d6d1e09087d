from typing import Generator, NoReturn

from fastapi import HTTPException

from .db import SessionLocal
from .services.errors import FabricError


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def raise_http(exc: FabricError) -> NoReturn:
    """Re-raise a service error as the matching HTTP error"""
    detail = {"message": exc.message, **exc.details}
    raise HTTPException(status_code=exc.status_code, detail=detail) from exc
