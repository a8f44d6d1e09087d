"""
Error taxonomy shared by every service.

Routers translate these into HTTP responses; see deps.raise_http.
"""

import logging
from contextlib import contextmanager
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class FabricError(Exception):
    """Base exception for fabric tracking operations"""
    status_code = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(FabricError):
    """Missing or invalid field, rejected before any write"""
    status_code = 400


class IneligibleFabricCutError(ValidationError):
    """One or more cuts failed their eligibility check"""

    def __init__(self, message: str, failures: List[dict]):
        super().__init__(message, {"failures": failures})
        self.failures = failures


class NotFoundError(FabricError):
    """Referenced order, warp, cut or movement does not exist"""
    status_code = 404


class ConflictError(FabricError):
    """Identifier collision that cannot be resolved automatically"""
    status_code = 409


class StorageError(FabricError):
    """Transient storage failure. Safe to retry"""
    status_code = 503


class InvariantViolation(FabricError):
    """Stored state contradicts a global invariant and needs manual repair"""
    status_code = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, details)
        logger.error("INVARIANT VIOLATION: %s %s", message, self.details)


@contextmanager
def storage_errors(db=None, action: str = "storage operation"):
    """Roll back and re-raise SQLAlchemy failures as StorageError"""
    try:
        yield
    except SQLAlchemyError as e:
        if db is not None:
            db.rollback()
        logger.exception("%s failed", action)
        raise StorageError(f"{action} failed: {e.__class__.__name__}") from e
