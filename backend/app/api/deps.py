from __future__ import annotations

from typing import Generator
from backend.app.db.session import SessionLocal
from backend.services.unit_of_work import TransactionCoordinator

_coordinator = TransactionCoordinator(SessionLocal)


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_coordinator() -> TransactionCoordinator:
    return _coordinator
