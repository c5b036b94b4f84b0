"""
Coordinateur transactionnel (unit of work).

Un scope = une transaction SQL :
- toutes les lectures/écritures d'un commit/reverse passent par la même Session
- sortie normale -> COMMIT (tout devient visible d'un coup)
- n'importe quelle exception (y compris KeyboardInterrupt / annulation) -> ROLLBACK
- les conflits de stockage sont traduits en StorageConflict, et run() rejoue
  le scope complet un nombre borné de fois

Ordre de verrouillage (anti-deadlock) :
    1. la ligne ledger_entries visée (reverse uniquement)
    2. les lignes products, par id croissant (stock_store.lock_products)
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from backend.app.core.config import LEDGER_LOCK_TIMEOUT_MS, LEDGER_MAX_ATTEMPTS
from backend.services.errors import StorageConflict

log = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available
PG_RETRYABLE_SQLSTATES = {"40001", "40P01", "55P03"}
SQLITE_LOCK_MESSAGES = ("database is locked", "database table is locked")


def as_storage_conflict(exc: Exception) -> StorageConflict | None:
    """Retourne un StorageConflict si l'erreur SQL est un conflit rejouable, sinon None."""
    if isinstance(exc, StaleDataError):
        return StorageConflict("Concurrent update detected (stale version)")

    if isinstance(exc, IntegrityError):
        # course sur la clé d'idempotence : le replay trouvera l'entrée existante
        if "idempotency_key" in str(exc.orig):
            return StorageConflict("Concurrent commit with the same idempotency key")
        return None

    if isinstance(exc, OperationalError):
        orig = exc.orig
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if sqlstate in PG_RETRYABLE_SQLSTATES:
            return StorageConflict("Lock or serialization conflict", sqlstate=sqlstate)
        msg = str(orig).lower()
        if any(m in msg for m in SQLITE_LOCK_MESSAGES):
            return StorageConflict("Database is locked")
    return None


class TransactionCoordinator:
    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        max_attempts: int = LEDGER_MAX_ATTEMPTS,
        lock_timeout_ms: int = LEDGER_LOCK_TIMEOUT_MS,
        retry_backoff_s: float = 0.01,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.session_factory = session_factory
        self.max_attempts = max_attempts
        self.lock_timeout_ms = lock_timeout_ms
        self.retry_backoff_s = retry_backoff_s

    @contextmanager
    def scope(self) -> Iterator[Session]:
        session = self.session_factory()
        try:
            with session.begin():
                self._apply_lock_timeout(session)
                yield session
        except (StaleDataError, IntegrityError, OperationalError) as exc:
            conflict = as_storage_conflict(exc)
            if conflict is None:
                raise
            raise conflict from exc
        finally:
            session.close()

    def run(self, fn: Callable[..., T], *args, **kwargs) -> T:
        """
        Exécute fn(session, *args, **kwargs) dans un scope.

        StorageConflict -> rollback puis nouveau scope (lectures refaites à neuf).
        Les autres erreurs métier remontent immédiatement.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                with self.scope() as session:
                    return fn(session, *args, **kwargs)
            except StorageConflict as exc:
                if attempt >= self.max_attempts:
                    log.warning("%s: giving up after %d attempts (%s)", _name(fn), attempt, exc.message)
                    raise StorageConflict(
                        f"{exc.message} (gave up after {attempt} attempts)",
                        attempts=attempt,
                        **exc.context,
                    ) from exc
                log.info("%s: storage conflict, retry %d/%d", _name(fn), attempt + 1, self.max_attempts)
                if self.retry_backoff_s:
                    time.sleep(self.retry_backoff_s * attempt)

    def _apply_lock_timeout(self, session: Session) -> None:
        if not self.lock_timeout_ms:
            return
        if session.get_bind().dialect.name != "postgresql":
            return
        # SET LOCAL : limité à la transaction courante (pas de bind param possible)
        session.execute(text(f"SET LOCAL lock_timeout = {int(self.lock_timeout_ms)}"))


def _name(fn: Callable) -> str:
    return getattr(fn, "__name__", repr(fn))
