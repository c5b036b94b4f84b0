from __future__ import annotations

import hashlib
import logging
import os

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.db.models.models_v1 import Category, User
from backend.app.db.models.core_types import Role

log = logging.getLogger(__name__)


def run_seed(db: Session | None = None) -> tuple[int, int]:
    """
    Données minimales pour démarrer : catégorie "General" + utilisateur ADMIN.

    Idempotent (rejouable). Retourne (category_id, user_id).
    """
    own_session = db is None
    if own_session:
        from backend.app.db.session import SessionLocal

        db = SessionLocal()
    try:
        category = db.scalar(select(Category).where(Category.name == "General"))
        if not category:
            category = Category(name="General", description="Default category")
            db.add(category)
            db.commit()

        # Auth hors périmètre ici : hash simple, remplacé par le service d'auth
        user = db.scalar(select(User).where(User.username == "admin"))
        if not user:
            password = os.getenv("SEED_ADMIN_PASSWORD", "admin")
            user = User(
                username="admin",
                password_hash=hashlib.sha256(password.encode("utf-8")).hexdigest(),
                role=Role.admin,
                active=True,
            )
            db.add(user)
            db.commit()

        log.info("SEED OK: category=%s, user=%s", category.name, user.username)
        return int(category.id), int(user.id)
    finally:
        if own_session:
            db.close()


if __name__ == "__main__":
    from backend.app.core.logging import configure_logging

    configure_logging()
    run_seed()
