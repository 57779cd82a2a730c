"""Create the default admin and staff accounts on an empty database.

Usage: python -m app.db.seed
"""

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logging import setup_logging
from app.core.security import get_password_hash
from app.db.models.user import User, UserRole
from app.db.session import SessionLocal

logger = logging.getLogger(__name__)


def seed_default_users(db: Session) -> int:
    defaults = [
        (settings.bootstrap_admin_username, UserRole.ADMIN),
        (settings.bootstrap_staff_username, UserRole.STAFF),
    ]
    created = 0
    for username, role in defaults:
        if db.scalar(select(User).where(User.username == username)):
            continue
        db.add(
            User(
                username=username,
                password_hash=get_password_hash(settings.bootstrap_password),
                role=role.value,
            )
        )
        created += 1
    db.commit()
    return created


def main() -> None:
    setup_logging()
    db = SessionLocal()
    try:
        created = seed_default_users(db)
    finally:
        db.close()
    logger.info("seed_completed users_created=%s", created)


if __name__ == "__main__":
    main()
