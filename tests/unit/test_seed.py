from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.core.security import verify_password
from app.db.base import Base
from app.db.models import User, UserRole
from app.db.seed import seed_default_users


def test_seed_creates_default_accounts_once():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    db = sessionmaker(bind=engine, autoflush=False, autocommit=False)()

    assert seed_default_users(db) == 2
    assert seed_default_users(db) == 0

    users = {u.username: u for u in db.scalars(select(User)).all()}
    admin = users[settings.bootstrap_admin_username]
    assert admin.role == UserRole.ADMIN.value
    assert users[settings.bootstrap_staff_username].role == UserRole.STAFF.value
    assert verify_password(settings.bootstrap_password, admin.password_hash)
    db.close()
