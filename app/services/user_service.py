from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.security import get_password_hash, verify_password
from app.db.models.user import User
from app.schemas.user import UserCreateRequest, UserUpdateRequest

USERNAME_TAKEN_DETAIL = "Username already exists"
USER_NOT_FOUND_DETAIL = "User not found"


def authenticate_user(db: Session, username: str, password: str) -> User | None:
    user = db.scalar(select(User).where(User.username == username))
    if not user or not verify_password(password, user.password_hash):
        return None
    return user


def list_users(db: Session, limit: int = 100, offset: int = 0) -> list[User]:
    return list(db.scalars(select(User).order_by(User.id).limit(limit).offset(offset)).all())


def create_user(db: Session, payload: UserCreateRequest) -> User:
    if db.scalar(select(User).where(User.username == payload.username)):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=USERNAME_TAKEN_DETAIL)

    user = User(
        username=payload.username,
        password_hash=get_password_hash(payload.password),
        role=payload.role.value,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=USERNAME_TAKEN_DETAIL) from None
    db.refresh(user)
    return user


def update_user(db: Session, user_id: int, payload: UserUpdateRequest) -> User:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=USER_NOT_FOUND_DETAIL)

    if payload.username is not None:
        user.username = payload.username
    if payload.role is not None:
        user.role = payload.role.value
    if payload.password is not None:
        user.password_hash = get_password_hash(payload.password)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=USERNAME_TAKEN_DETAIL) from None
    db.refresh(user)
    return user


def delete_user(db: Session, user_id: int) -> None:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=USER_NOT_FOUND_DETAIL)
    db.delete(user)
    db.commit()
