
from sqlalchemy.orm import Session
from typing import Optional
from app.db.model.user import User
from app.core.security import get_password_hash


def get_by_id(db: Session, user_id: int) -> Optional[User]:
    return db.get(User, user_id)


def get_by_username(db: Session, username: str) -> Optional[User]:
    return db.query(User).filter(User.username == username).first()


def create_user(db: Session, username: str, hashed_password: str,
                full_name: str | None = None, is_superuser: bool = False,
                is_active: bool = True) -> User:
    user = User(
        username=username,
        hashed_password=hashed_password,
        full_name=full_name,
        is_superuser=is_superuser,
        is_active=is_active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def ensure_user(db: Session, username: str, password: str,
                full_name: str | None = None, is_operator: bool = False) -> tuple[User, bool]:
    """Create the user if the username is free; return (user, created)."""
    existing = get_by_username(db, username)
    if existing:
        return existing, False

    user = create_user(
        db,
        username=username,
        hashed_password=get_password_hash(password),
        full_name=full_name,
        is_superuser=is_operator,
    )
    return user, True


def set_active(db: Session, user: User, is_active: bool) -> User:
    user.is_active = is_active
    db.commit()
    db.refresh(user)
    return user
