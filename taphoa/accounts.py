"""
User accounts: self-service registration/profile and admin user management.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from taphoa.auth import create_access_token, hash_password, verify_password
from taphoa.errors import AuthenticationFailed, BusinessRuleViolation, NotFound, ValidationFailed
from taphoa.models import USER_ROLES, User, utcnow

logger = logging.getLogger("taphoa.accounts")

MIN_PASSWORD_LENGTH = 6

DEMO_USERS = (
    {
        "email": "admin@taphoa.com",
        "password": "admin123",
        "full_name": "Admin",
        "phone": "0123456789",
        "address": None,
        "role": "admin",
    },
    {
        "email": "khach@gmail.com",
        "password": "123456",
        "full_name": "Nguyễn Văn A",
        "phone": "0987654321",
        "address": "123 Đường ABC, Quận 1, TP.HCM",
        "role": "customer",
    },
)


def _check_password(password: Optional[str]) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"Mật khẩu phải có ít nhất {MIN_PASSWORD_LENGTH} ký tự")


def issue_token(user: User) -> str:
    return create_access_token(user.id, user.email, user.role)


def get_user(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFound("Không tìm thấy người dùng")
    return user


def find_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()


def register(db: Session, email: str, password: str, full_name: Optional[str] = None,
             phone: Optional[str] = None, address: Optional[str] = None) -> User:
    _check_password(password)
    if find_by_email(db, email) is not None:
        raise BusinessRuleViolation("Email đã được sử dụng")
    user = User(
        email=email.strip().lower(),
        password=hash_password(password),
        full_name=full_name,
        phone=phone,
        address=address,
        role="customer",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("accounts: method=register user_id=%s result=success", user.id)
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    user = find_by_email(db, email)
    if user is None or not user.is_active or not verify_password(password, user.password):
        logger.info("accounts: method=authenticate result=rejected")
        raise AuthenticationFailed("Email hoặc mật khẩu không đúng")
    return user


def update_profile(db: Session, user_id: str, fields: Dict[str, Any]) -> User:
    user = get_user(db, user_id)
    for attr in ("full_name", "phone", "address"):
        if attr in fields:
            setattr(user, attr, fields[attr])
    user.updated_at = utcnow()
    db.commit()
    db.refresh(user)
    return user


def change_password(db: Session, user_id: str, current_password: str, new_password: str) -> None:
    user = get_user(db, user_id)
    if not verify_password(current_password or "", user.password):
        raise BusinessRuleViolation("Mật khẩu hiện tại không đúng")
    _check_password(new_password)
    user.password = hash_password(new_password)
    user.updated_at = utcnow()
    db.commit()
    logger.info("accounts: method=change_password user_id=%s result=success", user_id)


# ============================================================================
# Admin
# ============================================================================

def list_users(db: Session, page: int = 1, limit: int = 10, search: Optional[str] = None,
               role: Optional[str] = None) -> Tuple[List[User], int]:
    query = db.query(User)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(User.email.ilike(pattern), User.full_name.ilike(pattern)))
    if role:
        query = query.filter(User.role == role)
    total = query.count()
    rows = (
        query.order_by(User.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


def admin_update_user(db: Session, user_id: str, fields: Dict[str, Any]) -> User:
    user = get_user(db, user_id)
    if "role" in fields and fields["role"] not in USER_ROLES:
        raise ValidationFailed("Vai trò không hợp lệ")
    for attr in ("full_name", "phone", "address", "role", "is_active"):
        if attr in fields and fields[attr] is not None:
            setattr(user, attr, fields[attr])
    user.updated_at = utcnow()
    db.commit()
    db.refresh(user)
    logger.info("accounts: method=admin_update_user user_id=%s fields=%s result=success", user_id, sorted(fields))
    return user


def reset_password(db: Session, user_id: str, new_password: str) -> None:
    _check_password(new_password)
    user = get_user(db, user_id)
    user.password = hash_password(new_password)
    user.updated_at = utcnow()
    db.commit()
    logger.info("accounts: method=reset_password user_id=%s result=success", user_id)


def seed_demo_users(db: Session) -> List[User]:
    """Create the demo admin and customer accounts, or reset them to their demo state."""
    users = []
    for spec in DEMO_USERS:
        data = dict(spec)
        password = hash_password(data.pop("password"))
        user = find_by_email(db, data["email"])
        if user is None:
            user = User(email=data["email"])
            db.add(user)
        for attr, value in data.items():
            setattr(user, attr, value)
        user.password = password
        user.is_active = True
        users.append(user)
    db.commit()
    logger.info("accounts: method=seed_demo_users count=%s result=success", len(users))
    return users
