"""
Auth API: registration, login, profile and the demo account seed.

Endpoints:
    POST /api/auth/register
    POST /api/auth/login
    GET  /api/auth/me
    PUT  /api/auth/me
    PUT  /api/auth/change-password
    POST /api/auth/seed-demo        (only when ENABLE_DEMO_SEED)
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from taphoa import accounts, config
from taphoa.auth import CurrentUser, get_current_user
from taphoa.database import get_db
from taphoa.errors import NotFound
from taphoa.formatters import format_user
from taphoa.schemas import ChangePasswordRequest, LoginRequest, ProfileUpdateRequest, RegisterRequest

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", status_code=201)
def register(body: RegisterRequest, db: Session = Depends(get_db)):
    user = accounts.register(
        db,
        email=body.email,
        password=body.password,
        full_name=body.full_name,
        phone=body.phone,
        address=body.address,
    )
    return {"message": "Đăng ký thành công", "user": format_user(user), "token": accounts.issue_token(user)}


@router.post("/login")
def login(body: LoginRequest, db: Session = Depends(get_db)):
    user = accounts.authenticate(db, body.email, body.password)
    return {"message": "Đăng nhập thành công", "user": format_user(user), "token": accounts.issue_token(user)}


@router.get("/me")
def me(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    return format_user(accounts.get_user(db, user.id))


@router.put("/me")
def update_me(
    body: ProfileUpdateRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    updated = accounts.update_profile(db, user.id, body.model_dump(exclude_unset=True))
    return {"message": "Cập nhật thành công", "user": format_user(updated)}


@router.put("/change-password")
def change_password(
    body: ChangePasswordRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    accounts.change_password(db, user.id, body.current_password, body.new_password)
    return {"message": "Đổi mật khẩu thành công"}


@router.post("/seed-demo")
def seed_demo(db: Session = Depends(get_db)):
    if not config.ENABLE_DEMO_SEED:
        raise NotFound("Không tìm thấy API endpoint")
    users = accounts.seed_demo_users(db)
    return {"message": "Đã tạo tài khoản demo", "users": [format_user(u) for u in users]}
