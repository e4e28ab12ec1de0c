"""관리자 인증 — 비밀번호 해시, 관리자 계정 보장, 세션 기반 identity.

스프링 대응:
- PasswordHasher = PasswordEncoder (argon2, salt는 해시 문자열 안에 포함)
- request.session = HttpSession (서명된 쿠키에 저장, SessionMiddleware)
"""

import asyncio
import logging

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from app import repository
from app.models import User

logger = logging.getLogger(__name__)

SESSION_USER_KEY = "user_id"

_hasher = PasswordHasher()


def hash_password(password: str) -> str:
    return _hasher.hash(password)


def verify_password(hashed_password: str, password: str) -> bool:
    try:
        return _hasher.verify(hashed_password, password)
    except (VerificationError, InvalidHashError):
        return False


async def ensure_admin_exists(db: AsyncSession, email: str, password: str) -> None:
    """관리자 계정이 없으면 만든다 (앱 시작 시 1회)."""
    if await repository.user_exists(db, email):
        return
    hashed = await asyncio.to_thread(hash_password, password)
    repository.create_user(db, email, hashed)
    await db.commit()
    logger.info("관리자 계정 생성: %s", email)


async def authenticate(db: AsyncSession, email: str, password: str) -> User | None:
    """이메일/비밀번호가 맞으면 User, 아니면 None."""
    user = await repository.get_user_by_email(db, email.strip())
    if user is None:
        return None
    # argon2 검증은 CPU를 오래 쓰므로 스레드풀에서 실행
    if not await asyncio.to_thread(verify_password, user.hashed_password, password):
        return None
    return user


def login(request: Request, user: User) -> None:
    request.session[SESSION_USER_KEY] = str(user.id)


def logout(request: Request) -> None:
    request.session.clear()


def get_identity(request: Request) -> str | None:
    """세션 쿠키에 저장된 사용자 id. 로그인 안 했으면 None."""
    return request.session.get(SESSION_USER_KEY)
