"""관리자 대시보드 — 로그인한 사용자만 접근 가능."""

import uuid

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app import auth, repository
from app.database import get_db
from app.renderer import DashboardPage, Renderer, get_renderer

router = APIRouter()

RECENT_SUBSCRIBERS = 20


def _redirect_to_login() -> RedirectResponse:
    return RedirectResponse("/login", status_code=303)


@router.get("/dashboard", response_class=HTMLResponse)
async def dashboard_index(
    request: Request,
    db: AsyncSession = Depends(get_db),
    renderer: Renderer = Depends(get_renderer),
):
    identity = auth.get_identity(request)
    if identity is None:
        return _redirect_to_login()

    try:
        user = await repository.get_user(db, uuid.UUID(identity))
    except ValueError:
        user = None
    if user is None:
        # 쿠키는 유효하지만 사용자가 없는 경우
        auth.logout(request)
        return _redirect_to_login()

    stats = await repository.count_subscribers(db)
    subscribers = await repository.list_recent_subscribers(db, RECENT_SUBSCRIBERS)
    return renderer.response(DashboardPage(user_email=user.email, stats=stats, subscribers=subscribers))
