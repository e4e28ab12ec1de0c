"""관리자 로그인 / 로그아웃."""

import logging

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app import auth
from app.database import get_db
from app.renderer import LoginPage, Renderer, get_renderer

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/login", response_class=HTMLResponse)
async def login_page(renderer: Renderer = Depends(get_renderer)):
    return renderer.response(LoginPage())


@router.post("/login", response_class=HTMLResponse)
async def authenticate(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    db: AsyncSession = Depends(get_db),
    renderer: Renderer = Depends(get_renderer),
):
    user = await auth.authenticate(db, email, password)
    if user is None:
        logger.warning("로그인 실패: %s", email)
        return renderer.response(LoginPage(has_error=True))

    auth.login(request, user)
    # htmx 폼이므로 HX-Redirect 헤더로 대시보드 이동
    return renderer.response(LoginPage(is_success=True), headers={"HX-Redirect": "/dashboard"})


@router.get("/logout")
async def logout(request: Request):
    auth.logout(request)
    return RedirectResponse("/", status_code=303)
