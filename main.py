"""Blog - 마크다운 블로그 + 더블 옵트인 뉴스레터."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.staticfiles import StaticFiles
from jinja2 import TemplateError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from app.auth import ensure_admin_exists
from app.config import settings
from app.database import async_session, engine, init_db
from app.email_client import EmailClient
from app.errors import InternalFailure, NotFoundError
from app.logging_config import setup_logging
from app.renderer import InternalErrorPage, NotFoundPage, Renderer
from app.routes.auth import router as auth_router
from app.routes.blog import router as blog_router
from app.routes.dashboard import router as dashboard_router
from app.routes.site import router as site_router
from app.routes.subscribe import router as subscribe_router
from app.scheduler import start_scheduler

setup_logging(settings.log_level)
logger = logging.getLogger("blog")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    async with async_session() as db:
        await ensure_admin_exists(db, settings.admin_email, settings.admin_password.get_secret_value())
    scheduler = start_scheduler(app.state.email_client, app.state.renderer)
    yield
    scheduler.shutdown()
    await engine.dispose()


app = FastAPI(title="Blog", lifespan=lifespan)

# 템플릿 레지스트리와 이메일 클라이언트는 여기서 한 번 만들고 Depends로 주입한다
app.state.renderer = Renderer(settings.templates_dir)
app.state.email_client = EmailClient(
    api_base_url=settings.email_api_base_url,
    sender=settings.email_sender,
    auth_token=settings.email_auth_token.get_secret_value(),
    timeout=settings.email_timeout,
)

app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret_key.get_secret_value(),
    session_cookie=settings.session_cookie,
    max_age=settings.session_max_age,
    https_only=settings.environment == "prod",
)

app.mount("/static", StaticFiles(directory=settings.static_dir), name="static")

app.include_router(site_router)
app.include_router(blog_router)
app.include_router(subscribe_router)
app.include_router(auth_router)
app.include_router(dashboard_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info("%s %s → %d (%.1fms)", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


# ── 예외 → 일반 에러 페이지 (스프링의 @ControllerAdvice) ──


def _renderer(request: Request) -> Renderer:
    return request.app.state.renderer


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    logger.info("not found (%s): %s", request.url.path, exc)
    return _renderer(request).error_response(NotFoundPage(), 404)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    page = NotFoundPage() if exc.status_code < 500 else InternalErrorPage()
    return _renderer(request).error_response(page, exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """쿼리/폼 검증 실패 시 원인은 숨기고 일반 페이지를 반환한다."""
    logger.info("request validation failed (%s): %s", request.url.path, exc.errors())
    return _renderer(request).error_response(NotFoundPage(), 422)


async def internal_error_handler(request: Request, exc: Exception):
    logger.error("internal failure (%s)", request.url.path, exc_info=exc)
    return _renderer(request).error_response(InternalErrorPage(), 500)


for _exc_type in (InternalFailure, SQLAlchemyError, TemplateError, OSError, Exception):
    app.add_exception_handler(_exc_type, internal_error_handler)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        workers=settings.workers,
        reload=settings.environment == "dev" and settings.workers == 1,
    )
