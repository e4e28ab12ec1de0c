"""페이지 렌더링 — 스프링의 ViewResolver + Thymeleaf 서비스 역할.

관심사 분리:
- templates/ → HTML 구조 (디자이너 영역)
- 페이지 데이터클래스 → 템플릿에 넘길 데이터 (뷰 모델)
- Renderer.render() → 페이지 종류별로 템플릿을 골라 렌더링 (match 한 곳에서 처리)

Renderer는 앱 시작 시 한 번 만들어 app.state에 넣고 Depends로 주입한다.
템플릿은 생성 시점에 전부 컴파일해 두고, 이후에는 읽기만 한다.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

import markdown
from fastapi import Request
from fastapi.responses import HTMLResponse
from jinja2 import Environment, FileSystemLoader, StrictUndefined, Template, TemplateError, TemplateNotFound, select_autoescape
from markdown.extensions import Extension

from app.content import FrontMatter
from app.models import Subscriber
from app.repository import SubscriberStats

logger = logging.getLogger(__name__)

FALLBACK_ERROR_HTML = "<h1>Something went wrong</h1>"


# ── 마크다운 ──


class _EscapeRawHtml(Extension):
    """본문 안의 raw HTML을 통과시키지 않고 이스케이프한다."""

    def extendMarkdown(self, md):
        md.preprocessors.deregister("html_block")
        md.inlinePatterns.deregister("html")


def markdown_to_html(text: str) -> str:
    return markdown.markdown(text, extensions=["fenced_code", "tables", _EscapeRawHtml()])


# ── 페이지 종류 ──


@dataclass(frozen=True)
class HomePage:
    posts: list[FrontMatter]


@dataclass(frozen=True)
class PostPage:
    meta_data: FrontMatter
    post: str  # 렌더링된 HTML 본문


@dataclass(frozen=True)
class SubscribeResponse:
    has_error: bool
    error_msg: str = ""


@dataclass(frozen=True)
class SubscribeVerify:
    already_verified: bool


@dataclass(frozen=True)
class SubscribeDelete:
    already_deleted: bool


@dataclass(frozen=True)
class LoginPage:
    has_error: bool = False
    is_success: bool = False


@dataclass(frozen=True)
class DashboardPage:
    user_email: str
    stats: SubscriberStats
    subscribers: list[Subscriber] = field(default_factory=list)


@dataclass(frozen=True)
class NotFoundPage:
    pass


@dataclass(frozen=True)
class InternalErrorPage:
    pass


Page = (
    HomePage
    | PostPage
    | SubscribeResponse
    | SubscribeVerify
    | SubscribeDelete
    | LoginPage
    | DashboardPage
    | NotFoundPage
    | InternalErrorPage
)


class Renderer:
    def __init__(self, template_dir: Path):
        env = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html", "sql"]),
            undefined=StrictUndefined,
        )
        compiled = {name: env.get_template(name) for name in env.list_templates(extensions=["html"])}
        self._templates = MappingProxyType(compiled)
        logger.info("템플릿 %d개 로드: %s", len(compiled), template_dir)

    def _template(self, name: str) -> Template:
        try:
            return self._templates[name]
        except KeyError:
            raise TemplateNotFound(name) from None

    def _render(self, name: str, **context) -> str:
        return self._template(name).render(**context)

    def render(self, page: Page) -> str:
        match page:
            case HomePage(posts=posts):
                return self._render("home/index.html", posts=posts)
            case PostPage(meta_data=meta_data, post=post):
                return self._render("post/post.html", meta_data=meta_data, post=post)
            case SubscribeResponse(has_error=has_error, error_msg=error_msg):
                return self._render("subscribe/_response.html", has_error=has_error, error_msg=error_msg)
            case SubscribeVerify(already_verified=already_verified):
                return self._render("subscribe/verify.html", already_verified=already_verified)
            case SubscribeDelete(already_deleted=already_deleted):
                return self._render("subscribe/delete.html", already_deleted=already_deleted)
            case LoginPage(has_error=has_error, is_success=is_success):
                return self._render("auth/login.html", has_error=has_error, is_success=is_success)
            case DashboardPage(user_email=user_email, stats=stats, subscribers=subscribers):
                return self._render("dashboard/index.html", user_email=user_email, stats=stats, subscribers=subscribers)
            case NotFoundPage():
                return self._render("errors/404.html")
            case InternalErrorPage():
                return self._render("errors/500.html")
        raise TypeError(f"unknown page: {page!r}")

    def render_email(self, name: str, **context) -> str:
        return self._render(name, **context)

    def response(self, page: Page, status_code: int = 200, headers: dict | None = None) -> HTMLResponse:
        return HTMLResponse(self.render(page), status_code=status_code, headers=headers)

    def error_response(self, page: NotFoundPage | InternalErrorPage, status_code: int) -> HTMLResponse:
        """에러 페이지. 에러 템플릿마저 깨지면 고정 문자열로 응답한다."""
        try:
            body = self.render(page)
        except TemplateError:
            logger.exception("에러 페이지 렌더링 실패")
            body = FALLBACK_ERROR_HTML
        return HTMLResponse(body, status_code=status_code)


def get_renderer(request: Request) -> Renderer:
    return request.app.state.renderer
