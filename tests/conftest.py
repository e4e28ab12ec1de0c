"""테스트 공유 Fixture — 스프링의 @TestConfiguration + @MockBean 역할.

conftest.py는 pytest가 자동으로 인식하는 파일로,
여기에 정의한 fixture는 같은 디렉토리의 모든 테스트에서 사용할 수 있다.
"""

import os

# 설정 싱글턴이 import 시점에 만들어지므로 app 모듈보다 먼저 환경변수를 채운다
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["EMAIL_AUTH_TOKEN"] = "test-token"
os.environ["SESSION_SECRET_KEY"] = "test-session-secret"
os.environ["ADMIN_EMAIL"] = "admin@example.com"
os.environ["ADMIN_PASSWORD"] = "admin-password"

from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import settings
from app.database import Base
from app.errors import EmailDeliveryError
from app.renderer import Renderer
import app.models  # noqa: F401  테이블 등록


# ── 테스트용 인메모리 DB ──
# 스프링의 @DataJpaTest가 H2 인메모리 DB를 쓰는 것과 동일

TEST_DB_URL = "sqlite+aiosqlite://"  # 인메모리 SQLite

engine = create_async_engine(TEST_DB_URL, echo=False)
TestSession = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session():
    """각 테스트마다 깨끗한 DB를 제공한다."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSession() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def anyio_backend():
    return "asyncio"


# ── 가짜 이메일 클라이언트 (@MockBean) ──


class FakeEmailClient:
    """보낸 메일을 기록만 한다. fail=True면 발송 실패를 흉내낸다."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[dict] = []

    async def send_email(self, recipient: str, subject: str, html_body: str) -> None:
        if self.fail:
            raise EmailDeliveryError("email API responded 500")
        self.sent.append({"to": recipient, "subject": subject, "html": html_body})


@pytest.fixture
def email_client():
    return FakeEmailClient()


@pytest.fixture
def renderer():
    return Renderer(settings.templates_dir)


# ── 게시글 폴더 ──


def write_post(root: Path, slug: str, *, order: int = 1, title: str | None = None, body: str = "# Hello") -> Path:
    post_dir = root / slug
    post_dir.mkdir(parents=True)
    (post_dir / "article.md").write_text(body, encoding="utf-8")
    (post_dir / "article_frontmatter.toml").write_text(
        f'title = "{title or slug.title()}"\n'
        f'file_name = "{slug}"\n'
        'description = "A test post"\n'
        'posted = "2024-01-15"\n'
        'thumbnail = "/static/images/test.png"\n'
        'tags = ["python", "testing"]\n'
        'author = "Tester"\n'
        "estimated_reading_time = 4\n"
        f"order = {order}\n",
        encoding="utf-8",
    )
    return post_dir


@pytest.fixture
def posts_dir(tmp_path):
    root = tmp_path / "posts"
    root.mkdir()
    return root
