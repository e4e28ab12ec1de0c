"""DB 엔진/세션 — 스프링의 DataSource + EntityManagerFactory 역할.

- engine = 커넥션 풀 (HikariCP)
- async_session = 세션 팩토리 (EntityManagerFactory)
- get_db = 요청 스코프 세션 주입 (@PersistenceContext)
"""

from collections.abc import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import settings


class Base(DeclarativeBase):
    pass


def _engine_options(url: str) -> dict:
    """PostgreSQL일 때만 풀 타임아웃과 SSL 모드를 건다 (SQLite 풀은 이 옵션을 받지 않는다)."""
    if not url.startswith("postgresql"):
        return {}
    return {
        "pool_timeout": settings.database_pool_timeout,
        "pool_pre_ping": True,
        "connect_args": {
            "ssl": settings.database_ssl_mode,
            "timeout": settings.database_pool_timeout,
        },
    }


engine = create_async_engine(settings.sqlalchemy_url, echo=False, **_engine_options(settings.sqlalchemy_url))
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


async def init_db() -> None:
    """테이블이 없으면 생성한다."""
    # 모델 등록을 위해 import (메타데이터에 테이블이 올라가야 create_all이 동작)
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
