"""애플리케이션 설정 - pydantic-settings로 환경변수를 타입 안전하게 관리한다.

스프링의 @ConfigurationProperties + @Validated 와 동일한 역할:
- 환경변수 → 필드 자동 바인딩 (DATABASE_HOST → database_host)
- 기본값 없는 필드 = 필수값 → 앱 시작 시 ValidationError (스프링의 @NotNull)
- SecretStr = 로그/repr에 값이 찍히지 않는 비밀값 (스프링의 jasypt 마스킹과 유사)
"""

from pathlib import Path
from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    workers: int = 1
    base_url: str = "http://localhost:8000"
    # /subscribe 요청의 Origin/Referer 헤더가 일치해야 하는 단일 출처
    allowed_origin: str = "http://localhost:8000"
    environment: Literal["dev", "test", "prod"] = "dev"
    log_level: str = "INFO"

    # Content
    posts_dir: Path = BASE_DIR / "posts"
    templates_dir: Path = BASE_DIR / "templates"
    static_dir: Path = BASE_DIR / "static"

    # Database — database_url이 있으면 그대로 쓰고, 없으면 개별 필드로 조립
    database_url: str | None = None
    database_host: str = "localhost"
    database_port: int = 5432
    database_username: str = "postgres"
    database_password: SecretStr = SecretStr("postgres")
    database_name: str = "blog"
    database_ssl_mode: str = "prefer"
    database_pool_timeout: int = 10

    # Email (Postmark 호환 API)
    email_api_base_url: str = "https://api.postmarkapp.com"
    email_sender: str = "newsletter@localhost"
    email_auth_token: SecretStr
    email_timeout: float = 10.0
    confirmation_retry_minutes: int = 10
    confirmation_max_attempts: int = 5

    # Auth (필수 — 없으면 앱 시작 실패)
    session_secret_key: SecretStr
    session_cookie: str = "blog_session"
    session_max_age: int = 60 * 60 * 24 * 7
    admin_email: str
    admin_password: SecretStr

    @property
    def sqlalchemy_url(self) -> str:
        """SQLAlchemy async 엔진 URL."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{self.database_username}:"
            f"{self.database_password.get_secret_value()}@"
            f"{self.database_host}:{self.database_port}/{self.database_name}"
        )


# 싱글턴 인스턴스 — 스프링의 @Bean과 유사
settings = Settings()
