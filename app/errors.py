"""에러 분류 — 스프링의 커스텀 예외 계층 + @ControllerAdvice 매핑 대상.

- NotFoundError     → 404 페이지
- ValidationFailure → 구독 폼 인라인 메시지 (200)
- InternalFailure   → 500 페이지

원인은 로그에만 남기고 사용자에게는 일반 페이지만 보여준다.
"""


class BlogError(Exception):
    """애플리케이션 예외의 최상위 타입."""


# ── Not found ──


class NotFoundError(BlogError):
    pass


class PostNotFound(NotFoundError):
    def __init__(self, name: str):
        super().__init__(f"post not found: {name}")
        self.name = name


class TokenNotFound(NotFoundError):
    def __init__(self):
        super().__init__("subscription token not found")


# ── Validation ──


class ValidationFailure(BlogError):
    pass


class InvalidEmail(ValidationFailure):
    def __init__(self, email: str):
        super().__init__(f"{email!r} is not a valid email")
        self.email = email


class EmailAlreadyRegistered(ValidationFailure):
    def __init__(self, email: str):
        super().__init__(f"{email!r} is already registered")
        self.email = email


class OriginRejected(ValidationFailure):
    pass


# ── Internal ──


class InternalFailure(BlogError):
    pass


class ContentError(InternalFailure):
    """front matter 파싱/검증 실패."""


class EmailDeliveryError(InternalFailure):
    pass
