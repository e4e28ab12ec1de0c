"""뉴스레터 구독 라이프사이클 — 스프링의 @Service 계층.

상태: Pending → Verified, Pending/Verified → Deleted. 그 외 전이는 없다.

- subscribe()            → 구독자 + 토큰을 한 트랜잭션으로 저장, 확인 메일 발송
- verify_subscription()  → 조건부 UPDATE 한 번 (WHERE is_verified = false)
- delete_subscriber()    → 토큰 + 구독자를 한 트랜잭션으로 삭제
- resend_pending_confirmations() → 전달 안 된 확인 메일 재발송 (스케줄러가 호출)

확인 메일 발송 실패는 구독을 롤백하지 않는다. 결과는 confirmation_status에
기록되고 스케줄러가 다시 보낸다.
"""

import enum
import logging
import secrets
import string
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app import repository
from app.email_client import EmailClient
from app.errors import EmailAlreadyRegistered, EmailDeliveryError, InvalidEmail, TokenNotFound
from app.renderer import Renderer

logger = logging.getLogger(__name__)

TOKEN_LENGTH = 25
TOKEN_ALPHABET = string.ascii_letters + string.digits
CONFIRMATION_SUBJECT = "Thanks for subscribing to my newsletter!"
CONFIRMATION_TEMPLATE = "emails/confirm_subscription.html"
DEFAULT_PENDING_GRACE = timedelta(minutes=10)


class VerifyOutcome(enum.Enum):
    VERIFIED = "verified"
    ALREADY_VERIFIED = "already_verified"


class DeleteOutcome(enum.Enum):
    DELETED = "deleted"
    ALREADY_DELETED = "already_deleted"


@dataclass(frozen=True)
class SubscriptionResult:
    subscriber_id: uuid.UUID
    token: str
    confirmation_sent: bool


def generate_subscription_token() -> str:
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))


def parse_email(raw: str) -> str:
    """문법만 검사하고 입력한 그대로(앞뒤 공백 제외) 돌려준다."""
    email = raw.strip()
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError as e:
        raise InvalidEmail(email) from e
    return email


# ── 확인 메일 ──


async def send_confirmation(
    db: AsyncSession,
    email_client: EmailClient,
    renderer: Renderer,
    *,
    subscriber_id: uuid.UUID,
    email: str,
    token: str,
    base_url: str,
) -> bool:
    """확인 메일을 보내고 결과를 구독자 행에 기록한다."""
    html_body = renderer.render_email(CONFIRMATION_TEMPLATE, app_base_url=base_url.rstrip("/"), token=token)
    try:
        await email_client.send_email(email, CONFIRMATION_SUBJECT, html_body)
        delivered = True
    except EmailDeliveryError as e:
        logger.warning("확인 메일 발송 실패 (%s), 재시도 대기: %s", subscriber_id, e)
        delivered = False

    await repository.record_confirmation_attempt(db, subscriber_id, delivered)
    await db.commit()
    return delivered


async def resend_pending_confirmations(
    db: AsyncSession,
    email_client: EmailClient,
    renderer: Renderer,
    *,
    base_url: str,
    max_attempts: int,
    pending_grace: timedelta = DEFAULT_PENDING_GRACE,
) -> int:
    """전달되지 않은 확인 메일을 다시 보낸다. 성공 건수를 반환.

    실패(FAILED) 건과, pending_grace보다 오래 PENDING에 머문 건만 대상이다.
    첫 발송이 아직 진행 중인 구독자는 건너뛴다.
    """
    stale_before = datetime.now(timezone.utc) - pending_grace
    pending = await repository.list_undelivered_confirmations(db, max_attempts, stale_before)
    if not pending:
        return 0

    sent = 0
    for subscriber, token in pending:
        if await send_confirmation(
            db, email_client, renderer,
            subscriber_id=subscriber.id, email=subscriber.email, token=token, base_url=base_url,
        ):
            sent += 1
    logger.info("확인 메일 재발송: 대상 %d, 성공 %d", len(pending), sent)
    return sent


# ── 라이프사이클 ──


def _is_duplicate_email(error: IntegrityError) -> bool:
    """위반된 제약이 subscriptions.email 의 unique 제약인지.

    PostgreSQL: duplicate key ... "ix_subscriptions_email"
    SQLite:     UNIQUE constraint failed: subscriptions.email
    """
    return "email" in str(error.orig).lower()


async def subscribe(
    db: AsyncSession,
    email_client: EmailClient,
    renderer: Renderer,
    *,
    email: str,
    referer: str,
    base_url: str,
) -> SubscriptionResult:
    address = parse_email(email)

    if await repository.email_exists(db, address):
        raise EmailAlreadyRegistered(address)

    subscriber_id = uuid.uuid4()
    token = generate_subscription_token()
    repository.add_subscriber(db, subscriber_id, address, referer)
    repository.add_subscription_token(db, subscriber_id, token)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        if _is_duplicate_email(e):
            # 동시 요청이 같은 이메일로 먼저 들어온 경우 (unique 제약)
            raise EmailAlreadyRegistered(address) from e
        logger.warning("구독 저장 중 제약 위반: %s", e.orig)
        raise
    logger.info("새 구독자 등록: %s", subscriber_id)

    confirmation_sent = await send_confirmation(
        db, email_client, renderer,
        subscriber_id=subscriber_id, email=address, token=token, base_url=base_url,
    )
    return SubscriptionResult(subscriber_id=subscriber_id, token=token, confirmation_sent=confirmation_sent)


async def verify_subscription(db: AsyncSession, token: str) -> VerifyOutcome:
    subscriber_id = await repository.get_subscriber_id_by_token(db, token)
    if subscriber_id is None:
        raise TokenNotFound()

    changed = await repository.mark_verified(db, subscriber_id)
    await db.commit()
    if changed:
        logger.info("구독 인증 완료: %s", subscriber_id)
        return VerifyOutcome.VERIFIED
    return VerifyOutcome.ALREADY_VERIFIED


async def delete_subscriber(db: AsyncSession, token: str) -> DeleteOutcome:
    subscriber_id = await repository.get_subscriber_id_by_token(db, token)
    if subscriber_id is None:
        return DeleteOutcome.ALREADY_DELETED

    await repository.delete_subscription_token(db, token)
    await repository.delete_subscriber_row(db, subscriber_id)
    await db.commit()
    logger.info("구독 해지: %s", subscriber_id)
    return DeleteOutcome.DELETED
