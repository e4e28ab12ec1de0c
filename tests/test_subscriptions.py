"""구독 라이프사이클 테스트 — 인메모리 DB + 가짜 이메일 클라이언트."""

import asyncio
import string
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from app import repository
from app.errors import EmailAlreadyRegistered, InvalidEmail, TokenNotFound
from app.models import DeliveryStatus, Subscriber, SubscriptionToken
from app.subscriptions import (
    TOKEN_LENGTH,
    DeleteOutcome,
    VerifyOutcome,
    delete_subscriber,
    generate_subscription_token,
    parse_email,
    resend_pending_confirmations,
    subscribe,
    verify_subscription,
)
from conftest import FakeEmailClient, TestSession

BASE_URL = "https://blog.test"


async def _count(db, model) -> int:
    return await db.scalar(select(func.count()).select_from(model))


async def _subscribe(db, email_client, renderer, email="a@b.com", referer="twitter"):
    return await subscribe(db, email_client, renderer, email=email, referer=referer, base_url=BASE_URL)


# ── 토큰 / 이메일 ──


def test_generate_subscription_token_shape():
    token = generate_subscription_token()
    assert len(token) == TOKEN_LENGTH == 25
    assert set(token) <= set(string.ascii_letters + string.digits)


def test_generate_subscription_token_no_collisions():
    tokens = {generate_subscription_token() for _ in range(100_000)}
    assert len(tokens) == 100_000


def test_parse_email_preserves_case():
    assert parse_email("  Jane.Doe@Example.com ") == "Jane.Doe@Example.com"


@pytest.mark.parametrize("raw", ["", "not-an-email", "a@", "@b.com", "a b@c.com"])
def test_parse_email_rejects_invalid(raw):
    with pytest.raises(InvalidEmail):
        parse_email(raw)


# ── subscribe ──


@pytest.mark.asyncio
async def test_subscribe_creates_pending_subscriber_and_token(db_session, email_client, renderer):
    result = await _subscribe(db_session, email_client, renderer)

    subscriber = await db_session.get(Subscriber, result.subscriber_id)
    await db_session.refresh(subscriber)
    assert subscriber.email == "a@b.com"
    assert subscriber.referer == "twitter"
    assert subscriber.is_verified is False
    assert subscriber.confirmation_status == DeliveryStatus.SENT
    assert subscriber.confirmation_attempts == 1

    token_row = await db_session.get(SubscriptionToken, result.token)
    assert token_row.subscription_id == result.subscriber_id
    assert len(result.token) == 25
    assert result.confirmation_sent is True


@pytest.mark.asyncio
async def test_subscribe_sends_confirmation_email(db_session, email_client, renderer):
    result = await _subscribe(db_session, email_client, renderer)

    assert len(email_client.sent) == 1
    mail = email_client.sent[0]
    assert mail["to"] == "a@b.com"
    assert f"{BASE_URL}/subscribe/verify?token={result.token}" in mail["html"]
    assert f"{BASE_URL}/subscribe/delete?token={result.token}" in mail["html"]


@pytest.mark.asyncio
async def test_subscribe_duplicate_email_changes_nothing(db_session, email_client, renderer):
    await _subscribe(db_session, email_client, renderer)

    with pytest.raises(EmailAlreadyRegistered):
        await _subscribe(db_session, email_client, renderer, referer="newsletter")

    assert await _count(db_session, Subscriber) == 1
    assert await _count(db_session, SubscriptionToken) == 1
    assert len(email_client.sent) == 1


@pytest.mark.asyncio
async def test_subscribe_duplicate_of_verified_email(db_session, email_client, renderer):
    result = await _subscribe(db_session, email_client, renderer)
    await verify_subscription(db_session, result.token)

    with pytest.raises(EmailAlreadyRegistered):
        await _subscribe(db_session, email_client, renderer)

    assert await _count(db_session, SubscriptionToken) == 1


@pytest.mark.asyncio
async def test_subscribe_invalid_email_inserts_nothing(db_session, email_client, renderer):
    with pytest.raises(InvalidEmail):
        await _subscribe(db_session, email_client, renderer, email="nope")

    assert await _count(db_session, Subscriber) == 0
    assert email_client.sent == []


@pytest.mark.asyncio
async def test_subscribe_race_is_caught_by_unique_email(db_session, email_client, renderer):
    """두 요청이 모두 존재 확인을 통과해도 unique 제약이 중복을 막는다."""
    with patch("app.subscriptions.repository.email_exists", new_callable=AsyncMock, return_value=False):
        await _subscribe(db_session, email_client, renderer)
        with pytest.raises(EmailAlreadyRegistered):
            await _subscribe(db_session, email_client, renderer)

    assert await _count(db_session, Subscriber) == 1
    assert await _count(db_session, SubscriptionToken) == 1

    # 롤백 후에도 같은 세션을 계속 쓸 수 있다
    await _subscribe(db_session, email_client, renderer, email="c@d.com")
    assert await _count(db_session, Subscriber) == 2


@pytest.mark.asyncio
async def test_subscribe_token_collision_is_not_reported_as_duplicate(db_session, email_client, renderer):
    with patch("app.subscriptions.generate_subscription_token", return_value="x" * TOKEN_LENGTH):
        await _subscribe(db_session, email_client, renderer, email="a@b.com")
        db_session.expunge_all()
        with pytest.raises(IntegrityError):
            await _subscribe(db_session, email_client, renderer, email="c@d.com")

    assert await _count(db_session, Subscriber) == 1


@pytest.mark.asyncio
async def test_subscribe_delivery_failure_keeps_subscription(db_session, renderer):
    """발송 실패는 롤백하지 않고 상태만 기록한다."""
    failing = FakeEmailClient(fail=True)

    result = await _subscribe(db_session, failing, renderer)

    assert result.confirmation_sent is False
    subscriber = await db_session.get(Subscriber, result.subscriber_id)
    await db_session.refresh(subscriber)
    assert subscriber.confirmation_status == DeliveryStatus.FAILED
    assert subscriber.confirmation_attempts == 1
    assert await _count(db_session, SubscriptionToken) == 1


# ── 재발송 ──


@pytest.mark.asyncio
async def test_resend_pending_confirmations(db_session, email_client, renderer):
    result = await _subscribe(db_session, FakeEmailClient(fail=True), renderer)

    sent = await resend_pending_confirmations(db_session, email_client, renderer, base_url=BASE_URL, max_attempts=5)

    assert sent == 1
    assert email_client.sent[0]["to"] == "a@b.com"
    subscriber = await db_session.get(Subscriber, result.subscriber_id)
    await db_session.refresh(subscriber)
    assert subscriber.confirmation_status == DeliveryStatus.SENT
    assert subscriber.confirmation_attempts == 2

    # 이미 전달된 건은 다시 보내지 않는다
    assert await resend_pending_confirmations(db_session, email_client, renderer, base_url=BASE_URL, max_attempts=5) == 0


@pytest.mark.asyncio
async def test_resend_respects_max_attempts(db_session, email_client, renderer):
    await _subscribe(db_session, FakeEmailClient(fail=True), renderer)

    sent = await resend_pending_confirmations(db_session, email_client, renderer, base_url=BASE_URL, max_attempts=1)

    assert sent == 0
    assert email_client.sent == []


@pytest.mark.asyncio
async def test_resend_skips_verified_subscribers(db_session, email_client, renderer):
    result = await _subscribe(db_session, FakeEmailClient(fail=True), renderer)
    await verify_subscription(db_session, result.token)

    sent = await resend_pending_confirmations(db_session, email_client, renderer, base_url=BASE_URL, max_attempts=5)

    assert sent == 0


class BlockingEmailClient(FakeEmailClient):
    """release가 set될 때까지 발송을 붙잡아 둔다."""

    def __init__(self):
        super().__init__()
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def send_email(self, recipient: str, subject: str, html_body: str) -> None:
        self.started.set()
        await self.release.wait()
        await super().send_email(recipient, subject, html_body)


@pytest.mark.asyncio
async def test_resend_skips_subscriber_whose_first_send_is_in_flight(db_session, email_client, renderer):
    blocking = BlockingEmailClient()
    first_send = asyncio.create_task(_subscribe(db_session, blocking, renderer))
    await blocking.started.wait()

    async with TestSession() as other:
        resent = await resend_pending_confirmations(other, email_client, renderer, base_url=BASE_URL, max_attempts=5)

    blocking.release.set()
    result = await first_send

    assert resent == 0
    assert email_client.sent == []
    assert len(blocking.sent) == 1
    subscriber = await db_session.get(Subscriber, result.subscriber_id)
    await db_session.refresh(subscriber)
    assert subscriber.confirmation_status == DeliveryStatus.SENT
    assert subscriber.confirmation_attempts == 1


@pytest.mark.asyncio
async def test_resend_recovers_subscriber_stuck_in_pending(db_session, email_client, renderer):
    """첫 발송 결과가 기록되지 못한 구독자는 유예 시간이 지나면 재발송한다."""
    subscriber_id = uuid.uuid4()
    repository.add_subscriber(db_session, subscriber_id, "a@b.com", "home")
    repository.add_subscription_token(db_session, subscriber_id, "p" * TOKEN_LENGTH)
    await db_session.commit()

    grace = timedelta(minutes=10)
    fresh = await resend_pending_confirmations(
        db_session, email_client, renderer, base_url=BASE_URL, max_attempts=5, pending_grace=grace
    )
    assert fresh == 0

    await db_session.execute(
        update(Subscriber)
        .where(Subscriber.id == subscriber_id)
        .values(subscribed_at=datetime.now(timezone.utc) - timedelta(hours=1))
    )
    await db_session.commit()

    stale = await resend_pending_confirmations(
        db_session, email_client, renderer, base_url=BASE_URL, max_attempts=5, pending_grace=grace
    )
    assert stale == 1
    assert email_client.sent[0]["to"] == "a@b.com"


# ── verify ──


@pytest.mark.asyncio
async def test_subscribe_then_verify(db_session, email_client, renderer):
    result = await _subscribe(db_session, email_client, renderer, referer="twitter")

    outcome = await verify_subscription(db_session, result.token)

    assert outcome is VerifyOutcome.VERIFIED
    subscriber = await db_session.get(Subscriber, result.subscriber_id)
    await db_session.refresh(subscriber)
    assert subscriber.is_verified is True
    assert subscriber.referer == "twitter"


@pytest.mark.asyncio
async def test_verify_is_idempotent(db_session, email_client, renderer):
    result = await _subscribe(db_session, email_client, renderer)

    first = await verify_subscription(db_session, result.token)
    second = await verify_subscription(db_session, result.token)

    assert first is VerifyOutcome.VERIFIED
    assert second is VerifyOutcome.ALREADY_VERIFIED
    subscriber = await db_session.get(Subscriber, result.subscriber_id)
    await db_session.refresh(subscriber)
    assert subscriber.is_verified is True


@pytest.mark.asyncio
async def test_verify_unknown_token(db_session):
    with pytest.raises(TokenNotFound):
        await verify_subscription(db_session, "x" * 25)


# ── delete ──


@pytest.mark.asyncio
async def test_delete_subscriber_removes_rows(db_session, email_client, renderer):
    result = await _subscribe(db_session, email_client, renderer)

    outcome = await delete_subscriber(db_session, result.token)

    assert outcome is DeleteOutcome.DELETED
    assert await _count(db_session, Subscriber) == 0
    assert await _count(db_session, SubscriptionToken) == 0


@pytest.mark.asyncio
async def test_after_delete_token_is_not_found(db_session, email_client, renderer):
    result = await _subscribe(db_session, email_client, renderer)
    await delete_subscriber(db_session, result.token)

    assert await delete_subscriber(db_session, result.token) is DeleteOutcome.ALREADY_DELETED
    with pytest.raises(TokenNotFound):
        await verify_subscription(db_session, result.token)


@pytest.mark.asyncio
async def test_delete_only_touches_own_subscriber(db_session, email_client, renderer):
    keep = await _subscribe(db_session, email_client, renderer, email="keep@example.com")
    drop = await _subscribe(db_session, email_client, renderer, email="drop@example.com")

    await delete_subscriber(db_session, drop.token)

    assert await db_session.get(SubscriptionToken, keep.token) is not None
    assert await _count(db_session, Subscriber) == 1


@pytest.mark.asyncio
async def test_resubscribe_after_delete(db_session, email_client, renderer):
    first = await _subscribe(db_session, email_client, renderer)
    await delete_subscriber(db_session, first.token)

    second = await _subscribe(db_session, email_client, renderer)

    assert second.token != first.token
    assert await _count(db_session, Subscriber) == 1
