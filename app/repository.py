"""영속성 어댑터 — 스프링 Data JPA의 Repository 인터페이스 역할.

각 함수는 테이블 하나에 대한 단일 쿼리다. 커밋은 호출하는 서비스가
논리 단위로 묶어서 한다 (스프링의 @Transactional이 서비스 계층에 붙는 것과 동일).
SQLAlchemyError는 그대로 전파하고, "행 없음"은 None/False로 돌려준다.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, delete, exists, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import DeliveryStatus, Subscriber, SubscriptionToken, User


@dataclass(frozen=True)
class SubscriberStats:
    total: int
    verified: int

    @property
    def pending(self) -> int:
        return self.total - self.verified


# ── subscriptions ──


async def email_exists(db: AsyncSession, email: str) -> bool:
    return bool(await db.scalar(select(exists().where(Subscriber.email == email))))


def add_subscriber(db: AsyncSession, subscriber_id: uuid.UUID, email: str, referer: str) -> Subscriber:
    subscriber = Subscriber(id=subscriber_id, email=email, referer=referer, is_verified=False)
    db.add(subscriber)
    return subscriber


async def mark_verified(db: AsyncSession, subscriber_id: uuid.UUID) -> bool:
    """미인증 상태일 때만 인증으로 바꾼다. 실제로 바뀌었으면 True."""
    result = await db.execute(
        update(Subscriber)
        .where(Subscriber.id == subscriber_id, Subscriber.is_verified.is_(False))
        .values(is_verified=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def delete_subscriber_row(db: AsyncSession, subscriber_id: uuid.UUID) -> None:
    await db.execute(
        delete(Subscriber)
        .where(Subscriber.id == subscriber_id)
    )


async def record_confirmation_attempt(db: AsyncSession, subscriber_id: uuid.UUID, delivered: bool) -> None:
    status = DeliveryStatus.SENT if delivered else DeliveryStatus.FAILED
    await db.execute(
        update(Subscriber)
        .where(Subscriber.id == subscriber_id)
        .values(
            confirmation_status=status,
            confirmation_attempts=Subscriber.confirmation_attempts + 1,
        )
    )


async def list_undelivered_confirmations(
    db: AsyncSession, max_attempts: int, stale_before: datetime
) -> list[tuple[Subscriber, str]]:
    """확인 메일이 아직 전달되지 않은 미인증 구독자와 토큰.

    PENDING 행은 첫 발송이 진행 중일 수 있으므로 stale_before 이전에
    등록된 것만 고른다 (발송 도중 프로세스가 죽은 경우).
    """
    rows = await db.execute(
        select(Subscriber, SubscriptionToken.subscription_token)
        .join(SubscriptionToken, SubscriptionToken.subscription_id == Subscriber.id)
        .where(
            Subscriber.is_verified.is_(False),
            or_(
                Subscriber.confirmation_status == DeliveryStatus.FAILED,
                and_(
                    Subscriber.confirmation_status == DeliveryStatus.PENDING,
                    Subscriber.subscribed_at < stale_before,
                ),
            ),
            Subscriber.confirmation_attempts < max_attempts,
        )
        .order_by(Subscriber.subscribed_at)
    )
    return [(subscriber, token) for subscriber, token in rows.all()]


async def count_subscribers(db: AsyncSession) -> SubscriberStats:
    row = await db.execute(
        select(
            func.count(Subscriber.id),
            func.count(Subscriber.id).filter(Subscriber.is_verified.is_(True)),
        )
    )
    total, verified = row.one()
    return SubscriberStats(total=total or 0, verified=verified or 0)


async def list_recent_subscribers(db: AsyncSession, limit: int = 20) -> list[Subscriber]:
    rows = await db.execute(select(Subscriber).order_by(Subscriber.subscribed_at.desc()).limit(limit))
    return list(rows.scalars().all())


# ── subscription_token ──


def add_subscription_token(db: AsyncSession, subscriber_id: uuid.UUID, token: str) -> SubscriptionToken:
    row = SubscriptionToken(subscription_token=token, subscription_id=subscriber_id)
    db.add(row)
    return row


async def get_subscriber_id_by_token(db: AsyncSession, token: str) -> uuid.UUID | None:
    return await db.scalar(
        select(SubscriptionToken.subscription_id).where(SubscriptionToken.subscription_token == token)
    )


async def delete_subscription_token(db: AsyncSession, token: str) -> None:
    await db.execute(
        delete(SubscriptionToken)
        .where(SubscriptionToken.subscription_token == token)
    )


# ── user ──


async def user_exists(db: AsyncSession, email: str) -> bool:
    return bool(await db.scalar(select(exists().where(User.email == email))))


def create_user(db: AsyncSession, email: str, hashed_password: str) -> User:
    user = User(email=email, hashed_password=hashed_password)
    db.add(user)
    return user


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def get_user(db: AsyncSession, user_id: uuid.UUID) -> User | None:
    return await db.get(User, user_id)
