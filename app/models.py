import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryStatus(str, enum.Enum):
    """확인 메일 발송 상태."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class Subscriber(Base):
    __tablename__ = "subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    referer: Mapped[str] = mapped_column(Text, default="")
    subscribed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    confirmation_status: Mapped[DeliveryStatus] = mapped_column(
        Enum(DeliveryStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        default=DeliveryStatus.PENDING,
    )
    confirmation_attempts: Mapped[int] = mapped_column(Integer, default=0)


class SubscriptionToken(Base):
    __tablename__ = "subscription_token"

    subscription_token: Mapped[str] = mapped_column(String(25), primary_key=True)
    subscription_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("subscriptions.id", ondelete="CASCADE"), index=True
    )


class User(Base):
    __tablename__ = "user"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    hashed_password: Mapped[str] = mapped_column(Text)
