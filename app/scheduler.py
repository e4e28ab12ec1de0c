"""스케줄러 - 전달되지 않은 구독 확인 메일을 주기적으로 재발송한다."""

import logging
from datetime import timedelta

from app.config import settings
from app.database import async_session
from app.email_client import EmailClient
from app.renderer import Renderer
from app.subscriptions import resend_pending_confirmations

logger = logging.getLogger(__name__)


async def run_confirmation_retry(email_client: EmailClient, renderer: Renderer) -> int:
    """재발송 한 사이클을 실행한다."""
    async with async_session() as db:
        return await resend_pending_confirmations(
            db,
            email_client,
            renderer,
            base_url=settings.base_url,
            max_attempts=settings.confirmation_max_attempts,
            pending_grace=timedelta(minutes=settings.confirmation_retry_minutes),
        )


def start_scheduler(email_client: EmailClient, renderer: Renderer):
    """APScheduler로 확인 메일 재발송을 스케줄링한다."""
    from apscheduler.schedulers.asyncio import AsyncIOScheduler

    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        run_confirmation_retry,
        trigger="interval",
        minutes=settings.confirmation_retry_minutes,
        args=[email_client, renderer],
        id="confirmation_retry",
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("스케줄러 시작: %d분마다 확인 메일 재발송", settings.confirmation_retry_minutes)
    return scheduler
