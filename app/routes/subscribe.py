"""뉴스레터 구독 / 인증 / 해지.

스프링 대응:
- Form(...) = @ModelAttribute (폼 바인딩)
- Depends(get_email_client) = 생성자 주입된 @Bean
- 구독 폼의 검증 실패는 예외 핸들러가 아니라 여기서 잡아 인라인 메시지로 돌려준다 (200)
"""

import logging

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app import subscriptions
from app.config import settings
from app.database import get_db
from app.email_client import EmailClient, get_email_client
from app.errors import EmailAlreadyRegistered, OriginRejected, TokenNotFound, ValidationFailure
from app.renderer import Renderer, SubscribeDelete, SubscribeResponse, SubscribeVerify, get_renderer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscribe")

GENERIC_ERROR_MSG = "Could not subscribe you, please try again"
ALREADY_REGISTERED_MSG = "That email is already registered"
DELIVERY_DELAYED_MSG = "You're on the list, but the confirmation email is delayed. It will arrive shortly."


def check_request_origin(request: Request, allowed_origin: str) -> None:
    """Origin은 정확히 일치, Referer는 허용 출처를 포함해야 한다."""
    origin = request.headers.get("origin")
    referer = request.headers.get("referer")
    if origin != allowed_origin:
        raise OriginRejected(f"origin not allowed: {origin!r}")
    if referer is None or allowed_origin not in referer:
        raise OriginRejected(f"referer not allowed: {referer!r}")


@router.post("", response_class=HTMLResponse)
async def subscribe_to_newsletter(
    request: Request,
    email: str = Form(""),
    referer: str = Form(""),
    db: AsyncSession = Depends(get_db),
    renderer: Renderer = Depends(get_renderer),
    email_client: EmailClient = Depends(get_email_client),
):
    try:
        check_request_origin(request, settings.allowed_origin)
        result = await subscriptions.subscribe(
            db, email_client, renderer,
            email=email, referer=referer, base_url=settings.base_url,
        )
    except EmailAlreadyRegistered:
        return renderer.response(SubscribeResponse(has_error=True, error_msg=ALREADY_REGISTERED_MSG))
    except ValidationFailure as e:
        logger.warning("구독 요청 거절: %s", e)
        return renderer.response(SubscribeResponse(has_error=True, error_msg=GENERIC_ERROR_MSG))
    except SQLAlchemyError:
        logger.exception("구독 저장 실패")
        return renderer.response(SubscribeResponse(has_error=True, error_msg=GENERIC_ERROR_MSG))

    if not result.confirmation_sent:
        return renderer.response(SubscribeResponse(has_error=True, error_msg=DELIVERY_DELAYED_MSG))
    return renderer.response(SubscribeResponse(has_error=False))


@router.get("/verify", response_class=HTMLResponse)
async def verify_subscription(
    token: str = "",
    db: AsyncSession = Depends(get_db),
    renderer: Renderer = Depends(get_renderer),
):
    if not token:
        raise TokenNotFound()
    outcome = await subscriptions.verify_subscription(db, token)
    return renderer.response(
        SubscribeVerify(already_verified=outcome is subscriptions.VerifyOutcome.ALREADY_VERIFIED)
    )


@router.get("/delete", response_class=HTMLResponse)
async def delete_subscriber(
    token: str = "",
    db: AsyncSession = Depends(get_db),
    renderer: Renderer = Depends(get_renderer),
):
    if not token:
        return renderer.response(SubscribeDelete(already_deleted=True))
    outcome = await subscriptions.delete_subscriber(db, token)
    return renderer.response(
        SubscribeDelete(already_deleted=outcome is subscriptions.DeleteOutcome.ALREADY_DELETED)
    )
