"""이메일 API 클라이언트 — async + 재시도.

스프링 대응:
- httpx.AsyncClient = WebClient (논블로킹 HTTP 호출)
- tenacity.retry = @Retryable (자동 재시도 + 지수 백오프)

Postmark 호환 API: POST {api_base_url}/email, 헤더 X-Postmark-Server-Token,
JSON {From, To, Subject, HtmlBody}. 2xx가 아니면 발송 실패.
"""

import logging

import httpx
from fastapi import Request
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.errors import EmailDeliveryError

logger = logging.getLogger(__name__)


class EmailClient:
    def __init__(self, api_base_url: str, sender: str, auth_token: str, timeout: float = 10.0):
        self.api_base_url = api_base_url.rstrip("/")
        self.sender = sender
        self._auth_token = auth_token
        self._timeout = timeout

    def _build_payload(self, recipient: str, subject: str, html_body: str) -> dict:
        return {
            "From": self.sender,
            "To": recipient,
            "Subject": subject,
            "HtmlBody": html_body,
        }

    # 네트워크 계열 에러만 재시도한다. 4xx/5xx 응답은 재시도해도 결과가 같다.
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((
            httpx.ConnectError,
            httpx.ConnectTimeout,
            httpx.ReadTimeout,
        )),
        reraise=True,
    )
    async def _post(self, payload: dict) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.post(
                f"{self.api_base_url}/email",
                headers={"X-Postmark-Server-Token": self._auth_token},
                json=payload,
            )
            resp.raise_for_status()
            return resp

    async def send_email(self, recipient: str, subject: str, html_body: str) -> None:
        """HTML 이메일을 발송한다. 실패하면 EmailDeliveryError."""
        try:
            await self._post(self._build_payload(recipient, subject, html_body))
        except httpx.HTTPStatusError as e:
            logger.error("이메일 API HTTP 에러 (%s): %d", recipient, e.response.status_code)
            raise EmailDeliveryError(f"email API responded {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error("이메일 API 네트워크 에러 (%s): %s", recipient, e)
            raise EmailDeliveryError(str(e)) from e
        logger.info("이메일 발송 완료: %s", recipient)


def get_email_client(request: Request) -> EmailClient:
    return request.app.state.email_client
