import logging
from typing import Callable, Optional
from uuid import UUID

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from pipeline_automation.core.config import settings
from pipeline_automation.core.exceptions import ActionTimeoutError
from pipeline_automation.repositories.notification_repository import (
    NotificationRepository,
)
from pipeline_automation.schemas.common import NotificationChannel

logger = logging.getLogger(__name__)

# Timeout for outbound webhook calls (seconds).
_HTTP_TIMEOUT = 5.0


class ChannelNotifier:
    """Deliver one message on one channel.

    - ``in_app``  row in the ``notifications`` table
    - ``slack``   POST to the configured incoming-webhook URL
    - ``email``   POST to the configured email micro-service

    A channel without a configured endpoint reports failure rather than
    silently dropping the message.
    """

    def __init__(
        self,
        session_factory: Callable[..., AsyncSession],
        slack_webhook_url: Optional[str] = None,
        email_service_url: Optional[str] = None,
        http_timeout: float = _HTTP_TIMEOUT,
    ) -> None:
        self._session_factory = session_factory
        self._slack_webhook_url: str = (
            slack_webhook_url
            if slack_webhook_url is not None
            else settings.SLACK_WEBHOOK_URL
        )
        self._email_service_url: str = (
            email_service_url
            if email_service_url is not None
            else settings.EMAIL_SERVICE_URL
        )
        self._http_timeout = http_timeout

    async def send(
        self, channel: str, message: str, org_id: UUID, deal_id: Optional[UUID]
    ) -> bool:
        if channel == NotificationChannel.in_app.value:
            return await self._send_in_app(message, org_id, deal_id)
        if channel == NotificationChannel.slack.value:
            return await self._post(
                channel, self._slack_webhook_url, {"text": message}
            )
        if channel == NotificationChannel.email.value:
            return await self._post(
                channel,
                self._email_service_url,
                {
                    "org_id": str(org_id),
                    "deal_id": str(deal_id) if deal_id else None,
                    "message": message,
                },
            )
        logger.warning("Unknown notification channel %s", channel)
        return False

    async def _send_in_app(
        self, message: str, org_id: UUID, deal_id: Optional[UUID]
    ) -> bool:
        async with self._session_factory() as session:
            repo = NotificationRepository(session)
            await repo.create(org_id=org_id, deal_id=deal_id, message=message)
            await repo.commit()
        return True

    async def _post(self, channel: str, url: str, payload: dict) -> bool:
        if not url:
            logger.warning("No endpoint configured for %s notifications", channel)
            return False
        try:
            async with httpx.AsyncClient(timeout=self._http_timeout) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
        except httpx.TimeoutException:
            logger.error("%s notification timed out: %s", channel, url)
            raise ActionTimeoutError(f"{channel} notification", self._http_timeout)
        except httpx.HTTPStatusError as exc:
            logger.error(
                "%s endpoint returned %s", channel, exc.response.status_code
            )
            return False
        except httpx.HTTPError as exc:
            logger.error("%s endpoint unreachable: %s", channel, exc)
            return False
        return True
