from typing import Any

from pipeline_automation.models.notification import Notification
from pipeline_automation.repositories.base import BaseRepository


class NotificationRepository(BaseRepository):
    """Encapsulates queries against the ``notifications`` table."""

    async def create(self, **kwargs: Any) -> Notification:
        """Insert a new in-app notification."""
        notification = Notification(**kwargs)
        self._db.add(notification)
        return notification
