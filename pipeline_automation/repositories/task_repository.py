from typing import Any

from pipeline_automation.models.task import Task
from pipeline_automation.repositories.base import BaseRepository


class TaskRepository(BaseRepository):
    """Encapsulates queries against the ``tasks`` table."""

    async def create(self, **kwargs: Any) -> Task:
        """Insert a new task."""
        task = Task(**kwargs)
        self._db.add(task)
        return task
