"""
Task repository: the document-store operations the workflow relies on.

Updates are partial writes with no version check; two editors saving the
same task concurrently overwrite each other (last write wins).
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.task import Task
from app.utils.errors import PersistenceError

logger = logging.getLogger(__name__)


class TaskRepository:
    """Repository for task documents."""

    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, task_id: str) -> Optional[Task]:
        if not task_id:
            return None
        return self.db.get(Task, task_id)

    def find(self, *criteria, order_by=None) -> List[Task]:
        query = self.db.query(Task)
        if criteria:
            query = query.filter(*criteria)
        if order_by is not None:
            query = query.order_by(order_by)
        return query.all()

    def create(self, task_data: Dict[str, Any]) -> Task:
        task = Task(**task_data)
        try:
            self.db.add(task)
            self.db.commit()
            self.db.refresh(task)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Task creation failed: %s", e, exc_info=True)
            raise PersistenceError("Failed to create task", error=str(e))
        logger.info("Created task %s (%s)", task.id, task.code)
        return task

    def find_by_id_and_update(self, task_id: str, updates: Dict[str, Any]) -> Optional[Task]:
        """Apply a partial update and return the updated task, or None if it is gone."""
        task = self.find_by_id(task_id)
        if task is None:
            return None
        try:
            for field, value in updates.items():
                setattr(task, field, value)
            task.updated_at = datetime.utcnow()
            self.db.commit()
            self.db.refresh(task)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Task update failed for %s: %s", task_id, e, exc_info=True)
            raise PersistenceError("Failed to update task", error=str(e))
        return task

    def update_many(self, task_ids: List[str], updates: Dict[str, Any]) -> int:
        """Apply the same partial update to several tasks; returns how many changed."""
        if not task_ids:
            return 0
        try:
            modified = (
                self.db.query(Task)
                .filter(Task.id.in_(task_ids))
                .update({**updates, "updated_at": datetime.utcnow()}, synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Bulk task update failed: %s", e, exc_info=True)
            raise PersistenceError("Failed to update tasks", error=str(e))
        return modified

    def find_by_id_and_delete(self, task_id: str) -> Optional[Task]:
        task = self.find_by_id(task_id)
        if task is None:
            return None
        try:
            self.db.delete(task)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Task deletion failed for %s: %s", task_id, e, exc_info=True)
            raise PersistenceError("Failed to delete task", error=str(e))
        return task
