"""Owner-scoped persistence for tasks.

Every query filters on ``user_id`` so one user can never read or touch
another user's rows, whatever id they ask for.
"""

import logging
from math import ceil
from typing import Iterable, Optional

from fastapi import Depends
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from taskboard.database import get_db
from taskboard.models.task import Task, TaskStatus
from taskboard.schemas.task import TaskCreate, TaskOut, TaskUpdate
from taskboard.utils.errors import ConflictFailure, NotFoundFailure, StorageFailure

logger = logging.getLogger(__name__)


class TaskStore:
    def __init__(self, db: Session):
        self.db = db

    def _commit(self):
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if "unique" in str(e.orig).lower() or "duplicate key" in str(e.orig).lower():
                raise ConflictFailure("Task conflicts with an existing record") from e
            logger.error("Integrity error on commit: %s", e.orig)
            raise StorageFailure("Failed to save tasks") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Storage error on commit")
            raise StorageFailure("Failed to save tasks") from e

    def create(self, owner_id: int, task: TaskCreate) -> Task:
        new = Task(
            title=task.title,
            description=task.description,
            status=task.status,
            user_id=owner_id,
        )
        self.db.add(new)
        self._commit()
        self.db.refresh(new)
        return new

    def create_many(self, rows: Iterable[dict]) -> list[Task]:
        """Insert all rows in one transaction; nothing is kept if any row fails."""
        tasks = [Task(**row) for row in rows]
        self.db.add_all(tasks)
        self._commit()
        return tasks

    def get(self, owner_id: int, task_id: int) -> Task:
        task = (
            self.db.query(Task)
            .filter(Task.id == task_id, Task.user_id == owner_id)
            .first()
        )
        if not task:
            raise NotFoundFailure("Task not found")
        return task

    def query(self, owner_id: int, q: Optional[str] = None, status: Optional[TaskStatus] = None):
        query = self.db.query(Task).filter(Task.user_id == owner_id)
        if q:
            query = query.filter(Task.title.ilike(f"%{q}%"))
        if status:
            query = query.filter(Task.status == status)
        return query.order_by(Task.id)

    def list(self, owner_id: int, q: Optional[str] = None, status: Optional[TaskStatus] = None) -> list[Task]:
        return self.query(owner_id, q, status).all()

    def paginate(self, owner_id: int, page: int, limit: int, q: Optional[str] = None,
                 status: Optional[TaskStatus] = None) -> dict:
        # normalize page/limit
        if page < 1:
            page = 1
        if limit < 1:
            limit = 10
        query = self.query(owner_id, q, status)
        total = query.count()
        pages = ceil(total / limit) if total > 0 else 1
        items = query.limit(limit).offset((page - 1) * limit).all()
        return {"items": items, "page": page, "limit": limit, "total": total, "pages": pages}

    def update(self, owner_id: int, update: TaskUpdate) -> Task:
        task = self.get(owner_id, update.id)
        for key, value in update.changes().items():
            setattr(task, key, value)
        self._commit()
        self.db.refresh(task)
        return task

    def delete(self, owner_id: int, task_id: int) -> TaskOut:
        """Delete a task and return how it looked just before removal."""
        task = self.get(owner_id, task_id)
        snapshot = TaskOut.model_validate(task)
        self.db.delete(task)
        self._commit()
        return snapshot


def get_task_store(db: Session = Depends(get_db)) -> TaskStore:
    return TaskStore(db)
