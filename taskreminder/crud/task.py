from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.orm import Session

from taskreminder.models.task import Task, TaskStatus
from taskreminder.models.user import User


class CRUDTask:
    def get(self, db: Session, id: str) -> Optional[Task]:
        return db.execute(
            select(Task).where(Task.id == id).execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_for_user(self, db: Session, id: str, user_id: str) -> Optional[Task]:
        return db.query(Task).filter(Task.id == id, Task.user_id == user_id).first()

    def list_for_user(self, db: Session, user_id: str, include_completed: bool = False) -> List[Task]:
        query = db.query(Task).filter(Task.user_id == user_id)
        if not include_completed:
            query = query.filter(Task.status != TaskStatus.COMPLETED.value)
        return query.order_by(Task.created_at.desc()).all()

    def save(self, db: Session, task: Task, commit: bool = True) -> Task:
        """Write the whole task back. Raises StaleDataError if another writer got there first."""
        db.add(task)
        if commit:
            db.commit()
            db.refresh(task)
        else:
            db.flush()
        return task

    def delete(self, db: Session, task: Task) -> None:
        db.delete(task)
        db.commit()


class CRUDUser:
    def get(self, db: Session, id: str) -> Optional[User]:
        return db.get(User, id, populate_existing=True)


# Create instances that can be imported directly
task = CRUDTask()
user = CRUDUser()
