from typing import List, Optional
from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from taskreminder.db.session import get_db
from .exceptions import (
    InvalidOffset, InvalidStatusTransition, NoUpcomingOccurrence,
    ReminderError, TaskConflict, TaskNotFound, TaskValidationError,
)
from .schemas import TaskCreate, TaskRead, TaskStopped, TaskUpdate
from .task_service import TaskReminderService


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """The upstream auth layer forwards the authenticated user in X-User-Id."""
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing user identity")
    return x_user_id


router = APIRouter()


def _to_http(e: ReminderError) -> HTTPException:
    if isinstance(e, TaskNotFound):
        return HTTPException(status_code=404, detail="Task not found")
    if isinstance(e, TaskConflict):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, (InvalidOffset, NoUpcomingOccurrence, InvalidStatusTransition, TaskValidationError)):
        return HTTPException(status_code=400, detail=str(e))
    return HTTPException(status_code=500, detail="Internal server error")


@router.get("/health")
def health_check():
    return {"status": "healthy", "service": "task-reminders"}


@router.get("/", response_model=List[TaskRead])
def list_tasks_endpoint(
    include_completed: bool = False,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return TaskReminderService(db).list_tasks(user_id, include_completed=include_completed)


@router.post("/", response_model=TaskRead, status_code=201)
def create_task_endpoint(
    payload: TaskCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return TaskReminderService(db).create_task(user_id, payload)
    except ReminderError as e:
        raise _to_http(e)


@router.get("/{task_id}", response_model=TaskRead)
def get_task_endpoint(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return TaskReminderService(db).get_task(task_id, user_id)
    except ReminderError as e:
        raise _to_http(e)


@router.put("/{task_id}", response_model=TaskRead)
def update_task_endpoint(
    task_id: str,
    payload: TaskUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return TaskReminderService(db).update_task(task_id, user_id, payload)
    except ReminderError as e:
        raise _to_http(e)


@router.delete("/{task_id}")
def delete_task_endpoint(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        TaskReminderService(db).delete_task(task_id, user_id)
    except ReminderError as e:
        raise _to_http(e)
    return {"ok": True}


@router.post("/{task_id}/stop", response_model=TaskStopped)
def stop_task_endpoint(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        task = TaskReminderService(db).stop_task(task_id, user_id)
    except InvalidStatusTransition:
        raise HTTPException(status_code=400, detail="Task already completed or stopped")
    except ReminderError as e:
        raise _to_http(e)
    return TaskStopped(ok=True, task=TaskRead.model_validate(task))
