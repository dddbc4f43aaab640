"""
Request and response schemas for task reminders
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from taskreminder.models.task import TaskStatus


class TaskCreate(BaseModel):
    """Schema for creating a task with a reminder"""
    name: str = Field(..., min_length=1)
    deadline: datetime
    offset: str = Field(..., description="3h, 1d or 3d (or short, medium, long)")
    recurrence_mode: str = Field(default="once", description="once or weekly")
    end_date: Optional[datetime] = None


class TaskUpdate(BaseModel):
    """Schema for editing a task; unset fields are left alone"""
    name: Optional[str] = Field(default=None, min_length=1)
    deadline: Optional[datetime] = None
    offset: Optional[str] = None
    recurrence_mode: Optional[str] = None
    end_date: Optional[datetime] = None
    status: Optional[TaskStatus] = None


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    name: str
    deadline: datetime
    end_date: Optional[datetime] = None
    recurrence_mode: str
    offset: str
    status: str
    current_job_id: Optional[str] = None
    last_sent_at: Optional[datetime] = None
    version: int
    created_at: datetime
    updated_at: datetime


class TaskStopped(BaseModel):
    ok: bool = True
    task: TaskRead
