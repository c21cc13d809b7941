"""Request bodies for the HTTP API."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from ritual.tasks.task import TaskStatus


class TaskCreate(BaseModel):
    name: str = Field(min_length=1)
    prompt: str = Field(min_length=1)
    schedule: str = Field(min_length=1)
    output: str = ""
    model: Optional[str] = None
    status: TaskStatus = TaskStatus.ACTIVE


class TaskUpdate(BaseModel):
    """Every field optional; only the ones sent are changed."""

    name: Optional[str] = Field(default=None, min_length=1)
    prompt: Optional[str] = Field(default=None, min_length=1)
    schedule: Optional[str] = Field(default=None, min_length=1)
    output: Optional[str] = None
    model: Optional[str] = None
    status: Optional[TaskStatus] = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude_none=True)


class ParseRequest(BaseModel):
    schedule: str
