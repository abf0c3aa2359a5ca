from typing import Optional

from pydantic import BaseModel


class SubmittedTask(BaseModel):
    title: str
    description: Optional[str] = ""
    client_ip: Optional[str] = None


class TaskResult(BaseModel):
    task: SubmittedTask
    task_id: Optional[int] = None
    success: bool = False
    error: Optional[str] = None
