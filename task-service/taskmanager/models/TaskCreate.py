from typing import Optional

from pydantic import BaseModel, Field


class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = ""


# one item of a bulk request has the same shape as a single create
Submission = TaskCreate
