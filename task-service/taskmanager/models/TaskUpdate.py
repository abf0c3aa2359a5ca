from pydantic import BaseModel


class TaskUpdate(BaseModel):
    id: int
    completed: bool = False
