from typing import List

from fastapi import HTTPException


class ValidationError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)


class TaskManagerError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class StorageError(TaskManagerError):
    status_code = 500


# carries every result so the 206 response still reports each item
class PartialBatchFailure(TaskManagerError):
    status_code = 206

    def __init__(self, results: List, failed: int):
        super().__init__(f"{failed} of {len(results)} tasks failed")
        self.results = results
        self.failed = failed
