import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from .client_ip import get_client_ip
from .config import Settings
from .database import TaskStore
from .errors import PartialBatchFailure, TaskManagerError, ValidationError
from .models import Submission, Task, TaskCreate, TaskUpdate
from .processor import BulkProcessor

logger = logging.getLogger(__name__)

DEFAULT_BENCHMARK_COUNT = 1000
MAX_BENCHMARK_COUNT = 10000

router = APIRouter()


def get_store(request: Request) -> TaskStore:
    return request.app.state.store


def get_processor(request: Request) -> BulkProcessor:
    return request.app.state.processor


def parse_count(raw: str) -> Optional[int]:
    # plain ascii integers only, no "1_000" or other unicode digits
    raw = raw.strip()
    digits = raw[1:] if raw.startswith("-") else raw
    if not (digits.isascii() and digits.isdigit()):
        return None
    return int(raw)


@router.get("/health", response_class=PlainTextResponse)
async def health():
    return "OK"


@router.get("/api/tasks", response_model=List[Task])
def list_tasks(store: TaskStore = Depends(get_store)):
    tasks = store.list_tasks()
    logger.info("Fetched %d tasks", len(tasks))
    return tasks


@router.post("/api/tasks", status_code=201, response_model=Task)
def create_task(task: TaskCreate, request: Request, store: TaskStore = Depends(get_store)):
    client_ip = get_client_ip(request)
    logger.info("New task request from IP: %s", client_ip)
    task_id = store.create_task(task.title, task.description, client_ip)
    created = store.get_task(task_id)
    if created is None:
        created = Task(id=task_id, title=task.title, description=task.description, client_ip=client_ip)
    logger.info("Created task #%d from %s", task_id, client_ip)
    return created


@router.api_route("/api/tasks/update", methods=["PUT", "POST"])
def update_task(update: TaskUpdate, request: Request, store: TaskStore = Depends(get_store)):
    client_ip = get_client_ip(request)
    touched = store.update_status(update.id, update.completed)
    logger.info("Updated task #%d from %s (rows=%d)", update.id, client_ip, touched)
    return Response(status_code=200)


@router.api_route("/api/benchmark", methods=["GET", "POST"], response_class=PlainTextResponse)
def benchmark(
    request: Request,
    count: Optional[str] = Query(default=None),
    store: TaskStore = Depends(get_store),
):
    client_ip = get_client_ip(request)
    logger.info("Benchmark request from IP: %s", client_ip)

    n = DEFAULT_BENCHMARK_COUNT
    if count is not None and count != "":
        n = parse_count(count)
        if n is None:
            logger.warning("Invalid benchmark count from %s: %r", client_ip, count)
            raise ValidationError("Invalid count parameter")
    if n < 1 or n > MAX_BENCHMARK_COUNT:
        logger.warning("Out of range benchmark count from %s: %d", client_ip, n)
        raise ValidationError(f"Count must be between 1 and {MAX_BENCHMARK_COUNT}")

    store.bulk_insert_benchmark(n, client_ip)
    logger.info("Completed benchmark of %d tasks from %s", n, client_ip)
    return f"Inserted {n} tasks for benchmarking"


@router.post("/api/tasks/bulk")
def bulk_create(
    submissions: List[Submission],
    request: Request,
    processor: BulkProcessor = Depends(get_processor),
):
    client_ip = get_client_ip(request)
    if not submissions:
        logger.warning("Empty bulk request from %s", client_ip)
        raise ValidationError("No tasks provided")

    logger.info("Received %d tasks from %s", len(submissions), client_ip)
    results = processor.process_batch(submissions, client_ip)
    failed = sum(1 for r in results if not r.success)
    if failed:
        raise PartialBatchFailure(results, failed)
    return JSONResponse(content=_dump_results(results))


def _dump_results(results) -> list:
    return [r.model_dump(mode="json", exclude_none=True) for r in results]


async def task_manager_error_handler(request: Request, exc: TaskManagerError):
    logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def partial_batch_handler(request: Request, exc: PartialBatchFailure):
    logger.warning("Bulk request from %s: %s", get_client_ip(request), exc)
    return JSONResponse(status_code=exc.status_code, content=_dump_results(exc.results))


async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.warning("Invalid request body for %s %s", request.method, request.url.path)
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


def create_app(settings: Optional[Settings] = None, store: Optional[TaskStore] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task_store = store if store is not None else TaskStore.from_settings(settings)
        task_store.open()
        app.state.store = task_store
        app.state.processor = BulkProcessor.from_settings(task_store, settings)
        try:
            yield
        finally:
            task_store.close()

    app = FastAPI(title="Task Manager", lifespan=lifespan)
    app.state.settings = settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=43200,
    )
    app.add_exception_handler(PartialBatchFailure, partial_batch_handler)
    app.add_exception_handler(TaskManagerError, task_manager_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.include_router(router)
    return app
