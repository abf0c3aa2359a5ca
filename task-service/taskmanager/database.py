import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as RowDecodeError
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    false,
    func,
    insert,
    inspect,
    select,
    text,
    type_coerce,
    update,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from .errors import StorageError
from .models import Task

logger = logging.getLogger(__name__)

metadata = MetaData()

tasks = Table(
    "tasks",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(255), nullable=False),
    Column("description", Text, nullable=True),
    Column("completed", Boolean, nullable=False, server_default=false()),
    Column("created_at", DateTime, server_default=func.current_timestamp()),
    Column("client_ip", String(45), nullable=True),
)

# created_at is read raw and parsed per row by the Task model
_task_columns = [c for c in tasks.c if c.name != "created_at"] + [
    type_coerce(tasks.c.created_at, String).label("created_at")
]


class TaskStore:
    """
    Relational task store on top of a pooled SQLAlchemy engine.

    The store is opened once at startup and closed at shutdown. Every
    operation checks a connection out of the pool, so concurrent callers
    block on the pool cap instead of failing when it is exhausted.
    """

    def __init__(
        self,
        database_url: str,
        pool_size: int = 25,
        max_overflow: int = 0,
        pool_recycle: int = 300,
        pool_timeout: int = 30,
    ) -> None:
        self.database_url = database_url
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.pool_recycle = pool_recycle
        self.pool_timeout = pool_timeout
        self._engine: Optional[Engine] = None

    @classmethod
    def from_settings(cls, settings) -> "TaskStore":
        return cls(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_recycle=settings.db_pool_recycle,
            pool_timeout=settings.db_pool_timeout,
        )

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    # ---- lifecycle ----

    def _engine_options(self) -> Dict[str, Any]:
        url = make_url(self.database_url)
        if url.get_backend_name() == "sqlite":
            options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
            if url.database in (None, "", ":memory:"):
                # a private in-memory database only lives as long as its one connection
                options["poolclass"] = StaticPool
                return options
        else:
            options = {"pool_pre_ping": True}
        options.update(
            pool_size=self.pool_size,
            max_overflow=self.max_overflow,
            pool_recycle=self.pool_recycle,
            pool_timeout=self.pool_timeout,
        )
        return options

    def open(self) -> None:
        if self._engine is not None:
            return
        try:
            engine = create_engine(self.database_url, **self._engine_options())
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            self._ensure_schema(engine)
        except SQLAlchemyError as exc:
            raise StorageError(f"Error connecting to database: {exc}") from exc
        self._engine = engine
        logger.info(
            "Connected to database backend=%s pool_size=%s total=%s",
            engine.url.get_backend_name(),
            self.pool_size,
            self.count_tasks(),
        )

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            logger.info("Database connection closed")

    def _ensure_schema(self, engine: Engine) -> None:
        metadata.create_all(engine, checkfirst=True)
        cols = {c["name"] for c in inspect(engine).get_columns("tasks")}
        if "client_ip" not in cols:
            with engine.begin() as conn:
                conn.execute(text("ALTER TABLE tasks ADD COLUMN client_ip VARCHAR(45)"))
            logger.info("Tasks table migration: added column client_ip")
        logger.info("Tasks table verified/created")

    def _require_engine(self) -> Engine:
        if self._engine is None:
            raise StorageError("Task store is not open")
        return self._engine

    # ---- queries ----

    def create_task(self, title: str, description: Optional[str], client_ip: Optional[str] = None) -> int:
        engine = self._require_engine()
        try:
            with engine.begin() as conn:
                result = conn.execute(
                    insert(tasks).values(title=title, description=description, client_ip=client_ip)
                )
                task_id = result.inserted_primary_key[0]
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to create task: {exc}") from exc
        if not task_id:
            raise StorageError("Database returned no id for the inserted task")
        return int(task_id)

    def get_task(self, task_id: int) -> Optional[Task]:
        engine = self._require_engine()
        try:
            with engine.connect() as conn:
                row = conn.execute(select(*_task_columns).where(tasks.c.id == task_id)).first()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to fetch task #{task_id}: {exc}") from exc
        if row is None:
            return None
        try:
            return Task.model_validate(dict(row._mapping))
        except RowDecodeError as exc:
            raise StorageError(f"Error decoding task #{task_id}: {exc}") from exc

    def list_tasks(self) -> List[Task]:
        engine = self._require_engine()
        try:
            with engine.connect() as conn:
                rows = conn.execute(select(*_task_columns).order_by(tasks.c.id)).all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to fetch tasks: {exc}") from exc

        result = []
        for row in rows:
            values = dict(row._mapping)
            try:
                result.append(Task.model_validate(values))
            except RowDecodeError as exc:
                logger.warning("Error decoding task row id=%s: %s", values.get("id"), exc)
                continue
        return result

    def update_status(self, task_id: int, completed: bool) -> int:
        # zero rows touched is not an error
        engine = self._require_engine()
        try:
            with engine.begin() as conn:
                result = conn.execute(
                    update(tasks).where(tasks.c.id == task_id).values(completed=completed)
                )
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to update task #{task_id}: {exc}") from exc
        return result.rowcount

    def count_tasks(self) -> int:
        engine = self._require_engine()
        try:
            with engine.connect() as conn:
                return int(conn.execute(select(func.count()).select_from(tasks)).scalar_one())
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to count tasks: {exc}") from exc

    @staticmethod
    def _benchmark_row(i: int, client_ip: Optional[str]) -> Dict[str, Any]:
        return {
            "title": f"Task {i}",
            "description": f"Description for task {i}",
            "completed": i % 2 == 0,
            "client_ip": client_ip,
        }

    def bulk_insert_benchmark(self, count: int, client_ip: Optional[str] = None) -> None:
        # all rows commit together or the whole batch rolls back
        engine = self._require_engine()
        rows = [self._benchmark_row(i, client_ip) for i in range(count)]
        try:
            with engine.begin() as conn:
                conn.execute(insert(tasks), rows)
        except SQLAlchemyError as exc:
            raise StorageError(f"Benchmark insert rolled back: {exc}") from exc
