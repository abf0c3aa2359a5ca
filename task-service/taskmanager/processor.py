import logging
import queue
import random
import threading
import time
from typing import Callable, List, Optional, Sequence, Tuple

from .models import SubmittedTask, Submission, TaskResult

logger = logging.getLogger(__name__)

_DONE = object()


class ErrorFlag:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._set = False

    def set(self) -> None:
        with self._lock:
            self._set = True

    def is_set(self) -> bool:
        with self._lock:
            return self._set


class BulkProcessor:
    """
    Fan a batch of submissions out to one thread each and collect the results.

    Each unit sleeps a random delay in ``[0, max_delay_ms)`` milliseconds to
    simulate variable latency, then persists its task through the store.
    Results come back in completion order unless ``preserve_order`` is set.

    With ``stop_on_error`` the launch loop stops starting new units once any
    unit has failed. That check races with units still running, so it only
    throttles; units already launched always finish and report a result.
    ``max_workers`` optionally caps how many units persist at the same time.
    """

    def __init__(
        self,
        store,
        max_delay_ms: int = 1000,
        stop_on_error: bool = False,
        max_workers: Optional[int] = None,
        preserve_order: bool = False,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.max_delay_ms = max_delay_ms
        self.stop_on_error = stop_on_error
        self.max_workers = max_workers
        self.preserve_order = preserve_order
        self._rng = rng or random.Random()
        self._rng_lock = threading.Lock()
        self._sleep = sleep

    @classmethod
    def from_settings(cls, store, settings) -> "BulkProcessor":
        return cls(
            store,
            max_delay_ms=settings.bulk_max_delay_ms,
            stop_on_error=settings.bulk_stop_on_error,
            max_workers=settings.bulk_max_workers,
            preserve_order=settings.bulk_preserve_order,
        )

    def _delay(self) -> float:
        if self.max_delay_ms <= 0:
            return 0.0
        with self._rng_lock:
            return self._rng.randrange(self.max_delay_ms) / 1000.0

    def _run_unit(
        self,
        index: int,
        submission: Submission,
        client_ip: str,
        collector: "queue.Queue",
        errors: ErrorFlag,
        slots: Optional[threading.BoundedSemaphore],
    ) -> None:
        start = time.monotonic()
        unit = index + 1
        logger.debug("[%s] unit %d processing '%s'", client_ip, unit, submission.title)

        result = TaskResult(
            task=SubmittedTask(title=submission.title, description=submission.description)
        )
        try:
            delay = self._delay()
            logger.debug("[%s] unit %d sleeping %.3fs", client_ip, unit, delay)
            if delay:
                self._sleep(delay)

            if slots is not None:
                slots.acquire()
            try:
                task_id = self.store.create_task(submission.title, submission.description, client_ip)
            finally:
                if slots is not None:
                    slots.release()
        except Exception as exc:
            errors.set()
            logger.warning("[%s] unit %d failed: %s", client_ip, unit, exc)
            result.error = str(exc) or exc.__class__.__name__
        else:
            logger.debug("[%s] unit %d saved task #%d", client_ip, unit, task_id)
            result.success = True
            result.task_id = task_id
            result.task.client_ip = client_ip

        collector.put((index, result))
        logger.debug("[%s] unit %d completed in %.3fs", client_ip, unit, time.monotonic() - start)

    def process_batch(self, submissions: Sequence[Submission], client_ip: str) -> List[TaskResult]:
        started = time.monotonic()
        collector: "queue.Queue" = queue.Queue()
        errors = ErrorFlag()
        slots = threading.BoundedSemaphore(self.max_workers) if self.max_workers else None

        units = []
        for index, submission in enumerate(submissions):
            if self.stop_on_error and errors.is_set():
                logger.info(
                    "[%s] error seen, not launching remaining %d of %d tasks",
                    client_ip,
                    len(submissions) - index,
                    len(submissions),
                )
                break
            unit = threading.Thread(
                target=self._run_unit,
                args=(index, submission, client_ip, collector, errors, slots),
                name=f"bulk-unit-{index + 1}",
                daemon=True,
            )
            unit.start()
            units.append(unit)

        def supervise() -> None:
            for unit in units:
                unit.join()
            collector.put(_DONE)
            logger.debug("[%s] all %d units completed", client_ip, len(units))

        threading.Thread(target=supervise, name="bulk-supervisor", daemon=True).start()

        arrived: List[Tuple[int, TaskResult]] = []
        while True:
            item = collector.get()
            if item is _DONE:
                break
            arrived.append(item)

        if self.preserve_order:
            arrived.sort(key=lambda pair: pair[0])

        logger.info(
            "[%s] processed %d tasks in %.3fs",
            client_ip,
            len(arrived),
            time.monotonic() - started,
        )
        return [result for _, result in arrived]
