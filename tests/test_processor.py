# tests/test_processor.py
import random
from collections import Counter

from taskmanager.models import Submission
from taskmanager.processor import BulkProcessor, ErrorFlag

from .fakes import FakeStore


def _submissions(n):
    return [Submission(title=f"Task {i}", description=f"about {i}") for i in range(n)]


def test_one_result_per_submission():
    store = FakeStore()
    subs = _submissions(25)
    results = BulkProcessor(store, max_delay_ms=0).process_batch(subs, "10.0.0.9")

    assert len(results) == len(subs)
    assert Counter((r.task.title, r.task.description) for r in results) == Counter(
        (s.title, s.description) for s in subs
    )
    assert all(r.success for r in results)
    assert all(r.task.client_ip == "10.0.0.9" for r in results)
    assert all(r.error is None for r in results)


def test_task_ids_are_positive_and_unique():
    results = BulkProcessor(FakeStore(), max_delay_ms=0).process_batch(_submissions(30), "ip")
    ids = [r.task_id for r in results]
    assert all(i > 0 for i in ids)
    assert len(set(ids)) == len(ids)


def test_every_result_fails_when_store_always_fails():
    results = BulkProcessor(FakeStore(fail_all=True), max_delay_ms=0).process_batch(
        _submissions(8), "10.0.0.9"
    )
    assert len(results) == 8
    for r in results:
        assert r.success is False
        assert r.error
        assert r.task_id is None
        assert r.task.client_ip is None


def test_partial_failure_reports_each_item():
    store = FakeStore(fail_titles={"Task 1"})
    results = BulkProcessor(store, max_delay_ms=0).process_batch(_submissions(3), "ip")
    by_title = {r.task.title: r for r in results}
    assert by_title["Task 1"].success is False
    assert "Task 1" in by_title["Task 1"].error
    assert by_title["Task 0"].success and by_title["Task 2"].success
    assert len(store.rows) == 2


def test_delays_are_drawn_below_the_maximum():
    slept = []
    processor = BulkProcessor(
        FakeStore(), max_delay_ms=1000, rng=random.Random(7), sleep=slept.append
    )
    processor.process_batch(_submissions(40), "ip")
    assert slept
    assert all(0 <= d < 1.0 for d in slept)


def test_zero_max_delay_never_sleeps():
    slept = []
    BulkProcessor(FakeStore(), max_delay_ms=0, sleep=slept.append).process_batch(_submissions(5), "ip")
    assert slept == []


def test_preserve_order_sorts_by_submission_index():
    subs = _submissions(15)
    processor = BulkProcessor(FakeStore(persist_delay=0.001), max_delay_ms=20, preserve_order=True)
    results = processor.process_batch(subs, "ip")
    assert [r.task.title for r in results] == [s.title for s in subs]


def test_max_workers_caps_concurrent_persists():
    store = FakeStore(persist_delay=0.02)
    BulkProcessor(store, max_delay_ms=0, max_workers=2).process_batch(_submissions(12), "ip")
    assert len(store.rows) == 12
    assert store.max_active <= 2


def test_unbounded_units_persist_concurrently():
    store = FakeStore(persist_delay=0.05)
    BulkProcessor(store, max_delay_ms=0).process_batch(_submissions(10), "ip")
    assert store.max_active > 1


def test_stop_on_error_is_best_effort():
    subs = _submissions(50)
    results = BulkProcessor(FakeStore(fail_all=True), max_delay_ms=0, stop_on_error=True).process_batch(
        subs, "ip"
    )
    # launched units always report, later launches may or may not be skipped
    assert 1 <= len(results) <= len(subs)
    assert all(not r.success and r.error for r in results)


def test_stop_on_error_without_failures_launches_everything():
    results = BulkProcessor(FakeStore(), max_delay_ms=0, stop_on_error=True).process_batch(
        _submissions(20), "ip"
    )
    assert len(results) == 20


def test_error_flag():
    flag = ErrorFlag()
    assert not flag.is_set()
    flag.set()
    assert flag.is_set()


def test_batch_against_real_store(store):
    results = BulkProcessor(store, max_delay_ms=0).process_batch(_submissions(10), "192.0.2.1")
    ids = sorted(r.task_id for r in results)
    assert len(set(ids)) == 10
    assert [t.id for t in store.list_tasks()] == ids
