import io
import re
import time

import pytest

from dirsyncd.state import (
    DEFAULT_WORKER_LIMIT,
    Operation,
    Task,
    TaskQueue,
    WatchRegistry,
    WorkerPool,
    timestamp,
)


class FakeProcess:
    def __init__(self, pid):
        self.pid = pid
        self.stdout = io.BytesIO(b"")


def make_task(name="ALL", op=Operation.FULL):
    return Task("src", "dst", name, op)


def test_queue_is_fifo():
    queue = TaskQueue()
    first, second = make_task("a"), make_task("b", Operation.ADDED)
    queue.push(first)
    queue.push(second)
    assert len(queue) == 2
    assert queue.pop() is first
    assert queue.pop() is second
    assert not queue


def test_queue_pop_empty_raises():
    queue = TaskQueue()
    assert not queue
    with pytest.raises(IndexError):
        queue.pop()


def test_task_worker_args():
    task = Task("s", "t", "f.txt", Operation.MODIFIED)
    assert task.worker_args() == ["s", "t", "f.txt", "MODIFIED"]


def test_registry_newest_first_and_lookup():
    registry = WatchRegistry()
    registry.add(1, "/a", "/b", "[stamp]")
    newer = registry.add(2, "/c", "/d", "[stamp]")
    assert [e.source_path for e in registry] == ["/c", "/a"]
    assert registry.find_by_source("/c") is newer
    assert registry.find_by_handle(1).target_path == "/b"
    assert registry.find_by_source("/missing") is None
    assert registry.find_by_handle(99) is None


def test_registry_entry_defaults():
    entry = WatchRegistry().add(7, "/a", "/b", "[when]")
    assert entry.in_use is True
    assert entry.errors == 0
    assert entry.last_sync == "[when]"


def test_pool_occupy_find_release():
    pool = WorkerPool(2)
    task = make_task()
    assert pool.free_slot() == 0
    process = FakeProcess(100)
    pool.occupy(0, process, task)
    assert len(pool) == 1
    assert pool.free_slot() == 1
    assert pool.find(100).task is task
    released = pool.release(100)
    assert released.task is task
    assert process.stdout.closed
    assert len(pool) == 0
    assert pool.find(100) is None
    assert pool.release(100) is None


def test_pool_full_has_no_free_slot():
    pool = WorkerPool(1)
    pool.occupy(0, FakeProcess(5), make_task())
    assert pool.free_slot() is None


@pytest.mark.parametrize("limit", [0, -3])
def test_pool_nonpositive_limit_uses_default(limit):
    pool = WorkerPool(limit)
    assert pool.limit == DEFAULT_WORKER_LIMIT
    assert len(pool.slots) == DEFAULT_WORKER_LIMIT


def test_timestamp_format_round_trip():
    now = time.time()
    stamp = timestamp(now)
    assert re.fullmatch(r"\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\]", stamp)
    parsed = time.strptime(stamp, "[%Y-%m-%d %H:%M:%S]")
    assert abs(time.mktime(parsed) - int(now)) <= 1