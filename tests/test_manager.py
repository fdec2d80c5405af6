import io
import os
import stat
import sys
import threading
import time

import pytest

from dirsyncd import worker
from dirsyncd.manager import (
    USAGE,
    DirectoryWatcher,
    Manager,
    ManagerConfig,
    parse_args,
    read_config,
)
from dirsyncd.state import Operation


class FakeWatcher:
    def __init__(self):
        self.added = []
        self.removed = []

    def add(self, path):
        self.added.append(path)
        return len(self.added)

    def remove(self, handle):
        self.removed.append(handle)

    def drain(self):
        return []

    def close(self):
        pass


def test_parse_args_reads_values():
    config = parse_args(["-l", "log.txt", "-c", "conf.txt", "-n", "3"])
    assert config == ManagerConfig("log.txt", "conf.txt", 3)


@pytest.mark.parametrize("limit", ["0", "-2", "many"])
def test_parse_args_falls_back_to_default_limit(limit):
    config = parse_args(["-l", "log", "-c", "conf", "-n", limit])
    assert config.worker_limit == 5


def test_parse_args_wrong_count():
    with pytest.raises(ValueError) as info:
        parse_args(["-l", "log"])
    assert str(info.value) == USAGE


def test_read_config_pairs_and_skips(tmp_path):
    config = tmp_path / "config.txt"
    config.write_text("/a /b\nlonely\n\n/c /d extra\n")
    assert read_config(config) == [("/a", "/b"), ("/c", "/d")]


def test_read_config_truncates_long_paths(tmp_path):
    config = tmp_path / "config.txt"
    long_source = "s" * 60
    config.write_text(f"{long_source} /t\n")
    pairs = read_config(config)
    assert pairs == [(long_source[:49], "/t")]


def test_read_config_missing_file(tmp_path):
    with pytest.raises(OSError):
        read_config(tmp_path / "absent.txt")


def test_watcher_rejects_missing_directory(tmp_path):
    with DirectoryWatcher() as watcher:
        with pytest.raises(OSError):
            watcher.add(tmp_path / "absent")


def test_watcher_same_path_same_handle_and_unknown_remove(tmp_path):
    with DirectoryWatcher() as watcher:
        first = watcher.add(tmp_path)
        assert watcher.add(str(tmp_path)) == first
        with pytest.raises(OSError):
            watcher.remove(first + 100)


def test_watcher_reports_created_file(tmp_path):
    with DirectoryWatcher() as watcher:
        handle = watcher.add(tmp_path)
        (tmp_path / "new.txt").write_text("data")
        seen = []
        deadline = time.monotonic() + 10
        while time.monotonic() < deadline and (handle, "new.txt", Operation.ADDED) not in seen:
            seen.extend(watcher.drain())
            time.sleep(0.05)
        assert (handle, "new.txt", Operation.ADDED) in seen


def test_watcher_drops_events_after_remove(tmp_path):
    with DirectoryWatcher() as watcher:
        handle = watcher.add(tmp_path)
        watcher.remove(handle)
        (tmp_path / "late.txt").write_text("data")
        time.sleep(0.3)
        assert all(event[0] != handle for event in watcher.drain())


def _wait_for_fifo(path, timeout=10):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            if stat.S_ISFIFO(os.stat(path).st_mode):
                return True
        except OSError:
            pass
        time.sleep(0.02)
    return False


def test_manager_full_sync_and_shutdown(tmp_path):
    source = tmp_path / "src"
    target = tmp_path / "dst"
    source.mkdir()
    (source / "a.txt").write_text("hello")
    config_file = tmp_path / "config.txt"
    config_file.write_text(f"{source} {target}\n")
    log_file = tmp_path / "manager.log"
    out = io.StringIO()
    watcher = FakeWatcher()
    manager = Manager(
        ManagerConfig(str(log_file), str(config_file), 2),
        watcher=watcher,
        worker_command=[sys.executable, worker.__file__],
        fifo_dir=tmp_path,
        stdout=out,
    )
    codes = []
    thread = threading.Thread(target=lambda: codes.append(manager.run()), daemon=True)
    thread.start()

    in_path = tmp_path / "fss_in"
    assert _wait_for_fifo(in_path)
    fd = os.open(in_path, os.O_WRONLY)
    try:
        time.sleep(0.3)
        os.write(fd, b"shutdown")
    finally:
        os.close(fd)
    thread.join(30)

    assert not thread.is_alive()
    assert codes == [0]
    assert (target / "a.txt").read_text() == "hello"
    log = log_file.read_text()
    assert "[FULL]\n[SUCCESS] [1 files copied, 0 skipped]\n" in log
    text = out.getvalue()
    assert f"Added directory: {source} -> {target} \n" in text
    assert f"Monitoring started for {source}\n" in text
    assert "Shutting down manager..." in text
    assert text.endswith("Manager shutdown complete.\n")
    assert watcher.removed == [1]
    assert not in_path.exists()
    assert (tmp_path / "fss_out").exists()