# tests/test_monitor.py
import asyncio
from pathlib import Path

import pytest

from watchdog.observers.polling import PollingEmitter, PollingObserver

from log_watchdog.watchdog import monitor
from log_watchdog.watchdog.errors import ConfigError, LogReadError
from log_watchdog.watchdog.monitor import WatchSupervisor, normalize_path

from tests.helpers import append


async def feed(supervisor: WatchSupervisor, log: Path, data: bytes):
    append(log, data)
    supervisor.notify(log)
    await asyncio.wait_for(supervisor.drain(), timeout=10)


def read_output(path: Path) -> str:
    return path.read_text() if path.exists() else ""


@pytest.mark.asyncio
async def test_debounce_scenario(make_definition, clock):
    definition = make_definition(regex="ERROR", debounce=5.0)
    supervisor = WatchSupervisor(observe=False, clock=clock)
    await supervisor.start([definition])
    try:
        await feed(supervisor, definition.log_file, b"INFO ok\nERROR boom\n")
        assert read_output(definition.output_file) == "errors\n"

        clock.now = 2.0
        await feed(supervisor, definition.log_file, b"ERROR again\n")
        assert read_output(definition.output_file) == "errors\n"

        clock.now = 6.0
        await feed(supervisor, definition.log_file, b"ERROR again\n")
        assert read_output(definition.output_file) == "errors\nerrors\n"

        stats = supervisor.active["errors"].get_stats()
        assert stats['matches'] == 3
        assert stats['dispatch']['dispatches'] == 2
        assert stats['trigger']['suppressed'] == 1
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_burst_in_one_read_dispatches_once(make_definition, clock):
    definition = make_definition(debounce=1.0)
    supervisor = WatchSupervisor(observe=False, clock=clock)
    await supervisor.start([definition])
    try:
        await feed(supervisor, definition.log_file, b"ERROR 1\nERROR 2\nERROR 3\n")

        assert read_output(definition.output_file) == "errors\n"
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_oneshot_retires_after_first_dispatch(make_definition, clock):
    definition = make_definition(oneshot=True)
    supervisor = WatchSupervisor(observe=False, clock=clock)
    await supervisor.start([definition])
    try:
        append(definition.log_file, b"ERROR first\nERROR second\n")
        supervisor.notify(definition.log_file)
        await asyncio.wait_for(supervisor.wait_closed(), timeout=10)

        assert "errors" not in supervisor.active
        assert "errors" in supervisor.retired

        clock.now = 1000.0
        append(definition.log_file, b"ERROR third\n")
        supervisor.notify(definition.log_file)
        await asyncio.sleep(0.1)

        assert read_output(definition.output_file) == "errors\n"
        assert supervisor.retired["errors"].stats['notifications'] == 1
        assert supervisor.stats['unmatched_notifications'] == 1
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_two_watchdogs_on_same_file(make_definition, clock):
    errors = make_definition(name="errors", regex="ERROR", log_name="shared.log")
    warnings = make_definition(name="warnings", regex="WARN", log_name="shared.log")
    supervisor = WatchSupervisor(observe=False, clock=clock)
    await supervisor.start([errors, warnings])
    try:
        await feed(supervisor, errors.log_file, b"WARN disk\nERROR boom\nINFO ok\n")

        assert read_output(errors.output_file) == "errors\n"
        assert read_output(warnings.output_file) == "warnings\n"
        assert supervisor.active["errors"].stats['lines_read'] == 3
        assert supervisor.active["warnings"].stats['lines_read'] == 3
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_partial_line_is_not_matched(make_definition, clock):
    definition = make_definition(regex="^ERROR$")
    supervisor = WatchSupervisor(observe=False, clock=clock)
    await supervisor.start([definition])
    try:
        await feed(supervisor, definition.log_file, b"ERROR")
        assert not definition.output_file.exists()

        await feed(supervisor, definition.log_file, b"S happened\n")
        assert not definition.output_file.exists()

        await feed(supervisor, definition.log_file, b"ERROR\n")
        assert read_output(definition.output_file) == "errors\n"
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_truncation_rescans_new_content(make_definition, clock):
    definition = make_definition()
    supervisor = WatchSupervisor(observe=False, clock=clock)
    await supervisor.start([definition])
    try:
        await feed(supervisor, definition.log_file, b"ERROR number one\n")
        assert read_output(definition.output_file) == "errors\n"

        definition.log_file.write_bytes(b"ERROR 2\n")
        supervisor.notify(definition.log_file)
        await asyncio.wait_for(supervisor.drain(), timeout=10)

        assert read_output(definition.output_file) == "errors\nerrors\n"
        assert supervisor.active["errors"].tailer.state.offset == 8
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_invalid_pattern_does_not_block_others(make_definition, clock):
    bad = make_definition(name="bad", regex="(unclosed")
    good = make_definition(name="good")
    supervisor = WatchSupervisor(observe=False, clock=clock)
    await supervisor.start([bad, good])
    try:
        assert isinstance(supervisor.failed["bad"], ConfigError)
        assert list(supervisor.active) == ["good"]

        await feed(supervisor, good.log_file, b"ERROR\n")
        assert read_output(good.output_file) == "good\n"
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_missing_log_directory_fails_that_watchdog(make_definition, tmp_path, clock):
    from dataclasses import replace
    good = make_definition(name="good")
    lost = replace(good, name="lost", log_file=tmp_path / "missing" / "app.log")
    supervisor = WatchSupervisor(observe=False, clock=clock)
    await supervisor.start([good, lost])
    try:
        assert isinstance(supervisor.failed["lost"], LogReadError)
        assert "good" in supervisor.active
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_read_error_keeps_watchdog_active(make_definition, clock):
    definition = make_definition()
    supervisor = WatchSupervisor(observe=False, clock=clock)
    await supervisor.start([definition])
    try:
        definition.log_file.unlink()
        supervisor.notify(definition.log_file)
        await asyncio.wait_for(supervisor.drain(), timeout=10)

        worker = supervisor.active["errors"]
        assert worker.stats['read_errors'] == 1

        await feed(supervisor, definition.log_file, b"ERROR back\n")
        assert read_output(definition.output_file) == "errors\n"
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_failed_dispatch_keeps_watching(make_definition, python_command, clock):
    definition = make_definition(commands=(python_command("import sys; sys.exit(1)"),))
    supervisor = WatchSupervisor(observe=False, clock=clock)
    await supervisor.start([definition])
    try:
        await feed(supervisor, definition.log_file, b"ERROR one\n")
        await feed(supervisor, definition.log_file, b"ERROR two\n")

        worker = supervisor.active["errors"]
        assert worker.dispatcher.stats['dispatches'] == 2
        assert worker.dispatcher.stats['errors'] == 2
        assert worker.last_results[0].error.returncode == 1
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_history_is_skipped_unless_from_beginning(make_definition, clock):
    tail = make_definition(name="tail", log_name="history.log")
    append(tail.log_file, b"ERROR old\n")
    replay = make_definition(name="replay", log_name="history.log", from_beginning=True)
    supervisor = WatchSupervisor(observe=False, clock=clock)
    await supervisor.start([tail, replay])
    try:
        supervisor.notify(tail.log_file)
        await asyncio.wait_for(supervisor.drain(), timeout=10)

        assert not tail.output_file.exists()
        assert read_output(replay.output_file) == "replay\n"
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_stop_cancels_running_dispatch(make_definition, python_command, clock):
    definition = make_definition(commands=(python_command("import time; time.sleep(30)"),))
    supervisor = WatchSupervisor(observe=False, clock=clock, shutdown_grace=1.0)
    await supervisor.start([definition])

    append(definition.log_file, b"ERROR slow\n")
    supervisor.notify(definition.log_file)
    worker = supervisor.active["errors"]
    for _ in range(200):
        if worker.dispatcher.stats['dispatches']:
            break
        await asyncio.sleep(0.05)

    await asyncio.wait_for(supervisor.stop(), timeout=10)

    assert worker.task.done()
    assert not supervisor.is_running


@pytest.mark.asyncio
async def test_status_report(make_definition, clock):
    bad = make_definition(name="bad", regex="[")
    good = make_definition(name="good")
    supervisor = WatchSupervisor(observe=False, clock=clock)
    await supervisor.start([bad, good])
    try:
        status = supervisor.get_status()

        assert status['is_running']
        assert list(status['active']) == ["good"]
        assert "bad" in status['failed']
        assert status['watched_files'] == [str(good.log_file)]
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_end_to_end_with_polling_observer(make_definition):
    definition = make_definition()
    supervisor = WatchSupervisor(use_polling=True, poll_interval=0.1)
    await supervisor.start([definition])
    try:
        await asyncio.sleep(0.3)
        append(definition.log_file, b"ERROR from disk\n")

        for _ in range(100):
            if read_output(definition.output_file):
                break
            await asyncio.sleep(0.1)

        assert read_output(definition.output_file) == "errors\n"
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_watchdogs_dispatch_concurrently(make_definition, python_command, clock):
    slow = make_definition(
        name="slow", log_name="slow.log",
        commands=(python_command("import time; time.sleep(3); print('slow')"),),
    )
    fast = make_definition(name="fast", log_name="fast.log")
    supervisor = WatchSupervisor(observe=False, clock=clock, shutdown_grace=1.0)
    await supervisor.start([slow, fast])
    try:
        append(slow.log_file, b"ERROR slow\n")
        supervisor.notify(slow.log_file)
        append(fast.log_file, b"ERROR fast\n")
        supervisor.notify(fast.log_file)

        for _ in range(50):
            if read_output(fast.output_file):
                break
            await asyncio.sleep(0.05)

        assert read_output(fast.output_file) == "fast\n"
        assert not slow.output_file.exists()
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_dispatches_of_one_watchdog_are_serialized(make_definition, python_command, tmp_path, clock):
    output = tmp_path / "errors.out"
    # Each run reports how many output lines already exist when it starts
    code = (
        "import pathlib, time; "
        f"out = pathlib.Path({str(output)!r}); "
        "print(len(out.read_text().splitlines()) if out.exists() else 0); "
        "time.sleep(0.5)"
    )
    definition = make_definition(commands=(python_command(code),))
    supervisor = WatchSupervisor(observe=False, clock=clock)
    await supervisor.start([definition])
    try:
        worker = supervisor.active["errors"]
        append(definition.log_file, b"ERROR one\n")
        supervisor.notify(definition.log_file)
        for _ in range(200):
            if worker.dispatcher.stats['dispatches']:
                break
            await asyncio.sleep(0.01)

        append(definition.log_file, b"ERROR two\n")
        supervisor.notify(definition.log_file)
        await asyncio.wait_for(supervisor.drain(), timeout=10)

        assert read_output(output) == "0\n1\n"
        assert worker.dispatcher.stats['dispatches'] == 2
    finally:
        await supervisor.stop()


def failing_on(directory: Path):
    """Polling emitter start that fails for one directory"""
    original = PollingEmitter.on_thread_start

    def on_thread_start(self):
        if normalize_path(self.watch.path) == normalize_path(directory):
            raise OSError(28, "No space left on device")
        original(self)
    return on_thread_start


class UnavailableObserver(PollingObserver):
    """Stands in for an OS observer whose watch limit is exhausted"""

    def schedule(self, *args, **kwargs):
        raise OSError(28, "inotify watch limit reached")


@pytest.mark.asyncio
async def test_unwatchable_directory_fails_only_its_watchdogs(make_definition, tmp_path, monkeypatch):
    (tmp_path / "other").mkdir()
    good = make_definition(name="good")
    bad = make_definition(name="bad", log_name="other/app.log")
    monkeypatch.setattr(PollingEmitter, "on_thread_start", failing_on(tmp_path / "other"))

    supervisor = WatchSupervisor(use_polling=True, poll_interval=0.1)
    await supervisor.start([good, bad])
    try:
        assert supervisor.is_running
        assert isinstance(supervisor.failed["bad"], LogReadError)
        assert list(supervisor.active) == ["good"]
        assert supervisor.active["good"].task is not None

        await asyncio.sleep(0.3)
        append(good.log_file, b"ERROR still watched\n")
        for _ in range(100):
            if read_output(good.output_file):
                break
            await asyncio.sleep(0.1)
        assert read_output(good.output_file) == "good\n"
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_native_watch_failure_falls_back_to_polling(make_definition, monkeypatch):
    monkeypatch.setattr(monitor, "Observer", UnavailableObserver)
    definition = make_definition()

    supervisor = WatchSupervisor(poll_interval=0.1)
    await supervisor.start([definition])
    try:
        assert "errors" in supervisor.active
        assert supervisor.get_status()['polling_fallback']

        await asyncio.sleep(0.3)
        append(definition.log_file, b"ERROR via polling\n")
        for _ in range(100):
            if read_output(definition.output_file):
                break
            await asyncio.sleep(0.1)
        assert read_output(definition.output_file) == "errors\n"
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_no_watchable_directory_leaves_supervisor_consistent(make_definition, tmp_path, monkeypatch):
    monkeypatch.setattr(monitor, "Observer", UnavailableObserver)
    monkeypatch.setattr(PollingEmitter, "on_thread_start", failing_on(tmp_path))
    definition = make_definition()

    supervisor = WatchSupervisor(poll_interval=0.1)
    await supervisor.start([definition])
    try:
        assert supervisor.is_running
        assert supervisor.active == {}
        assert isinstance(supervisor.failed["errors"], LogReadError)
        await asyncio.wait_for(supervisor.wait_closed(), timeout=5)
    finally:
        await supervisor.stop()
    assert supervisor.observer is None
