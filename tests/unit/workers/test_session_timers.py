import threading
import time
from datetime import timedelta

from fieldflow.workers.session_timers import SessionTimerScheduler


def test_due_jobs_fire_in_time_order(timers, clock):
    fired = []
    timers.schedule_after(timedelta(minutes=10), fired.append, "late")
    timers.schedule_after(timedelta(minutes=5), fired.append, "early")

    assert timers.process_due_jobs() == 0

    clock.advance(minutes=10)
    assert timers.process_due_jobs() == 2
    assert fired == ["early", "late"]
    assert timers.pending_jobs() == []


def test_cancelled_job_never_fires(timers, clock):
    fired = []
    handle = timers.schedule_after(timedelta(minutes=1), fired.append, "x", name="session-end")

    assert handle.pending
    assert handle.job_id.startswith("session-end#")
    assert handle.cancel() is True
    assert handle.cancel() is False

    clock.advance(minutes=2)
    assert timers.process_due_jobs() == 0
    assert fired == []


def test_failing_job_does_not_stop_others(timers, clock):
    fired = []

    def broken():
        raise RuntimeError("timer callback bug")

    timers.schedule_after(timedelta(seconds=1), broken)
    timers.schedule_after(timedelta(seconds=1), fired.append, "ok")

    clock.advance(seconds=1)
    timers.process_due_jobs()

    assert fired == ["ok"]


def test_kwargs_are_passed_through(timers, clock):
    seen = {}
    timers.schedule_once(clock(), lambda **kw: seen.update(kw), device_id="dev-1", session_id="s1")

    timers.process_due_jobs()

    assert seen == {"device_id": "dev-1", "session_id": "s1"}


def test_started_scheduler_runs_jobs_on_workers(clock):
    scheduler = SessionTimerScheduler(check_interval_seconds=0.01, max_workers=2, clock=clock)
    done = threading.Event()
    scheduler.schedule_once(clock(), done.set)

    scheduler.start()
    try:
        assert scheduler.is_running()
        assert done.wait(timeout=2)
    finally:
        scheduler.shutdown()

    assert not scheduler.is_running()


def test_restart_is_safe(clock):
    scheduler = SessionTimerScheduler(check_interval_seconds=0.01, clock=clock)
    scheduler.start()
    scheduler.start()
    scheduler.stop()
    scheduler.stop()

    fired = []
    scheduler.schedule_once(clock(), fired.append, 1)
    scheduler.start()
    deadline = time.monotonic() + 2
    while not fired and time.monotonic() < deadline:
        time.sleep(0.01)
    scheduler.stop()

    assert fired == [1]
