import threading

from sarathi.core.connectivity import ConnectivityMonitor, ConnectivityState
from sarathi.core.errors import StorageError
from sarathi.core.scheduler import DEBOUNCE_JOB_ID, POLL_JOB_ID, SyncScheduler


def test_scheduler_start_registers_poll_job():
    scheduler = SyncScheduler(lambda: None, poll_seconds=60)
    background = scheduler.start()
    assert background.get_job(POLL_JOB_ID) is not None
    assert scheduler.start() is background
    scheduler.shutdown()
    assert not scheduler.running


def test_debounced_request_replaces_pending_one():
    scheduler = SyncScheduler(lambda: None, debounce_seconds=60, poll_seconds=0)
    scheduler.start()
    first = scheduler.schedule_debounced()
    second = scheduler.schedule_debounced()
    assert first.id == second.id == DEBOUNCE_JOB_ID
    assert [job.id for job in scheduler._scheduler.get_jobs()] == [DEBOUNCE_JOB_ID]
    assert scheduler.cancel_pending() == 1
    assert scheduler._scheduler.get_jobs() == []
    scheduler.shutdown()


def test_requests_are_skipped_when_not_running():
    scheduler = SyncScheduler(lambda: None)
    assert scheduler.schedule_debounced(0) is None
    assert scheduler.fire_now() is None


def test_fire_now_runs_trigger_on_worker():
    fired = threading.Event()
    scheduler = SyncScheduler(fired.set, poll_seconds=0)
    scheduler.start()
    scheduler.fire_now()
    assert fired.wait(5)
    scheduler.shutdown()


def test_trigger_errors_are_logged_not_raised(caplog):
    def _fail():
        raise StorageError("symptoms:PAT-1", "disk full")

    scheduler = SyncScheduler(_fail)
    scheduler._run()
    assert "ST_WRITE_001" in caplog.text


def test_poll_skips_when_offline():
    calls = []
    online = {"value": False}
    scheduler = SyncScheduler(lambda: calls.append(1), is_online=lambda: online["value"])
    scheduler._poll()
    online["value"] = True
    scheduler._poll()
    assert calls == [1]


def test_connectivity_transition_schedules_sync():
    scheduler = SyncScheduler(lambda: None, debounce_seconds=60, poll_seconds=0)
    scheduler.start()
    monitor = ConnectivityMonitor(scheduler)
    assert not monitor.is_online

    job = monitor.set_state(ConnectivityState.LOW_SIGNAL)
    assert job is not None and job.id == DEBOUNCE_JOB_ID
    assert monitor.is_online
    assert monitor.set_state(ConnectivityState.LOW_SIGNAL) is None

    assert monitor.set_state(ConnectivityState.OFFLINE) is None
    assert scheduler._scheduler.get_job(DEBOUNCE_JOB_ID) is None
    scheduler.shutdown()


def test_connectivity_values():
    assert ConnectivityState.LOW_SIGNAL.value == "2G/EDGE"
    assert ConnectivityState.ONLINE.value == "4G/5G"
