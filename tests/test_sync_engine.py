import threading

from sarathi.core.errors import BackendError, ProfileIncompleteError
from sarathi.core.ledger import SymptomLedger
from sarathi.core.registry import PatientRegistry
from sarathi.core.storage import KeyValueStore, MemoryBackend
from sarathi.core.sync import DeltaSyncEngine, SyncState
from sarathi.core.telemetry import TelemetryStore
from sarathi.core.vault import VaultStore
from sarathi.models.records import (
    HistoryRecord,
    Media,
    RecordStatus,
    Severity,
    SymptomRecord,
    VisualTriageRecord,
)
from sarathi.models.sync import VisualTriageResult


class FakeBackend:
    def __init__(self, fail_delta=None, fail_visual=False):
        self.fail_delta = fail_delta
        self.fail_visual = fail_visual
        self.delta_calls = []
        self.visual_calls = []
        self.on_delta = None

    def delta_sync(self, payload):
        self.delta_calls.append(payload)
        if self.on_delta is not None:
            self.on_delta()
        if self.fail_delta is not None:
            raise self.fail_delta
        return {
            "summary": "ok",
            "urgency": "HIGH",
            "suggestedSpecialty": "Cardiology",
            "packetSize": "1KB",
        }

    def visual_triage(self, image):
        self.visual_calls.append(image)
        if self.fail_visual:
            raise BackendError("NET_TIMEOUT_001", "timeout")
        return VisualTriageResult(findings="healing wound", urgency=Severity.LOW)


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def _engine(backend, age=45, settle=0.0, clock=None, telemetry=None, on_deferred=None):
    store = KeyValueStore(MemoryBackend())
    registry = PatientRegistry(store)
    vaults = VaultStore(store, registry)
    ledger = SymptomLedger(store)
    profile = registry.create_profile("Ravi", age, "Nalgonda")
    registry.switch_to(profile)
    vaults.activate(profile.patient_id)
    kwargs = {"clock": clock} if clock else {}
    engine = DeltaSyncEngine(
        registry,
        vaults,
        ledger,
        backend,
        telemetry=telemetry,
        settle_seconds=settle,
        on_deferred=on_deferred,
        **kwargs,
    )
    return engine, registry, vaults, ledger, profile.patient_id


def _symptom(vaults, ledger, pid, record_id, text):
    vaults.append_record(pid, SymptomRecord(id=record_id, content=text))
    ledger.add_symptom(pid, text, symptom_id=record_id)


def _visual(vaults, pid, record_id):
    vaults.append_record(
        pid,
        VisualTriageRecord(
            id=record_id,
            content="photo",
            media=Media(low_res_data=f"data:image/jpeg;base64,{record_id}"),
        ),
    )


def _status(vaults, pid):
    return {r.id: r.status for r in vaults.load(pid).records}


def test_no_pending_records_is_noop():
    backend = FakeBackend()
    engine, *_ = _engine(backend)
    result = engine.trigger()
    assert result.noop
    assert backend.delta_calls == []
    assert backend.visual_calls == []


def test_successful_cycle_marks_vault_and_ledger():
    backend = FakeBackend()
    engine, _, vaults, ledger, pid = _engine(backend)
    _symptom(vaults, ledger, pid, "SYM-1", "chest pain")
    _symptom(vaults, ledger, pid, "SYM-2", "sweating")
    vaults.append_record(pid, HistoryRecord(id="HIS-1", content="smoker"))

    result = engine.trigger()

    assert result.submitted
    assert len(backend.delta_calls) == 1
    payload = backend.delta_calls[0]
    assert payload["newSymptoms"] == "chest pain, sweating"
    assert payload["currentSymptoms"]["severity"] == "HIGH"
    assert payload["currentSymptoms"]["duration"] == "Current episode"
    assert payload["vault"]["name"] == "Ravi"
    assert result.response.suggested_specialty == "Cardiology"
    assert set(result.synced_ids) == {"SYM-1", "SYM-2", "HIS-1"}
    assert set(_status(vaults, pid).values()) == {RecordStatus.SYNCED}
    assert ledger.get_unsynced(pid) == []


def test_backend_failure_leaves_records_pending():
    backend = FakeBackend(fail_delta=BackendError("NET_CONN_001", "offline"))
    engine, _, vaults, ledger, pid = _engine(backend)
    _symptom(vaults, ledger, pid, "SYM-1", "chest pain")

    result = engine.trigger()

    assert not result.submitted
    assert result.error_code == "NET_CONN_001"
    assert result.provisional["suggestedSpecialty"] == "Cardiology"
    assert _status(vaults, pid) == {"SYM-1": RecordStatus.PENDING}
    assert [e.id for e in ledger.get_unsynced(pid)] == ["SYM-1"]

    backend.fail_delta = None
    assert engine.trigger().submitted
    assert _status(vaults, pid) == {"SYM-1": RecordStatus.SYNCED}


def test_visual_failure_does_not_block_symptoms():
    backend = FakeBackend(fail_visual=True)
    engine, _, vaults, ledger, pid = _engine(backend)
    _visual(vaults, pid, "VIS-1")
    _symptom(vaults, ledger, pid, "SYM-1", "rash")

    result = engine.trigger()

    assert result.visual_ok is False
    assert result.submitted
    assert _status(vaults, pid) == {
        "VIS-1": RecordStatus.PENDING,
        "SYM-1": RecordStatus.SYNCED,
    }


def test_only_first_visual_record_is_triaged():
    backend = FakeBackend()
    engine, _, vaults, _, pid = _engine(backend)
    _visual(vaults, pid, "VIS-1")
    _visual(vaults, pid, "VIS-2")

    engine.trigger()

    assert backend.visual_calls == ["data:image/jpeg;base64,VIS-1"]
    assert backend.delta_calls == []
    records = {r.id: r for r in vaults.load(pid).records}
    assert records["VIS-1"].status == RecordStatus.SYNCED
    assert records["VIS-1"].media.analysis == "healing wound"
    assert records["VIS-1"].severity == Severity.LOW
    assert records["VIS-2"].status == RecordStatus.PENDING


def test_incomplete_profile_is_not_retried():
    backend = FakeBackend()
    engine, registry, vaults, ledger, pid = _engine(backend, age=0)
    _symptom(vaults, ledger, pid, "SYM-1", "fever")

    first = engine.trigger()
    second = engine.trigger()

    assert first.error_code == second.error_code == "VAL_PROFILE_001"
    assert backend.delta_calls == []
    assert _status(vaults, pid) == {"SYM-1": RecordStatus.PENDING}

    registry.register_or_update(registry.get(pid).model_copy(update={"age": 45}))
    assert engine.trigger().submitted


def test_backend_validation_rejection_blocks_until_profile_changes():
    backend = FakeBackend(fail_delta=ProfileIncompleteError("name and age are required"))
    engine, _, vaults, ledger, pid = _engine(backend)
    _symptom(vaults, ledger, pid, "SYM-1", "fever")

    engine.trigger()
    engine.trigger()
    assert len(backend.delta_calls) == 1

    engine.reset()
    engine.trigger()
    assert len(backend.delta_calls) == 2


def test_reentrant_trigger_is_rejected():
    backend = FakeBackend()
    engine, _, vaults, ledger, pid = _engine(backend)
    _symptom(vaults, ledger, pid, "SYM-1", "fever")
    nested = []
    backend.on_delta = lambda: nested.append((engine.state, engine.trigger()))

    engine.trigger()

    assert nested == [(SyncState.SYNCING, None)]
    assert len(backend.delta_calls) == 1


def test_concurrent_triggers_submit_once():
    backend = FakeBackend()
    engine, _, vaults, ledger, pid = _engine(backend)
    _symptom(vaults, ledger, pid, "SYM-1", "fever")
    entered = threading.Event()
    release = threading.Event()

    def _block():
        entered.set()
        release.wait(5)

    backend.on_delta = _block
    worker = threading.Thread(target=engine.trigger)
    worker.start()
    assert entered.wait(5)
    assert engine.trigger() is None
    release.set()
    worker.join(5)

    assert len(backend.delta_calls) == 1
    assert engine.state == SyncState.IDLE


def test_settle_window_suppresses_triggers():
    clock = FakeClock()
    backend = FakeBackend(fail_delta=BackendError("NET_CONN_001", "offline"))
    engine, _, vaults, ledger, pid = _engine(backend, settle=2.0, clock=clock)
    _symptom(vaults, ledger, pid, "SYM-1", "fever")

    assert engine.trigger() is not None
    assert engine.state == SyncState.SYNCING
    assert engine.trigger() is None
    clock.now += 2.5
    assert engine.state == SyncState.IDLE
    assert engine.trigger() is not None
    assert len(backend.delta_calls) == 2


def test_cycle_writes_telemetry_status():
    telemetry = TelemetryStore(":memory:")
    backend = FakeBackend()
    engine, _, vaults, ledger, pid = _engine(backend, telemetry=telemetry)
    _symptom(vaults, ledger, pid, "SYM-1", "fever")

    engine.trigger()

    rows = telemetry.query_status()
    assert len(rows) == 1
    assert rows[0][0] == pid
    assert rows[0][5] == 0
    events = [row[2] for row in telemetry.query_logs("patient_id = ?", [pid])]
    assert sorted(events) == ["sync_complete", "sync_start"]
    telemetry.close()


def test_trigger_during_settle_is_deferred_to_window_end():
    clock = FakeClock()
    deferred = []
    backend = FakeBackend()
    engine, _, vaults, ledger, pid = _engine(
        backend, settle=2.0, clock=clock, on_deferred=deferred.append
    )
    _symptom(vaults, ledger, pid, "SYM-1", "chest pain")
    engine.trigger()

    clock.now += 0.5
    _symptom(vaults, ledger, pid, "SYM-2", "sweating")
    assert engine.trigger() is None
    assert deferred == [1.5]

    clock.now += 1.5
    assert engine.trigger().submitted
    assert _status(vaults, pid)["SYM-2"] == RecordStatus.SYNCED


def test_trigger_while_running_is_deferred_after_cycle():
    deferred = []
    backend = FakeBackend()
    engine, _, vaults, ledger, pid = _engine(backend, settle=2.0, on_deferred=deferred.append)
    _symptom(vaults, ledger, pid, "SYM-1", "fever")
    backend.on_delta = lambda: engine.trigger()

    engine.trigger()

    assert deferred == [2.0]
    assert len(backend.delta_calls) == 1
