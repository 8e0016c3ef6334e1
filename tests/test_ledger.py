import pytest

from sarathi.core.errors import StorageError
from sarathi.core.ledger import SymptomLedger
from sarathi.core.storage import KeyValueStore, MemoryBackend
from sarathi.models.records import Severity


class _BrokenBackend(MemoryBackend):
    def __init__(self) -> None:
        super().__init__()
        self.attempts = 0

    def save(self, data):
        self.attempts += 1
        raise OSError("disk full")


def test_add_and_history_order():
    ledger = SymptomLedger(KeyValueStore(MemoryBackend()))
    ledger.add_symptom("PAT-A", "fever", symptom_id="SYM-1")
    ledger.add_symptom("PAT-A", "cough", Severity.LOW, symptom_id="SYM-2")
    ledger.add_symptom("PAT-B", "rash", symptom_id="SYM-3")

    history = ledger.get_history("PAT-A")
    assert [e.id for e in history] == ["SYM-1", "SYM-2"]
    assert history[1].severity == Severity.LOW
    assert [e.id for e in ledger.get_unsynced("PAT-A")] == ["SYM-1", "SYM-2"]


def test_add_is_idempotent_on_id():
    ledger = SymptomLedger(KeyValueStore(MemoryBackend()))
    first = ledger.add_symptom("PAT-A", "fever", symptom_id="SYM-1")
    again = ledger.add_symptom("PAT-A", "changed", symptom_id="SYM-1")
    assert again.content == first.content == "fever"
    assert len(ledger.get_history("PAT-A")) == 1


def test_mark_synced_is_idempotent():
    ledger = SymptomLedger(KeyValueStore(MemoryBackend()))
    ledger.add_symptom("PAT-A", "fever", symptom_id="SYM-1")
    ledger.add_symptom("PAT-A", "cough", symptom_id="SYM-2")
    assert ledger.mark_synced("PAT-A", ["SYM-1"]) == 1
    assert ledger.mark_synced("PAT-A", ["SYM-1"]) == 0
    entry = ledger.get_history("PAT-A")[0]
    assert entry.synced and entry.synced_at is not None
    assert [e.id for e in ledger.get_unsynced("PAT-A")] == ["SYM-2"]


def test_history_survives_cache_reset():
    backend = MemoryBackend()
    ledger = SymptomLedger(KeyValueStore(backend))
    ledger.add_symptom("PAT-A", "fever", symptom_id="SYM-1")
    ledger.reset()
    assert [e.id for e in SymptomLedger(KeyValueStore(backend)).get_history("PAT-A")] == ["SYM-1"]


def test_write_failure_raises_after_retries():
    backend = _BrokenBackend()
    ledger = SymptomLedger(KeyValueStore(backend), write_retries=3)
    with pytest.raises(StorageError) as exc_info:
        ledger.add_symptom("PAT-A", "fever")
    assert exc_info.value.code == "ST_WRITE_001"
    assert backend.attempts == 3
    assert ledger.get_history("PAT-A") == []


def test_stats_and_csv():
    ledger = SymptomLedger(KeyValueStore(MemoryBackend()))
    ledger.add_symptom("PAT-A", "chest pain", Severity.HIGH, symptom_id="SYM-1")
    ledger.add_symptom("PAT-A", "mild cough", Severity.LOW, symptom_id="SYM-2")
    ledger.mark_synced("PAT-A", ["SYM-1"])

    stats = ledger.stats("PAT-A")
    assert stats["total"] == 2
    assert stats["synced"] == 1
    assert stats["high_severity"] == 1
    assert stats["low_severity"] == 1

    lines = ledger.export_csv("PAT-A").splitlines()
    assert lines[0] == "Date,Time,Symptom,Severity,Synced"
    assert lines[1].endswith("chest pain,HIGH,Yes")
    assert lines[2].endswith("mild cough,LOW,No")
