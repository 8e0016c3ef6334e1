import json

from sarathi.core.keys import patients_key, vault_key
from sarathi.core.storage import JsonFileBackend, KeyValueStore, MemoryBackend, open_store


class _FlakyBackend(MemoryBackend):
    def __init__(self) -> None:
        super().__init__()
        self.fail = False

    def save(self, data):
        if self.fail:
            raise OSError("quota exceeded")
        super().save(data)


def test_read_falls_back_to_legacy_key():
    backend = MemoryBackend({"hv_patient_profiles": json.dumps([{"patientId": "PAT-A"}])})
    store = KeyValueStore(backend)
    assert store.read_json(patients_key(), []) == [{"patientId": "PAT-A"}]


def test_canonical_key_wins_over_legacy():
    backend = MemoryBackend(
        {
            "patients": json.dumps([{"patientId": "PAT-NEW"}]),
            "hv_patient_profiles": json.dumps([{"patientId": "PAT-OLD"}]),
        }
    )
    store = KeyValueStore(backend)
    assert store.read_json(patients_key(), [])[0]["patientId"] == "PAT-NEW"


def test_write_mirrors_legacy_aliases():
    store = KeyValueStore(MemoryBackend())
    assert store.write_json(vault_key("PAT-A"), {"records": []})
    assert store.get("vault:PAT-A") == store.get("hv_vault_PAT-A")


def test_write_without_mirroring():
    store = KeyValueStore(MemoryBackend(), mirror_legacy=False)
    store.write_json(vault_key("PAT-A"), {"records": []})
    assert store.get("vault:PAT-A") is not None
    assert store.get("hv_vault_PAT-A") is None


def test_failed_write_keeps_prior_state():
    backend = _FlakyBackend()
    store = KeyValueStore(backend)
    assert store.set("k", "v1")
    backend.fail = True
    assert store.set("k", "v2") is False
    assert store.get("k") == "v1"
    assert store.set("other", "x") is False
    assert store.get("other") is None


def test_malformed_json_returns_default():
    store = KeyValueStore(MemoryBackend({"patients": "{not json"}))
    assert store.read_json(patients_key(), []) == []


def test_delete_removes_aliases():
    store = KeyValueStore(MemoryBackend())
    store.write_json(patients_key(), [])
    store.delete(patients_key())
    assert store.keys() == []


def test_file_backend_survives_restart(tmp_path):
    path = tmp_path / "device.json"
    store = open_store(str(path))
    store.set("k", "v")
    reopened = KeyValueStore(JsonFileBackend(path))
    assert reopened.get("k") == "v"


def test_corrupt_file_is_moved_aside(tmp_path):
    path = tmp_path / "device.json"
    path.write_text("{broken", encoding="utf-8")
    store = KeyValueStore(JsonFileBackend(path))
    assert store.keys() == []
    assert (tmp_path / "device.corrupt").exists()
