from sarathi.core.keys import active_patient_key
from sarathi.core.registry import PatientRegistry, generate_patient_id
from sarathi.core.storage import KeyValueStore, MemoryBackend


def _registry(initial=None) -> PatientRegistry:
    return PatientRegistry(KeyValueStore(MemoryBackend(initial)))


def test_patient_id_is_deterministic():
    assert generate_patient_id("Ravi Kumar", 45, "Nalgonda") == "PAT-RAVI_KUMAR_45_NALGONDA"
    assert generate_patient_id("Ravi Kumar", 45, "Nalgonda") == generate_patient_id(
        "Ravi Kumar", "45", "Nalgonda"
    )


def test_non_ascii_names_do_not_collide():
    ram = generate_patient_id("राम", 40, "Nalgonda")
    ravi = generate_patient_id("रवि", 40, "Nalgonda")
    assert ram != ravi
    assert ram.startswith("PAT-____40_NALGONDA-")
    assert ram == generate_patient_id("राम", "40", "Nalgonda")


def test_register_or_update_keeps_position():
    registry = _registry()
    first = registry.create_profile("Ravi", 45, "Nalgonda")
    second = registry.create_profile("Lakshmi", 30, "Warangal")
    registry.register_or_update(first)
    registry.register_or_update(second)

    updated = registry.create_profile("Ravi", 45, "Nalgonda", language="Telugu")
    registry.register_or_update(updated)

    patients = registry.list_patients()
    assert [p.patient_id for p in patients] == [first.patient_id, second.patient_id]
    assert patients[0].language == "Telugu"


def test_update_refreshes_active_pointer():
    registry = _registry()
    profile = registry.create_profile("Ravi", 45, "Nalgonda")
    registry.switch_to(profile)
    registry.register_or_update(profile.model_copy(update={"district": "Miryalaguda"}))
    assert registry.get_active().district == "Miryalaguda"


def test_malformed_patient_list_is_empty():
    registry = _registry({"patients": "not json"})
    assert registry.list_patients() == []
    registry = _registry({"patients": '[{"name": "no id"}, {"patientId": "PAT-X"}]'})
    assert [p.patient_id for p in registry.list_patients()] == ["PAT-X"]


def test_restore_session_prefers_active_then_first():
    registry = _registry()
    assert registry.restore_session() is None
    first = registry.create_profile("Ravi", 45, "Nalgonda")
    second = registry.create_profile("Lakshmi", 30, "Warangal")
    registry.register_or_update(first)
    registry.register_or_update(second)
    assert registry.restore_session().patient_id == first.patient_id
    registry.switch_to(second)
    assert registry.restore_session().patient_id == second.patient_id


def test_switch_runs_reset_hooks_before_activation():
    registry = _registry()
    seen = []
    registry.add_reset_hook(lambda: seen.append(registry.get_active()))
    profile = registry.create_profile("Ravi", 45, "Nalgonda")
    registry.switch_to(profile)
    assert seen == [None]
    assert registry.get(profile.patient_id) is not None


def test_switch_to_none_clears_active_and_legacy_keys():
    registry = _registry()
    registry.switch_to(registry.create_profile("Ravi", 45, "Nalgonda"))
    registry.switch_to(None)
    assert registry.get_active() is None
    store = registry._store
    for key in (active_patient_key().key, *active_patient_key().aliases):
        assert store.get(key) is None
