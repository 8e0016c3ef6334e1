"""로컬 저장소 키 배치

각 키는 표준 키와 레거시 별칭 목록을 가진다. 별칭은 이전 단말 스키마
호환을 위해 읽기 폴백에만 쓰이고, 이전 기간 동안 쓰기는 별칭에도 복제된다
(``storage.mirror_legacy_writes``). 별칭 목록은 이전 기간이 끝나면 비운다.
"""

from __future__ import annotations

from typing import NamedTuple


class StorageKey(NamedTuple):
    key: str
    aliases: tuple[str, ...] = ()


def patients_key() -> StorageKey:
    return StorageKey("patients", ("hv_patient_profiles",))


def active_patient_key() -> StorageKey:
    return StorageKey(
        "activePatient",
        ("hv_current_patient_profile", "hv_patient_profile"),
    )


def vault_key(patient_id: str) -> StorageKey:
    return StorageKey(f"vault:{patient_id}", (f"hv_vault_{patient_id}",))


def symptoms_key(patient_id: str) -> StorageKey:
    return StorageKey(f"symptoms:{patient_id}", (f"symptoms_history_{patient_id}",))


def orders_key() -> StorageKey:
    return StorageKey("orders", ("pharmacy_orders",))


def reminders_key(patient_id: str) -> StorageKey:
    return StorageKey(f"reminders:{patient_id}", (f"hv_reminders_{patient_id}",))


def cases_key() -> StorageKey:
    return StorageKey("cases", ("medicalCases", "allMedicalCases"))
