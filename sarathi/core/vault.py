"""
sarathi/core/vault.py

환자별 진료 레코드 저장소(Medical Vault).

모든 변경은 반환 전에 동기식으로 저장된다. 사용자 동작 직후 재시작해도
변경 사항이 남아 있어야 하기 때문이다. 활성 볼트(메모리 캐시)는 항상
활성 환자 한 명의 것만 보관한다.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from pydantic import ValidationError

from sarathi.core.errors import PatientNotFoundError
from sarathi.core.keys import vault_key
from sarathi.core.registry import PatientRegistry
from sarathi.core.storage import KeyValueStore
from sarathi.models.profiles import PatientProfile
from sarathi.models.records import MedicalRecord, RecordStatus, RecordType, SymptomRecord
from sarathi.models.symptom import PatientSymptom
from sarathi.models.vault import MedicalVault

logger = logging.getLogger(__name__)

RecordPredicate = Callable[[MedicalRecord], bool]
RecordUpdater = Callable[[MedicalRecord], MedicalRecord]

_PROFILE_FIELDS = (
    "name",
    "age",
    "location",
    "state",
    "district",
    "street_village",
    "house_number",
    "phone_number",
    "language",
)


def _symptom_from_ledger(entry: PatientSymptom) -> SymptomRecord:
    return SymptomRecord(
        id=entry.id,
        content=entry.content,
        timestamp=entry.timestamp,
        severity=entry.severity,
        status=RecordStatus.SYNCED if entry.synced else RecordStatus.PENDING,
    )


class VaultStore:
    """환자별 볼트 로드/추가/갱신/병합"""

    def __init__(self, store: KeyValueStore, registry: PatientRegistry) -> None:
        self._store = store
        self._registry = registry
        self._active: MedicalVault | None = None

    @property
    def active(self) -> MedicalVault | None:
        """활성 환자의 메모리상 볼트"""
        return self._active

    def reset(self) -> None:
        """활성 볼트 캐시 비우기(환자 전환 시 호출)"""
        self._active = None

    def load(self, patient_id: str) -> MedicalVault:
        """저장소에서 볼트 로드, 없으면 프로필로 초기화

        Args:
            patient_id: 환자 식별자

        Returns:
            볼트

        Raises:
            PatientNotFoundError: 저장된 볼트도 등록된 프로필도 없는 경우
        """
        raw = self._store.read_json(vault_key(patient_id), None)
        records: object = []
        if isinstance(raw, dict):
            if "records" not in raw:
                logger.warning("볼트 records 누락 patient_id=%s, 빈 목록으로 보정", patient_id)
            raw.setdefault("patientId", patient_id)
            try:
                return MedicalVault.model_validate(raw)
            except ValidationError as exc:
                logger.error(
                    "볼트 헤더 손상 patient_id=%s, 프로필로 헤더 복구: %d errors",
                    patient_id,
                    exc.error_count(),
                )
                records = raw.get("records")
        elif raw is not None:
            logger.error("볼트 형식 오류 patient_id=%s", patient_id)

        profile = self._registry.get(patient_id)
        if profile is None:
            raise PatientNotFoundError(patient_id)
        if records:
            # 헤더만 프로필로 교체, 레코드는 개별 검증으로 보존
            return MedicalVault(**profile.model_dump(), records=records)
        logger.info("새 볼트 초기화 patient_id=%s", patient_id)
        return MedicalVault.from_profile(profile)

    def _save(self, vault: MedicalVault) -> bool:
        saved = self._store.write_json(vault_key(vault.patient_id), vault.to_json_dict())
        if self._active is not None and self._active.patient_id == vault.patient_id:
            self._active = vault
        return saved

    def activate(
        self, patient_id: str, ledger_entries: Iterable[PatientSymptom] = ()
    ) -> MedicalVault:
        """볼트를 로드하고 원장과 병합한 뒤 활성 볼트로 설정

        Args:
            patient_id: 환자 식별자
            ledger_entries: 증상 원장 항목

        Returns:
            활성 볼트
        """
        self._active = None
        vault = self.merge_external(patient_id, ledger_entries)
        self._active = vault
        logger.info("볼트 활성화 patient_id=%s records=%d", patient_id, len(vault.records))
        return vault

    def append_record(self, patient_id: str, record: MedicalRecord) -> MedicalVault:
        """레코드 추가 후 즉시 저장

        Args:
            patient_id: 환자 식별자
            record: 추가할 레코드

        Returns:
            갱신된 볼트
        """
        with self._store.lock_for(vault_key(patient_id).key):
            vault = self.load(patient_id)
            records = vault.records if isinstance(vault.records, list) else []
            vault = vault.model_copy(update={"records": [*records, record]})
            if not self._save(vault):
                logger.error("레코드 저장 실패 patient_id=%s record=%s", patient_id, record.id)
        logger.debug("레코드 추가 %s type=%s", record.id, record.type)
        return vault

    def update_record(
        self,
        patient_id: str,
        predicate: RecordPredicate,
        updater: RecordUpdater,
    ) -> int:
        """조건에 맞는 레코드를 제자리 교체 후 저장

        Args:
            patient_id: 환자 식별자
            predicate: 대상 레코드 판별 함수
            updater: 새 레코드를 반환하는 함수

        Returns:
            갱신된 레코드 수
        """
        with self._store.lock_for(vault_key(patient_id).key):
            vault = self.load(patient_id)
            updated = 0
            records: list[MedicalRecord] = []
            for record in vault.records:
                if predicate(record):
                    records.append(updater(record))
                    updated += 1
                else:
                    records.append(record)
            if updated:
                self._save(vault.model_copy(update={"records": records}))
        return updated

    def mark_synced(self, patient_id: str, record_ids: Iterable[str]) -> int:
        """주어진 PENDING 레코드를 SYNCED로 전이

        Args:
            patient_id: 환자 식별자
            record_ids: 레코드 ID 목록

        Returns:
            전이된 레코드 수
        """
        ids = set(record_ids)
        if not ids:
            return 0
        return self.update_record(
            patient_id,
            lambda r: r.id in ids and r.status == RecordStatus.PENDING,
            lambda r: r.model_copy(update={"status": RecordStatus.SYNCED}),
        )

    def pending_records(self, patient_id: str) -> list[MedicalRecord]:
        return [r for r in self.load(patient_id).records if r.status == RecordStatus.PENDING]

    def merge_external(
        self, patient_id: str, symptom_entries: Iterable[PatientSymptom]
    ) -> MedicalVault:
        """원장 항목으로 SYMPTOM 레코드를 재구성해 병합

        원장이 증상 이력의 기준이다. 같은 ID의 볼트 레코드는 원장 버전으로
        교체되고, 볼트에 없는 항목은 시각 순서 위치에 삽입된다.

        Args:
            patient_id: 환자 식별자
            symptom_entries: 증상 원장 항목

        Returns:
            병합된 볼트
        """
        entries = list(symptom_entries)
        with self._store.lock_for(vault_key(patient_id).key):
            vault = self.load(patient_id)
            if not entries:
                self._save(vault)
                return vault
            ledger_by_id = {entry.id: entry for entry in entries}
            records: list[MedicalRecord] = []
            seen: set[str] = set()
            for record in vault.records:
                entry = ledger_by_id.get(record.id)
                if record.type == RecordType.SYMPTOM and entry is not None:
                    if record.id in seen:
                        continue
                    records.append(_symptom_from_ledger(entry))
                    seen.add(record.id)
                else:
                    records.append(record)
            for entry in entries:
                if entry.id in seen:
                    continue
                position = len(records)
                for index, record in enumerate(records):
                    if record.timestamp > entry.timestamp:
                        position = index
                        break
                records.insert(position, _symptom_from_ledger(entry))
                seen.add(entry.id)
            merged = vault.model_copy(update={"records": records})
            self._save(merged)
        logger.info("원장 병합 patient_id=%s symptoms=%d", patient_id, len(entries))
        return merged

    def refresh_profile(self, profile: PatientProfile) -> MedicalVault:
        """재온보딩으로 바뀐 주소/언어 필드를 볼트 헤더에 반영

        Args:
            profile: 갱신된 프로필

        Returns:
            갱신된 볼트
        """
        with self._store.lock_for(vault_key(profile.patient_id).key):
            vault = self.load(profile.patient_id)
            update = {name: getattr(profile, name) for name in _PROFILE_FIELDS}
            vault = vault.model_copy(update=update)
            self._save(vault)
        return vault
