"""
sarathi/core/ledger.py

환자별 증상 이력 원장(Symptom History Ledger).

볼트와 독립된 추가 전용 감사 로그다. 볼트가 초기화되거나 잘못 동기화되어도
환자가 보고한 증상은 여기에서 복원된다. 기존 항목의 content/timestamp는
절대 덮어쓰지 않고, 항목을 삭제하지 않는다.
"""

from __future__ import annotations

import csv
import io
import logging
from typing import Iterable

from pydantic import ValidationError

from sarathi.core.errors import StorageError
from sarathi.core.keys import symptoms_key
from sarathi.core.storage import KeyValueStore
from sarathi.models.records import Severity
from sarathi.models.symptom import PatientSymptom
from sarathi.utils.parsing import make_record_id
from sarathi.utils.timeutil import ms_to_datetime, now_ms

logger = logging.getLogger(__name__)


class SymptomLedger:
    """추가 전용 증상 이력 원장"""

    def __init__(self, store: KeyValueStore, write_retries: int = 3) -> None:
        self._store = store
        self._write_retries = max(1, write_retries)
        self._cache: dict[str, list[PatientSymptom]] = {}

    def reset(self) -> None:
        """메모리 캐시 비우기(환자 전환 시 호출)"""
        self._cache.clear()

    def _load(self, patient_id: str) -> list[PatientSymptom]:
        if patient_id in self._cache:
            return list(self._cache[patient_id])
        raw = self._store.read_json(symptoms_key(patient_id), [])
        if not isinstance(raw, list):
            logger.warning("증상 원장 형식 오류 patient_id=%s, 빈 목록으로 처리", patient_id)
            raw = []
        entries: list[PatientSymptom] = []
        for item in raw:
            try:
                entries.append(PatientSymptom.model_validate(item))
            except ValidationError as exc:
                logger.warning("손상된 증상 항목 건너뜀: %s", exc.error_count())
        self._cache[patient_id] = entries
        return list(entries)

    def _persist(self, patient_id: str, entries: list[PatientSymptom]) -> bool:
        data = [entry.to_json_dict() for entry in entries]
        for attempt in range(1, self._write_retries + 1):
            if self._store.write_json(symptoms_key(patient_id), data):
                self._cache[patient_id] = list(entries)
                return True
            logger.warning(
                "증상 원장 저장 재시도 patient_id=%s (%d/%d)",
                patient_id,
                attempt,
                self._write_retries,
            )
        return False

    def add_symptom(
        self,
        patient_id: str,
        content: str,
        severity: Severity = Severity.MEDIUM,
        symptom_id: str | None = None,
    ) -> PatientSymptom:
        """증상 항목 추가

        Args:
            patient_id: 환자 식별자
            content: 증상 원문
            severity: 중증도
            symptom_id: 볼트 레코드와 공유할 ID(없으면 생성)

        Returns:
            추가된 원장 항목

        Raises:
            StorageError: 재시도 후에도 저장 실패 시
        """
        symptom = PatientSymptom(
            id=symptom_id or make_record_id("SYM"),
            patient_id=patient_id,
            content=content,
            severity=severity,
        )
        key = symptoms_key(patient_id).key
        with self._store.lock_for(key):
            entries = self._load(patient_id)
            if any(entry.id == symptom.id for entry in entries):
                logger.info("이미 기록된 증상 %s", symptom.id)
                return next(entry for entry in entries if entry.id == symptom.id)
            if not self._persist(patient_id, [*entries, symptom]):
                raise StorageError(key, "증상 원장 저장 실패")
        logger.info("증상 기록 patient_id=%s id=%s", patient_id, symptom.id)
        return symptom

    def get_history(self, patient_id: str) -> list[PatientSymptom]:
        """시각 순 전체 이력 반환"""
        return sorted(self._load(patient_id), key=lambda entry: entry.timestamp)

    def get_unsynced(self, patient_id: str) -> list[PatientSymptom]:
        return [entry for entry in self.get_history(patient_id) if not entry.synced]

    def mark_synced(self, patient_id: str, symptom_ids: Iterable[str]) -> int:
        """주어진 항목만 synced로 표시(이미 표시된 항목은 무시)

        Args:
            patient_id: 환자 식별자
            symptom_ids: 증상 ID 목록

        Returns:
            새로 표시된 항목 수
        """
        ids = set(symptom_ids)
        if not ids:
            return 0
        with self._store.lock_for(symptoms_key(patient_id).key):
            stamp = now_ms()
            changed = 0
            entries = []
            for entry in self._load(patient_id):
                if entry.id in ids and not entry.synced:
                    entry = entry.model_copy(update={"synced": True, "synced_at": stamp})
                    changed += 1
                entries.append(entry)
            if changed and not self._persist(patient_id, entries):
                logger.error("증상 동기화 표시 저장 실패 patient_id=%s", patient_id)
                return 0
        logger.info("증상 %d건 동기화 표시 patient_id=%s", changed, patient_id)
        return changed

    def stats(self, patient_id: str) -> dict:
        """이력 통계

        Returns:
            total, synced, unsynced, 중증도별 건수, 마지막 기록 시각
        """
        history = self.get_history(patient_id)
        return {
            "total": len(history),
            "synced": sum(1 for e in history if e.synced),
            "unsynced": sum(1 for e in history if not e.synced),
            "high_severity": sum(1 for e in history if e.severity == Severity.HIGH),
            "medium_severity": sum(1 for e in history if e.severity == Severity.MEDIUM),
            "low_severity": sum(1 for e in history if e.severity == Severity.LOW),
            "last_symptom_at": history[-1].timestamp if history else None,
        }

    def export_csv(self, patient_id: str) -> str:
        """진료 기록용 CSV 내보내기"""
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(["Date", "Time", "Symptom", "Severity", "Synced"])
        for entry in self.get_history(patient_id):
            moment = ms_to_datetime(entry.timestamp)
            writer.writerow(
                [
                    moment.strftime("%Y-%m-%d"),
                    moment.strftime("%H:%M:%S"),
                    entry.content,
                    entry.severity.value,
                    "Yes" if entry.synced else "No",
                ]
            )
        return buffer.getvalue()
