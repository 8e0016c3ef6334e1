"""
sarathi/core/sync.py

델타 동기화 엔진.

활성 환자의 PENDING 레코드를 모아 백엔드로 보내고, 성공한 레코드만
SYNCED로 전이한다. 실패는 치명적이지 않으며 레코드는 다음 트리거까지
PENDING으로 남는다.

동기화는 프로세스당 하나만 진행된다. 스케줄러 작업은 워커 스레드에서
실행되므로 단일 실행 보장은 플래그가 아닌 락(non-blocking acquire)으로
처리하고, 작업을 수행한 주기 뒤에는 settle 시간 동안 새 트리거를 실행하지
않는다. 그 사이 들어온 트리거는 settle이 끝난 시점으로 연기된다.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from pydantic import ValidationError

from sarathi.clients.backend_api import BackendClient
from sarathi.core.errors import BackendError, ProfileIncompleteError
from sarathi.core.ledger import SymptomLedger
from sarathi.core.logger import log_event
from sarathi.core.registry import PatientRegistry
from sarathi.core.routing import offline_summary
from sarathi.core.telemetry import TelemetryStore
from sarathi.core.vault import VaultStore
from sarathi.models.profiles import PatientProfile
from sarathi.models.records import MedicalRecord, RecordType, VisualTriageRecord
from sarathi.models.sync import DeltaSyncResponse
from sarathi.transforms.delta_sync import from_backend, to_backend
from sarathi.utils.timeutil import utc_now_iso

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    IDLE = "IDLE"
    SYNCING = "SYNCING"


@dataclass
class SyncResult:
    """동기화 주기 결과"""

    patient_id: str | None
    pending_count: int = 0
    synced_ids: list[str] = field(default_factory=list)
    visual_record_id: str | None = None
    visual_ok: bool | None = None
    submitted: bool = False
    response: DeltaSyncResponse | None = None
    provisional: dict | None = None
    error_code: str | None = None

    @property
    def noop(self) -> bool:
        return self.pending_count == 0


class DeltaSyncEngine:
    """PENDING 레코드 배출 및 백엔드 라우팅 결과 반영"""

    def __init__(
        self,
        registry: PatientRegistry,
        vaults: VaultStore,
        ledger: SymptomLedger,
        backend: BackendClient,
        telemetry: TelemetryStore | None = None,
        settle_seconds: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
        on_deferred: Callable[[float], object] | None = None,
    ) -> None:
        self._registry = registry
        self._vaults = vaults
        self._ledger = ledger
        self._backend = backend
        self._telemetry = telemetry
        self._settle_seconds = settle_seconds
        self._clock = clock
        self._on_deferred = on_deferred
        self._deferred = False
        self._lock = threading.Lock()
        self._engaged_until = 0.0
        self._blocked: tuple[str, str] | None = None

    @property
    def state(self) -> SyncState:
        if self._lock.locked() or self._clock() < self._engaged_until:
            return SyncState.SYNCING
        return SyncState.IDLE

    def trigger(self) -> SyncResult | None:
        """진행 중인 동기화가 없을 때만 한 주기 실행

        건너뛴 트리거는 버리지 않는다. settle 중이면 남은 시간 뒤로,
        진행 중이면 주기가 끝난 뒤 settle 시간 뒤로 ``on_deferred`` 를 호출해
        재실행을 예약하게 한다.

        Returns:
            실행한 경우 결과, 건너뛴 경우 None
        """
        remaining = self._engaged_until - self._clock()
        if remaining > 0:
            logger.debug("동기화 settle 중, %.2f초 뒤로 트리거 연기", remaining)
            self._defer(remaining)
            return None
        if not self._lock.acquire(blocking=False):
            logger.debug("동기화 진행 중, 주기 종료 뒤로 트리거 연기")
            self._deferred = True
            return None
        self._deferred = False
        result: SyncResult | None = None
        try:
            result = self.run_cycle()
            return result
        finally:
            engaged = result is None or not result.noop
            if engaged:
                self._engaged_until = self._clock() + self._settle_seconds
            self._lock.release()
            if self._deferred:
                self._deferred = False
                self._defer(self._settle_seconds if engaged else 0.0)

    def _defer(self, delay: float) -> None:
        if self._on_deferred is not None:
            self._on_deferred(delay)

    def reset(self) -> None:
        """환자 전환 시 재시도 차단 상태 초기화"""
        self._blocked = None

    def run_cycle(self, profile: PatientProfile | None = None) -> SyncResult:
        """동기화 한 주기 실행

        Args:
            profile: 대상 환자(없으면 활성 환자)

        Returns:
            동기화 결과
        """
        profile = profile or self._registry.get_active()
        if profile is None:
            return SyncResult(patient_id=None)
        patient_id = profile.patient_id

        pending = self._vaults.pending_records(patient_id)
        result = SyncResult(patient_id=patient_id, pending_count=len(pending))
        if not pending:
            return result

        start = datetime.now(timezone.utc)
        log_event(
            self._telemetry,
            "sync_start",
            "INFO",
            patient_id,
            "collect",
            "동기화 시작",
            record_count=len(pending),
        )

        visual = [r for r in pending if r.type == RecordType.VISUAL_TRIAGE]
        symptoms = [r for r in pending if r.type == RecordType.SYMPTOM]
        others = [
            r
            for r in pending
            if r.type not in (RecordType.VISUAL_TRIAGE, RecordType.SYMPTOM)
        ]

        if visual:
            record = visual[0]
            result.visual_record_id = record.id
            result.visual_ok = self._triage(patient_id, record)
            if result.visual_ok:
                result.synced_ids.extend(self._mark(patient_id, [record]))

        symptom_text = ", ".join(r.content.strip() for r in symptoms if r.content.strip())
        if symptom_text:
            result.submitted = self._submit(profile, symptom_text, result)
            if result.submitted:
                result.synced_ids.extend(self._mark(patient_id, symptoms + others))
                self._ledger.mark_synced(patient_id, [r.id for r in symptoms])
        else:
            result.synced_ids.extend(self._mark(patient_id, symptoms + others))
            self._ledger.mark_synced(patient_id, [r.id for r in symptoms])

        remaining = len(pending) - len(result.synced_ids)
        failed = result.error_code is not None or result.visual_ok is False
        log_event(
            self._telemetry,
            "sync_failed" if failed else "sync_complete",
            "WARNING" if failed else "INFO",
            patient_id,
            "reconcile",
            f"동기화 종료 synced={len(result.synced_ids)} pending={remaining}",
            error_code=result.error_code,
            record_count=len(result.synced_ids),
            duration_ms=int((datetime.now(timezone.utc) - start).total_seconds() * 1000),
        )
        if self._telemetry is not None:
            now = utc_now_iso()
            self._telemetry.update_status(
                {
                    "patient_id": patient_id,
                    "last_run_at": now,
                    "last_success_at": None if failed else now,
                    "last_status": "실패" if failed else "성공",
                    "last_error_code": result.error_code,
                    "pending_count": remaining,
                }
            )
        return result

    def _mark(self, patient_id: str, records: list[MedicalRecord]) -> list[str]:
        ids = [r.id for r in records]
        if ids:
            self._vaults.mark_synced(patient_id, ids)
        return ids

    def _triage(self, patient_id: str, record: VisualTriageRecord) -> bool:
        """첫 번째 시각 레코드 판독 요청 후 결과를 레코드에 반영

        Args:
            patient_id: 환자 식별자
            record: 시각 판독 레코드

        Returns:
            성공 여부
        """
        try:
            triage = self._backend.visual_triage(record.media.low_res_data)
        except BackendError as exc:
            log_event(
                self._telemetry,
                "visual_triage_failed",
                "WARNING",
                patient_id,
                "visual",
                exc.message,
                error_code=exc.code,
            )
            return False

        def _enrich(target: MedicalRecord) -> MedicalRecord:
            media = target.media.model_copy(update={"analysis": triage.findings})
            return target.model_copy(update={"media": media, "severity": triage.urgency})

        self._vaults.update_record(patient_id, lambda r: r.id == record.id, _enrich)
        return True

    def _submit(self, profile: PatientProfile, symptom_text: str, result: SyncResult) -> bool:
        """증상 델타 전송

        Args:
            profile: 환자 프로필(식별 필드의 기준)
            symptom_text: 쉼표로 연결된 증상
            result: 갱신할 결과 객체

        Returns:
            백엔드 수락 여부
        """
        patient_id = profile.patient_id
        fingerprint = profile.model_dump_json()
        if self._blocked == (patient_id, fingerprint):
            result.error_code = "VAL_PROFILE_001"
            logger.info("프로필 미완성으로 전송 보류 patient_id=%s", patient_id)
            return False

        vault = self._vaults.load(patient_id)
        vault = vault.model_copy(update=profile.model_dump(exclude={"patient_id"}))
        try:
            payload = to_backend(vault, symptom_text)
            raw = self._backend.delta_sync(payload)
        except ProfileIncompleteError as exc:
            self._blocked = (patient_id, fingerprint)
            result.error_code = exc.code
            log_event(
                self._telemetry,
                "profile_incomplete",
                "WARNING",
                patient_id,
                "submit",
                exc.message,
                error_code=exc.code,
            )
            return False
        except BackendError as exc:
            result.error_code = exc.code
            result.provisional = offline_summary(profile.name, symptom_text)
            log_event(
                self._telemetry,
                "delta_sync_failed",
                "WARNING",
                patient_id,
                "submit",
                exc.message,
                error_code=exc.code,
            )
            return False

        try:
            result.response = from_backend(raw)
        except ValidationError:
            logger.warning("델타 동기화 응답 형식 오류, 수락으로 처리 patient_id=%s", patient_id)
        if result.response is not None:
            logger.info(
                "델타 동기화 수락 specialty=%s urgency=%s",
                result.response.suggested_specialty,
                result.response.urgency.value,
            )
        return True
