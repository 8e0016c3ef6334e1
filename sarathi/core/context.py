"""
sarathi/core/context.py

단말 애플리케이션 컨텍스트.

저장소, 레지스트리, 볼트, 원장, 동기화 엔진, 스케줄러를 한 객체가 소유한다.
모듈 전역 상태는 두지 않으며, 환자 전환 시 환자별 메모리 상태는 레지스트리
초기화 훅으로 모두 비운다.
"""

from __future__ import annotations

import base64
import logging

from apscheduler.job import Job

from sarathi.clients.backend_api import BackendClient
from sarathi.core.cases import CaseBook
from sarathi.core.config import AppConfig, Settings, get_settings, load_app_config
from sarathi.core.connectivity import ConnectivityMonitor, ConnectivityState
from sarathi.core.doctor import DoctorDesk
from sarathi.core.errors import BackendError, PatientNotFoundError
from sarathi.core.ledger import SymptomLedger
from sarathi.core.pharmacy import OrderBook
from sarathi.core.registry import PatientRegistry
from sarathi.core.reminders import ReminderBook
from sarathi.core.routing import estimate_severity
from sarathi.core.scheduler import SyncScheduler
from sarathi.core.storage import KeyValueStore, open_store
from sarathi.core.sync import DeltaSyncEngine, SyncResult
from sarathi.core.telemetry import TelemetryStore
from sarathi.core.vault import VaultStore
from sarathi.models.profiles import PatientProfile
from sarathi.models.records import (
    DoctorInfo,
    DoctorNoteRecord,
    Media,
    MediaType,
    MedicalRecord,
    PrescriptionRecord,
    RecordStatus,
    Severity,
    SymptomRecord,
    VisualTriageRecord,
)
from sarathi.models.sync import DoctorMessage
from sarathi.models.vault import MedicalVault
from sarathi.utils.parsing import make_record_id

logger = logging.getLogger(__name__)

# settle 종료 직후에 깨어나도록 스케줄러 시계 오차만큼 여유를 둔다
RETRY_MARGIN_SECONDS = 0.05


class AppContext:
    """환자 단말의 구성 요소 묶음과 환자 화면 동작"""

    def __init__(
        self,
        settings: Settings,
        app_config: AppConfig,
        store: KeyValueStore,
        backend: BackendClient,
        telemetry: TelemetryStore | None = None,
    ) -> None:
        self.settings = settings
        self.app_config = app_config
        self.store = store
        self.backend = backend
        self.telemetry = telemetry
        self.registry = PatientRegistry(store)
        self.vaults = VaultStore(store, self.registry)
        self.ledger = SymptomLedger(store, write_retries=settings.ledger_write_retries)
        self.orders = OrderBook(store)
        self.reminders = ReminderBook(store)
        self.cases = CaseBook(store)
        self.engine = DeltaSyncEngine(
            self.registry,
            self.vaults,
            self.ledger,
            backend,
            telemetry=telemetry,
            settle_seconds=settings.sync_settle_seconds,
            on_deferred=self._rearm_sync,
        )
        self.scheduler = SyncScheduler(
            self.engine.trigger,
            is_online=lambda: self.connectivity.is_online,
            debounce_seconds=settings.sync_debounce_seconds,
            poll_seconds=settings.sync_poll_seconds,
        )
        self.connectivity = ConnectivityMonitor(self.scheduler)
        self.doctor_desk = DoctorDesk(
            backend, self.orders, app_config.doctor, cases=self.cases
        )

        for hook in (
            self.scheduler.cancel_pending,
            self.engine.reset,
            self.ledger.reset,
            self.vaults.reset,
        ):
            self.registry.add_reset_hook(hook)

    @property
    def active_vault(self) -> MedicalVault | None:
        return self.vaults.active

    def _require_active(self) -> PatientProfile:
        profile = self.registry.get_active()
        if profile is None:
            raise PatientNotFoundError("(활성 환자 없음)")
        return profile

    def start(self) -> PatientProfile | None:
        """세션 복원 후 스케줄러 시작

        Returns:
            복원된 활성 환자 또는 None(온보딩 필요)
        """
        profile = self.registry.restore_session()
        if profile is not None:
            self.switch_patient(profile)
        if self.settings.scheduler_enabled:
            self.scheduler.start()
        return profile

    def shutdown(self) -> None:
        self.scheduler.shutdown()
        if self.telemetry is not None:
            self.telemetry.close()

    def onboard(self, name: str, age: int, location: str, **fields: str) -> PatientProfile:
        """환자 온보딩, 같은 (이름, 나이, 지역)이면 기존 환자의 주소/언어 갱신

        Args:
            name: 환자 이름
            age: 나이
            location: 지역
            **fields: state, district, street_village, house_number,
                phone_number, language

        Returns:
            활성화된 프로필
        """
        profile = self.registry.create_profile(name, age, location, **fields)
        existing = self.registry.get(profile.patient_id)
        self.registry.register_or_update(profile)
        if existing is not None:
            self.vaults.refresh_profile(profile)
        self.switch_patient(profile)
        return profile

    def switch_patient(self, profile: PatientProfile | None) -> MedicalVault | None:
        """환자 전환, 이전 환자의 메모리 상태를 모두 비운 뒤 새 볼트 활성화

        Args:
            profile: 전환할 프로필, None이면 로그아웃

        Returns:
            새 활성 볼트 또는 None
        """
        self.registry.switch_to(profile)
        if profile is None:
            return None
        patient_id = profile.patient_id
        return self.vaults.activate(patient_id, self.ledger.get_history(patient_id))

    def _request_sync(self) -> Job | None:
        if not self.connectivity.is_online:
            return None
        return self.scheduler.fire_now()

    def _rearm_sync(self, delay: float) -> Job | None:
        """settle/진행 중에 건너뛴 트리거를 지연 작업으로 재예약

        오프라인이면 예약하지 않는다. 온라인 전환 시 지연 동기화가 다시 걸린다.
        """
        if not self.connectivity.is_online:
            return None
        return self.scheduler.schedule_debounced(delay + RETRY_MARGIN_SECONDS)

    def submit_symptom(self, content: str, severity: Severity | None = None) -> SymptomRecord:
        """증상 제출: 볼트 PENDING 추가, 원장 추가, 즉시 동기화 요청

        Args:
            content: 증상 원문
            severity: 중증도(없으면 원문으로 추정)

        Returns:
            추가된 증상 레코드

        Raises:
            PatientNotFoundError: 활성 환자가 없는 경우
            StorageError: 원장 저장 실패
        """
        profile = self._require_active()
        record = SymptomRecord(
            id=make_record_id("SYM"),
            content=content,
            severity=severity or estimate_severity(content),
        )
        self.vaults.append_record(profile.patient_id, record)
        self.ledger.add_symptom(
            profile.patient_id, content, record.severity, symptom_id=record.id
        )
        self._request_sync()
        return record

    def attach_media(
        self,
        filename: str,
        data: bytes,
        content_type: str = "image/jpeg",
        media_type: MediaType = MediaType.IMAGE,
    ) -> VisualTriageRecord:
        """사진/영상 프레임을 시각 판독 레코드로 추가하고 이미지 케이스에 보관

        회신 대기 중인 케이스가 있으면 이미지를 덧붙이고, 없으면 새 케이스를
        만든다.

        Args:
            filename: 파일 이름
            data: 원본 바이트
            content_type: MIME 타입
            media_type: IMAGE 또는 VIDEO_FRAMES

        Returns:
            추가된 레코드
        """
        profile = self._require_active()
        encoded = base64.b64encode(data).decode("ascii")
        record = VisualTriageRecord(
            id=make_record_id("VIS"),
            content=f"Visual upload: {filename}",
            media=Media(type=media_type, low_res_data=f"data:{content_type};base64,{encoded}"),
        )
        self.vaults.append_record(profile.patient_id, record)
        open_case = self.cases.open_case(profile.patient_id)
        if open_case is None:
            self.cases.create_case(profile, record.media.low_res_data, filename, media_type)
        else:
            self.cases.add_image(
                open_case.case_id, record.media.low_res_data, filename, media_type
            )
        self._request_sync()
        return record

    def set_connectivity(self, state: ConnectivityState) -> Job | None:
        return self.connectivity.set_state(state)

    def sync_now(self) -> SyncResult | None:
        """호출 스레드에서 바로 동기화 한 주기 실행"""
        return self.engine.trigger()

    def refresh_messages(self) -> list[MedicalRecord]:
        """의사 메시지를 받아 볼트에 없는 것만 SYNCED 레코드로 추가

        Returns:
            새로 추가된 레코드
        """
        profile = self._require_active()
        patient_id = profile.patient_id
        try:
            messages = self.backend.get_patient_messages(patient_id)
        except BackendError as exc:
            logger.warning("의사 메시지 조회 실패 [%s] %s", exc.code, exc.message)
            return []
        known = {record.id for record in self.vaults.load(patient_id).records}
        added: list[MedicalRecord] = []
        for message in messages:
            if message.message_id in known:
                continue
            record = _record_from_message(message)
            self.vaults.append_record(patient_id, record)
            known.add(record.id)
            added.append(record)
        if added:
            logger.info("의사 메시지 %d건 수신 patient_id=%s", len(added), patient_id)
        return added


def _record_from_message(message: DoctorMessage) -> MedicalRecord:
    fields = dict(
        id=message.message_id,
        content=message.message,
        translated_content=message.translated_content,
        icons=message.icons,
        timestamp=message.timestamp,
        status=RecordStatus.SYNCED,
        doctor_info=DoctorInfo(
            name=message.doctor_name,
            specialization=message.doctor_specialization,
            clinic_id=message.doctor_id,
        ),
    )
    if message.type == "PRESCRIPTION":
        return PrescriptionRecord(**fields)
    return DoctorNoteRecord(**fields)


def build_context(
    settings: Settings | None = None,
    app_config: AppConfig | None = None,
    backend: BackendClient | None = None,
    store: KeyValueStore | None = None,
) -> AppContext:
    """설정으로부터 애플리케이션 컨텍스트 구성

    Args:
        settings: 환경 설정(없으면 캐시된 설정)
        app_config: 단말 설정(없으면 YAML 로드)
        backend: 백엔드 클라이언트(테스트에서 주입)
        store: 키-값 저장소(테스트에서 주입)

    Returns:
        AppContext 인스턴스
    """
    settings = settings or get_settings()
    app_config = app_config or load_app_config()
    if store is None:
        store = open_store(
            settings.storage_path or None,
            mirror_legacy=app_config.storage.mirror_legacy_writes,
        )
    telemetry = TelemetryStore(settings.duckdb_path) if settings.duckdb_path else None
    return AppContext(
        settings,
        app_config,
        store,
        backend or BackendClient.from_settings(settings),
        telemetry=telemetry,
    )
