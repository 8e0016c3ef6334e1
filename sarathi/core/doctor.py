"""
sarathi/core/doctor.py

의사 화면의 패킷 조회와 회신 처리.

회신은 사용자가 직접 누르는 전경 동작이므로 백엔드 실패를 호출자에게
그대로 전달한다. 호출자는 입력값을 유지한 채 재시도할 수 있다. 메시지,
주문, 레코드 ID는 패킷 ID에서 만들어지므로 재시도해도 중복되지 않는다.
"""

from __future__ import annotations

import logging

from sarathi.clients.backend_api import BackendClient
from sarathi.core.cases import CaseBook
from sarathi.core.errors import BackendError, CaseNotFoundError
from sarathi.core.pharmacy import OrderBook
from sarathi.models.case import MedicalCase
from sarathi.models.profiles import DoctorProfile
from sarathi.models.records import (
    DoctorInfo,
    DoctorNoteRecord,
    PrescriptionRecord,
    RecordStatus,
)
from sarathi.models.sync import DoctorMessage, PatientResponse, SyncPacket
from sarathi.utils.timeutil import now_ms

logger = logging.getLogger(__name__)


class DoctorDesk:
    """의사용 패킷 큐와 회신 전송"""

    def __init__(
        self,
        backend: BackendClient,
        orders: OrderBook,
        doctor: DoctorProfile | None = None,
        cases: CaseBook | None = None,
    ) -> None:
        self._backend = backend
        self._orders = orders
        self._cases = cases
        self.doctor = doctor or DoctorProfile(name="Unknown Doctor")
        self._last_packet_id: str | None = None

    def fetch_packets(
        self, specialty: str | None = None, only_new: bool = False
    ) -> list[SyncPacket]:
        """진료과 패킷 조회(최신순)

        Args:
            specialty: 진료과 필터(없으면 전체)
            only_new: 마지막으로 본 패킷 이후만 조회

        Returns:
            패킷 목록
        """
        packets = self._backend.fetch_sync_packets(
            specialty=specialty,
            last_packet_id=self._last_packet_id if only_new else None,
        )
        if packets:
            self._last_packet_id = packets[0].packet_id
        logger.info("패킷 %d건 조회 specialty=%s", len(packets), specialty or "ALL")
        return packets

    def _translate(self, note: str, medication: str, language: str) -> PatientResponse | None:
        try:
            return self._backend.patient_response(note, medication, language)
        except BackendError as exc:
            logger.warning("환자 안내문 생성 실패, 원문으로 전달 [%s] %s", exc.code, exc.message)
            return None

    def submit_reply(
        self, packet: SyncPacket, note: str = "", medication: str = ""
    ) -> PrescriptionRecord | DoctorNoteRecord:
        """패킷에 대한 의사 회신 전송

        약품이 있으면 처방(PRESCRIPTION)과 약국 주문을, 없으면 소견
        (DOCTOR_NOTE)을 보낸다.

        Args:
            packet: 대상 패킷
            note: 소견
            medication: 처방 약품

        Returns:
            환자 볼트에 추가할 SYNCED 레코드

        Raises:
            ValueError: 소견과 약품이 모두 비어 있는 경우
            BackendError: 메시지 전송 또는 패킷 처리 실패
        """
        note, medication = note.strip(), medication.strip()
        if not note and not medication:
            raise ValueError("소견 또는 처방 약품이 필요합니다")

        is_prescription = bool(medication)
        record_prefix = "RX" if is_prescription else "DOC"
        body = f"RX: {medication}" if is_prescription else f"Advice: {note}"
        language = str(packet.patient_context.get("language") or "English")
        translation = self._translate(note, medication, language)

        message = DoctorMessage(
            message_id=f"MSG-{packet.packet_id}",
            patient_id=packet.patient_id,
            doctor_id=self.doctor.clinic_id,
            doctor_name=self.doctor.name,
            doctor_specialization=self.doctor.specialization,
            type="PRESCRIPTION" if is_prescription else "DOCTOR_NOTE",
            message=body,
            translated_content=translation.text if translation else None,
            icons=translation.icons if translation else None,
        )
        self._backend.send_doctor_message(message)

        if is_prescription:
            self._orders.create_order(
                order_id=f"ORD-{packet.packet_id}",
                patient_name=packet.patient_name,
                medication=medication,
                instruction=translation.text if translation else medication,
                prescribed_by=self.doctor.name,
            )

        self._backend.mark_packet_processed(packet.packet_id, self.doctor.name)
        logger.info("회신 전송 완료 packet=%s type=%s", packet.packet_id, message.type)

        fields = dict(
            id=f"{record_prefix}-{packet.packet_id}",
            content=body,
            translated_content=(translation.text if translation else None)
            or medication
            or note,
            timestamp=now_ms(),
            status=RecordStatus.SYNCED,
            icons=translation.icons if translation and translation.icons else None,
            doctor_info=DoctorInfo(
                name=self.doctor.name,
                specialization=self.doctor.specialization,
                clinic_id=self.doctor.clinic_id,
            ),
            thread_id=f"THREAD-{packet.patient_id}-{now_ms()}",
            parent_record_id=packet.packet_id,
        )
        if is_prescription:
            return PrescriptionRecord(medication=medication, **fields)
        return DoctorNoteRecord(**fields)

    def reply_to_case(
        self, case_id: str, note: str = "", medication: str = ""
    ) -> MedicalCase:
        """이미지 케이스에 회신 추가, 처방이면 약국 주문도 만든다

        Args:
            case_id: 케이스 ID
            note: 소견
            medication: 처방 약품

        Returns:
            회신이 추가된 케이스

        Raises:
            ValueError: 소견과 약품이 모두 비어 있는 경우
            CaseNotFoundError: 케이스가 없거나 케이스 저장소가 없는 경우
        """
        note, medication = note.strip(), medication.strip()
        if not note and not medication:
            raise ValueError("소견 또는 처방 약품이 필요합니다")
        if self._cases is None:
            raise CaseNotFoundError(case_id)
        case = self._cases.add_reply(
            case_id,
            self.doctor,
            f"RX: {medication}" if medication else f"Advice: {note}",
            "PRESCRIPTION" if medication else "DOCTOR_NOTE",
            medication or None,
        )
        if medication:
            self._orders.create_order(
                order_id=f"ORD-{case.replies[-1].reply_id}",
                patient_name=case.patient_name,
                medication=medication,
                instruction=note or medication,
                prescribed_by=self.doctor.name,
            )
        return case
