"""
sarathi/core/cases.py

이미지 진료 케이스 저장소.

환자가 올린 사진과 의사 회신을 케이스 단위로 묶어 단말 공유 키에 보관한다.
환자 화면은 자기 케이스만, 의사 화면은 전체 케이스를 본다.
"""

from __future__ import annotations

import json
import logging
from typing import Callable, Literal

from pydantic import TypeAdapter, ValidationError

from sarathi.core.errors import CaseNotFoundError
from sarathi.core.keys import cases_key
from sarathi.core.storage import KeyValueStore
from sarathi.models.case import CaseImage, CaseReply, CaseStatus, MedicalCase
from sarathi.models.profiles import DoctorProfile, PatientProfile
from sarathi.models.records import MediaType
from sarathi.utils.parsing import make_record_id
from sarathi.utils.timeutil import now_ms

logger = logging.getLogger(__name__)

_CASES_ADAPTER = TypeAdapter(list[MedicalCase])


class CaseBook:
    """환자 이미지 케이스 생성, 회신, 내보내기/가져오기"""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def list_cases(self, status: CaseStatus | None = None) -> list[MedicalCase]:
        raw = self._store.read_json(cases_key(), [])
        if not isinstance(raw, list):
            logger.warning("케이스 목록 형식 오류, 빈 목록으로 처리")
            return []
        cases: list[MedicalCase] = []
        for item in raw:
            try:
                cases.append(MedicalCase.model_validate(item))
            except ValidationError as exc:
                logger.warning("손상된 케이스 건너뜀: %s", exc.error_count())
        if status is not None:
            cases = [c for c in cases if c.status == status]
        return cases

    def _save(self, cases: list[MedicalCase]) -> bool:
        return self._store.write_json(cases_key(), [c.to_json_dict() for c in cases])

    def get(self, case_id: str) -> MedicalCase | None:
        return next((c for c in self.list_cases() if c.case_id == case_id), None)

    def for_patient(self, patient_id: str) -> list[MedicalCase]:
        return [c for c in self.list_cases() if c.patient_id == patient_id]

    def open_case(self, patient_id: str) -> MedicalCase | None:
        """의사 회신을 기다리는 가장 최근 케이스"""
        pending = [c for c in self.for_patient(patient_id) if c.status == CaseStatus.PENDING]
        return pending[-1] if pending else None

    def create_case(
        self,
        profile: PatientProfile,
        image_data: str,
        filename: str,
        media_type: MediaType = MediaType.IMAGE,
    ) -> MedicalCase:
        """첫 이미지로 새 케이스 생성

        Args:
            profile: 업로드한 환자
            image_data: base64 data URL
            filename: 파일 이름
            media_type: IMAGE 또는 VIDEO_FRAMES

        Returns:
            생성된 케이스
        """
        case = MedicalCase(
            case_id=make_record_id(f"CASE-{profile.patient_id}"),
            patient_id=profile.patient_id,
            patient_name=profile.name,
            patient_age=profile.age,
            patient_phone=profile.phone_number,
            patient_district=profile.district,
            patient_state=profile.state,
            images=[_image(image_data, filename, media_type)],
        )
        with self._store.lock_for(cases_key().key):
            self._save([*self.list_cases(), case])
        logger.info("케이스 생성 %s patient_id=%s", case.case_id, profile.patient_id)
        return case

    def _update(
        self, case_id: str, change: Callable[[MedicalCase], MedicalCase]
    ) -> MedicalCase:
        with self._store.lock_for(cases_key().key):
            cases = self.list_cases()
            for index, case in enumerate(cases):
                if case.case_id == case_id:
                    updated = change(case).model_copy(update={"updated_at": now_ms()})
                    cases[index] = updated
                    self._save(cases)
                    return updated
        raise CaseNotFoundError(case_id)

    def add_image(
        self,
        case_id: str,
        image_data: str,
        filename: str,
        media_type: MediaType = MediaType.IMAGE,
    ) -> MedicalCase:
        image = _image(image_data, filename, media_type)
        return self._update(
            case_id, lambda c: c.model_copy(update={"images": [*c.images, image]})
        )

    def add_reply(
        self,
        case_id: str,
        doctor: DoctorProfile,
        content: str,
        reply_type: Literal["PRESCRIPTION", "DOCTOR_NOTE"] = "DOCTOR_NOTE",
        medication: str | None = None,
    ) -> MedicalCase:
        """의사 회신 추가, 케이스는 REVIEWED가 된다

        Raises:
            CaseNotFoundError: 케이스가 없는 경우
        """
        reply = CaseReply(
            reply_id=make_record_id("REPLY"),
            doctor_id=doctor.clinic_id,
            doctor_name=doctor.name,
            specialization=doctor.specialization,
            content=content,
            type=reply_type,
            medication=medication,
        )
        case = self._update(
            case_id,
            lambda c: c.model_copy(
                update={"replies": [*c.replies, reply], "status": CaseStatus.REVIEWED}
            ),
        )
        logger.info("케이스 회신 %s doctor=%s", case_id, doctor.name)
        return case

    def resolve(self, case_id: str) -> MedicalCase:
        return self._update(
            case_id, lambda c: c.model_copy(update={"status": CaseStatus.RESOLVED})
        )

    def delete(self, case_id: str) -> bool:
        with self._store.lock_for(cases_key().key):
            cases = self.list_cases()
            remaining = [c for c in cases if c.case_id != case_id]
            if len(remaining) == len(cases):
                return False
            self._save(remaining)
        logger.info("케이스 삭제 %s", case_id)
        return True

    def clear(self) -> None:
        self._store.delete(cases_key())

    def export_json(self) -> str:
        return json.dumps([c.to_json_dict() for c in self.list_cases()], indent=2)

    def import_json(self, data: str) -> int:
        """내보낸 케이스 목록으로 전체 교체

        Args:
            data: ``export_json`` 형식 문자열

        Returns:
            가져온 케이스 수

        Raises:
            ValidationError: 형식이 맞지 않는 경우(기존 케이스는 유지)
        """
        cases = _CASES_ADAPTER.validate_json(data)
        with self._store.lock_for(cases_key().key):
            self._save(cases)
        logger.info("케이스 %d건 가져옴", len(cases))
        return len(cases)

    def stats(self) -> dict:
        cases = self.list_cases()
        return {
            "totalCases": len(cases),
            "pendingCases": sum(c.status == CaseStatus.PENDING for c in cases),
            "reviewedCases": sum(c.status == CaseStatus.REVIEWED for c in cases),
            "resolvedCases": sum(c.status == CaseStatus.RESOLVED for c in cases),
            "totalImages": sum(len(c.images) for c in cases),
            "totalReplies": sum(len(c.replies) for c in cases),
        }


def _image(image_data: str, filename: str, media_type: MediaType) -> CaseImage:
    return CaseImage(
        image_id=make_record_id("IMG"),
        filename=filename,
        base64_data=image_data,
        type=media_type,
    )
