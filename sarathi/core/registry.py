from __future__ import annotations

import hashlib
import logging
from typing import Callable

from pydantic import ValidationError

from sarathi.core.keys import active_patient_key, patients_key
from sarathi.core.storage import KeyValueStore
from sarathi.models.profiles import PatientProfile
from sarathi.utils.parsing import sanitize_identifier

logger = logging.getLogger(__name__)

ResetHook = Callable[[], None]


def generate_patient_id(name: str, age: int | str, location: str) -> str:
    """이름/나이/지역에서 결정적 환자 ID 생성

    영숫자 외 문자는 밑줄이 되므로, 데바나가리/텔루구 등 비ASCII 이름은
    길이만 같아도 같은 ID가 된다. 이런 경우 원문 SHA-256 앞 8자리를
    덧붙여 구분한다. ASCII 이름의 ID는 기존 형식 그대로다.

    Args:
        name: 환자 이름
        age: 나이
        location: 지역

    Returns:
        ``PAT-`` 접두사 환자 ID
    """
    raw = f"{name}_{age}_{location}"
    patient_id = f"PAT-{sanitize_identifier(raw)}"
    if not raw.isascii():
        digest = hashlib.sha256(raw.strip().encode("utf-8")).hexdigest()[:8].upper()
        patient_id = f"{patient_id}-{digest}"
    return patient_id


def _parse_profile(raw: object) -> PatientProfile | None:
    if not isinstance(raw, dict):
        return None
    try:
        return PatientProfile.model_validate(raw)
    except ValidationError as exc:
        logger.warning("손상된 환자 프로필 무시: %s", exc.error_count())
        return None


class PatientRegistry:
    """단말에 등록된 환자 목록과 활성 환자 포인터 관리"""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._reset_hooks: list[ResetHook] = []

    def add_reset_hook(self, hook: ResetHook) -> None:
        """환자 전환 전에 호출될 메모리 상태 초기화 콜백 등록

        Args:
            hook: 인자 없는 콜백
        """
        self._reset_hooks.append(hook)

    def list_patients(self) -> list[PatientProfile]:
        """등록 순서대로 환자 프로필 목록 반환"""
        raw = self._store.read_json(patients_key(), [])
        if not isinstance(raw, list):
            logger.warning("환자 목록 형식 오류, 빈 목록으로 처리")
            return []
        profiles = [_parse_profile(item) for item in raw]
        return [profile for profile in profiles if profile is not None]

    def get(self, patient_id: str) -> PatientProfile | None:
        for profile in self.list_patients():
            if profile.patient_id == patient_id:
                return profile
        return None

    def create_profile(
        self,
        name: str,
        age: int,
        location: str,
        **fields: str,
    ) -> PatientProfile:
        """파생 ID를 가진 프로필 생성(저장하지 않음)

        Args:
            name: 환자 이름
            age: 나이
            location: 지역
            **fields: state, district 등 나머지 프로필 필드

        Returns:
            환자 프로필
        """
        return PatientProfile(
            patient_id=generate_patient_id(name, age, location),
            name=name,
            age=age,
            location=location,
            **fields,
        )

    def register_or_update(self, profile: PatientProfile) -> PatientProfile:
        """patient_id 기준 업서트, 기존 환자는 위치를 유지한 채 교체

        Args:
            profile: 환자 프로필

        Returns:
            저장된 프로필
        """
        storage_key = patients_key()
        with self._store.lock_for(storage_key.key):
            patients = self.list_patients()
            for index, existing in enumerate(patients):
                if existing.patient_id == profile.patient_id:
                    patients[index] = profile
                    break
            else:
                patients.append(profile)
            self._store.write_json(storage_key, [p.to_json_dict() for p in patients])
        logger.info("환자 등록/갱신 %s (총 %d명)", profile.patient_id, len(patients))
        active = self.get_active()
        if active is not None and active.patient_id == profile.patient_id:
            self.set_active(profile)
        return profile

    def get_active(self) -> PatientProfile | None:
        return _parse_profile(self._store.read_json(active_patient_key(), None))

    def set_active(self, profile: PatientProfile | None) -> None:
        """활성 환자 기록, None이면 온보딩 필요 상태

        Args:
            profile: 활성화할 프로필 또는 None
        """
        storage_key = active_patient_key()
        if profile is None:
            self._store.delete(storage_key)
            logger.info("활성 환자 해제")
            return
        self._store.write_json(storage_key, profile.to_json_dict())

    def switch_to(self, profile: PatientProfile | None) -> None:
        """메모리상의 환자별 상태를 모두 비운 뒤 새 환자를 활성화

        Args:
            profile: 전환할 프로필 또는 None
        """
        for hook in self._reset_hooks:
            hook()
        if profile is not None and self.get(profile.patient_id) is None:
            self.register_or_update(profile)
        self.set_active(profile)
        logger.info(
            "환자 전환 -> %s", profile.patient_id if profile else "(없음)"
        )

    def restore_session(self) -> PatientProfile | None:
        """시작 시 활성 환자 복원

        활성 포인터가 있으면 그 환자, 없으면 첫 번째 등록 환자,
        둘 다 없으면 None(온보딩 필요)을 반환한다.
        """
        active = self.get_active()
        if active is not None:
            return active
        patients = self.list_patients()
        if patients:
            logger.info("활성 환자 없음, 첫 번째 환자 자동 선택")
            return patients[0]
        return None

    def forget_all(self) -> None:
        """환자 목록과 활성 포인터 초기화(볼트/원장 데이터는 유지)"""
        for hook in self._reset_hooks:
            hook()
        self._store.write_json(patients_key(), [])
        self.set_active(None)
