from __future__ import annotations

import logging

from pydantic import Field, ValidationError, field_validator

from sarathi.models.profiles import PatientProfile
from sarathi.models.records import RECORD_ADAPTER, MedicalRecord

logger = logging.getLogger(__name__)


class MedicalVault(PatientProfile):
    """환자 프로필과 진료 레코드 로그"""

    records: list[MedicalRecord] = Field(default_factory=list)

    @field_validator("records", mode="before")
    @classmethod
    def _coerce_records(cls, value: object) -> list:
        """records가 없거나 손상된 경우 빈 목록으로 보정

        개별 레코드가 손상된 경우 해당 레코드만 건너뛴다.
        """
        if value is None:
            logger.warning("볼트 records 값 없음, 빈 목록으로 보정")
            return []
        if not isinstance(value, list):
            logger.warning("볼트 records 형식 오류(%s), 빈 목록으로 보정", type(value).__name__)
            return []
        records = []
        for index, item in enumerate(value):
            try:
                records.append(RECORD_ADAPTER.validate_python(item))
            except ValidationError as exc:
                logger.warning("손상된 레코드 건너뜀 index=%d: %s", index, exc.error_count())
        return records

    @classmethod
    def from_profile(cls, profile: PatientProfile) -> "MedicalVault":
        """프로필로 빈 볼트 생성

        Args:
            profile: 환자 프로필

        Returns:
            레코드가 없는 볼트
        """
        return cls(**profile.model_dump(), records=[])

    def profile(self) -> PatientProfile:
        """볼트 헤더를 프로필로 반환"""
        return PatientProfile(**self.model_dump(exclude={"records"}))
