from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import Field

from sarathi.models.base import CamelModel
from sarathi.models.records import MediaType
from sarathi.utils.timeutil import now_ms


class CaseStatus(str, Enum):
    PENDING = "PENDING"
    REVIEWED = "REVIEWED"
    RESOLVED = "RESOLVED"


class CaseImage(CamelModel):
    image_id: str
    filename: str = ""
    base64_data: str = Field(..., description="data URL 또는 base64 문자열")
    uploaded_at: int = Field(default_factory=now_ms)
    type: MediaType = MediaType.IMAGE


class CaseReply(CamelModel):
    reply_id: str
    doctor_id: str = ""
    doctor_name: str = ""
    specialization: str = ""
    content: str
    type: Literal["PRESCRIPTION", "DOCTOR_NOTE"] = "DOCTOR_NOTE"
    medication: str | None = None
    timestamp: int = Field(default_factory=now_ms)


class MedicalCase(CamelModel):
    """환자 이미지와 의사 회신을 묶은 진료 케이스

    환자와 의사 화면이 같은 단말 저장소 키를 공유한다.
    """

    case_id: str
    patient_id: str
    patient_name: str = ""
    patient_age: int = 0
    patient_phone: str = ""
    patient_district: str = ""
    patient_state: str = ""
    images: list[CaseImage] = Field(default_factory=list)
    replies: list[CaseReply] = Field(default_factory=list)
    status: CaseStatus = CaseStatus.PENDING
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)
