"""환자 볼트에 저장되는 진료 레코드 모델

볼트는 로그다. 레코드는 추가만 되고 상태만 앞으로 진행한다.
레코드 종류별로 모델을 나누고 ``type`` 으로 구분하므로, 종류에 속하지 않는
필드(예: 처방전의 ``media``)는 파싱 시 버려진다.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import Field, TypeAdapter

from sarathi.models.base import CamelModel
from sarathi.utils.timeutil import now_ms


class RecordType(str, Enum):
    SYMPTOM = "SYMPTOM"
    VISUAL_TRIAGE = "VISUAL_TRIAGE"
    PRESCRIPTION = "PRESCRIPTION"
    DOCTOR_NOTE = "DOCTOR_NOTE"
    HISTORY = "HISTORY"
    MEDICINE_REMINDER = "MEDICINE_REMINDER"


class RecordStatus(str, Enum):
    """PENDING -> SYNCED 전이는 동기화 엔진만 수행"""
    PENDING = "PENDING"
    SYNCED = "SYNCED"
    PROCESSED = "PROCESSED"


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class MediaType(str, Enum):
    IMAGE = "IMAGE"
    VIDEO_FRAMES = "VIDEO_FRAMES"


class Media(CamelModel):
    """저해상도 미리보기와 분석 결과"""

    type: MediaType = MediaType.IMAGE
    low_res_data: str
    high_res_url: str | None = None
    analysis: str | None = None


class DoctorInfo(CamelModel):
    name: str
    specialization: str
    clinic_id: str


class RecordBase(CamelModel):
    id: str
    content: str = ""
    timestamp: int = Field(default_factory=now_ms)
    status: RecordStatus = RecordStatus.PENDING
    severity: Severity | None = None
    translated_content: str | None = None
    tags: list[str] | None = None


class SymptomRecord(RecordBase):
    type: Literal["SYMPTOM"] = "SYMPTOM"


class VisualTriageRecord(RecordBase):
    type: Literal["VISUAL_TRIAGE"] = "VISUAL_TRIAGE"
    media: Media


class _DoctorReplyRecord(RecordBase):
    doctor_info: DoctorInfo | None = None
    icons: list[Literal["SUN", "MOON", "FOOD"]] | None = None
    thread_id: str | None = None
    parent_record_id: str | None = None


class PrescriptionRecord(_DoctorReplyRecord):
    type: Literal["PRESCRIPTION"] = "PRESCRIPTION"
    medication: str | None = None


class DoctorNoteRecord(_DoctorReplyRecord):
    type: Literal["DOCTOR_NOTE"] = "DOCTOR_NOTE"


class HistoryRecord(RecordBase):
    type: Literal["HISTORY"] = "HISTORY"


class MedicineReminderRecord(RecordBase):
    type: Literal["MEDICINE_REMINDER"] = "MEDICINE_REMINDER"
    reminder_id: str | None = None


MedicalRecord = Annotated[
    Union[
        SymptomRecord,
        VisualTriageRecord,
        PrescriptionRecord,
        DoctorNoteRecord,
        HistoryRecord,
        MedicineReminderRecord,
    ],
    Field(discriminator="type"),
]

RECORD_ADAPTER: TypeAdapter = TypeAdapter(MedicalRecord)
