from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from sarathi.models.base import CamelModel
from sarathi.models.records import Severity
from sarathi.utils.timeutil import now_ms


class CurrentSymptoms(CamelModel):
    """델타 동기화에 포함되는 현재 증상 요약"""

    description: str
    severity: Severity = Severity.MEDIUM
    duration: str = "Current episode"
    additional_notes: str | None = None


class DeltaSyncRequest(CamelModel):
    """POST /api/delta-sync 요청 본문"""

    vault: dict[str, Any] = Field(..., description="환자 컨텍스트 스냅샷")
    new_symptoms: str = Field(..., description="쉼표로 연결된 미전송 증상")
    current_symptoms: CurrentSymptoms | None = None


class DeltaSyncResponse(CamelModel):
    """POST /api/delta-sync 응답"""

    summary: str
    urgency: Severity = Severity.MEDIUM
    suggested_specialty: str = "General Medicine"
    packet_size: str = "1KB"
    patient_id: str | None = None


class VisualTriageResult(CamelModel):
    findings: str
    urgency: Severity = Severity.MEDIUM


class SyncPacket(CamelModel):
    """의사가 소비하는 백엔드 측 라우팅 케이스 묶음"""

    packet_id: str
    patient_id: str
    patient_name: str
    summary: str
    suggested_specialty: str
    urgency: Severity = Severity.MEDIUM
    timestamp: int = Field(default_factory=now_ms)
    payload_size: str = "1KB"
    patient_context: dict[str, Any] = Field(default_factory=dict)
    current_symptoms: CurrentSymptoms | None = None
    visual_triage: str | None = None


class DoctorMessage(CamelModel):
    """의사 -> 환자 비동기 메시지"""

    message_id: str
    patient_id: str
    doctor_id: str = "DOCTOR"
    doctor_name: str = "Unknown Doctor"
    doctor_specialization: str = "General Medicine"
    type: Literal["PRESCRIPTION", "DOCTOR_NOTE"] = "DOCTOR_NOTE"
    message: str
    translated_content: str | None = None
    icons: list[Literal["SUN", "MOON", "FOOD"]] | None = None
    timestamp: int = Field(default_factory=now_ms)
    read: bool = False


class PatientResponse(CamelModel):
    """환자 전달용 안내문"""

    text: str
    icons: list[Literal["SUN", "MOON", "FOOD"]] = Field(default_factory=list)
