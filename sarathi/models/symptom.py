from pydantic import Field

from sarathi.models.base import CamelModel
from sarathi.models.records import Severity
from sarathi.utils.timeutil import now_ms


class PatientSymptom(CamelModel):
    """증상 이력 원장 항목(한 번 기록되면 내용/시각은 변경되지 않음)"""

    id: str = Field(..., description="증상 ID(볼트 SYMPTOM 레코드와 동일)")
    patient_id: str = Field(..., description="환자 식별자")
    content: str = Field(..., description="증상 원문")
    severity: Severity = Field(default=Severity.MEDIUM, description="중증도")
    timestamp: int = Field(default_factory=now_ms, description="기록 시각(epoch ms)")
    synced: bool = Field(default=False, description="백엔드 전송 여부")
    synced_at: int | None = Field(default=None, description="전송 확인 시각(epoch ms)")
