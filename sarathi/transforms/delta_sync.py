from __future__ import annotations

from sarathi.core.errors import ProfileIncompleteError
from sarathi.core.routing import estimate_severity
from sarathi.models.records import MedicalRecord, RecordType
from sarathi.models.sync import CurrentSymptoms, DeltaSyncRequest, DeltaSyncResponse
from sarathi.models.vault import MedicalVault

HISTORY_SNAPSHOT_LIMIT = 20


def _record_summary(record: MedicalRecord) -> dict:
    """미디어 원본을 제외한 레코드 요약

    Args:
        record: 진료 레코드

    Returns:
        요약 딕셔너리
    """
    summary = {
        "id": record.id,
        "type": record.type,
        "content": record.content,
        "timestamp": record.timestamp,
        "status": record.status.value,
    }
    if record.severity is not None:
        summary["severity"] = record.severity.value
    if record.type == RecordType.VISUAL_TRIAGE and record.media.analysis:
        summary["analysis"] = record.media.analysis
    return summary


def patient_context(vault: MedicalVault) -> dict:
    """환자 인적 사항과 최근 이력 스냅샷

    Args:
        vault: 환자 볼트

    Returns:
        camelCase 컨텍스트 딕셔너리
    """
    context = vault.profile().to_json_dict()
    context["records"] = [
        _record_summary(record) for record in vault.records[-HISTORY_SNAPSHOT_LIMIT:]
    ]
    return context


def to_backend(vault: MedicalVault, symptom_text: str) -> dict:
    """볼트와 미전송 증상을 델타 동기화 요청 본문으로 변환

    Args:
        vault: 환자 볼트
        symptom_text: 쉼표로 연결된 증상

    Returns:
        요청 본문 딕셔너리

    Raises:
        ProfileIncompleteError: 이름 또는 나이가 없는 경우
    """
    if not vault.is_complete():
        raise ProfileIncompleteError(
            f"환자 프로필 미완성(name/age 필요): {vault.patient_id}"
        )
    request = DeltaSyncRequest(
        vault=patient_context(vault),
        new_symptoms=symptom_text,
        current_symptoms=CurrentSymptoms(
            description=symptom_text,
            severity=estimate_severity(symptom_text),
            additional_notes="Patient submitted via mobile app",
        ),
    )
    return request.to_json_dict()


def from_backend(response: dict) -> DeltaSyncResponse:
    """백엔드 응답을 모델로 변환

    Args:
        response: 백엔드 응답 페이로드

    Returns:
        DeltaSyncResponse
    """
    return DeltaSyncResponse.model_validate(response)
