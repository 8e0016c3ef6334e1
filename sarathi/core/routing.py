"""증상 원문 -> 진료과/긴급도 휴리스틱 라우터

단말(오프라인 대체)과 백엔드(기준)가 같은 표를 사용한다. 표 순서가
우선순위이며 첫 번째로 일치한 항목이 선택된다.
"""

from __future__ import annotations

from typing import NamedTuple

from sarathi.models.records import Severity

DEFAULT_SPECIALTY = "General Medicine"
DEFAULT_URGENCY = Severity.MEDIUM


class Routing(NamedTuple):
    specialty: str
    urgency: Severity


ROUTING_TABLE: tuple[tuple[tuple[str, ...], str, Severity], ...] = (
    (("chest", "heart"), "Cardiology", Severity.HIGH),
    (("skin", "rash", "itch"), "Dermatology", Severity.MEDIUM),
    (("bone", "joint", "back pain"), "Orthopedics", Severity.MEDIUM),
    (("child", "baby", "pediatric"), "Pediatrics", Severity.MEDIUM),
    (("woman", "pregnancy", "gynec"), "Gynaecology", Severity.MEDIUM),
)

_HIGH_SEVERITY_WORDS = ("severe", "chest", "heart")
_LOW_SEVERITY_WORDS = ("mild", "slight")


def classify(symptom_text: str) -> Routing:
    """증상 원문을 진료과와 긴급도로 분류

    Args:
        symptom_text: 증상 원문

    Returns:
        Routing(specialty, urgency)
    """
    text = (symptom_text or "").lower()
    for keywords, specialty, urgency in ROUTING_TABLE:
        if any(keyword in text for keyword in keywords):
            return Routing(specialty, urgency)
    return Routing(DEFAULT_SPECIALTY, DEFAULT_URGENCY)


def estimate_severity(symptom_text: str) -> Severity:
    """현재 증상 중증도 추정"""
    text = (symptom_text or "").lower()
    if any(word in text for word in _HIGH_SEVERITY_WORDS):
        return Severity.HIGH
    if any(word in text for word in _LOW_SEVERITY_WORDS):
        return Severity.LOW
    return Severity.MEDIUM


def offline_summary(patient_name: str, symptom_text: str) -> dict:
    """백엔드에 닿지 못할 때 사용하는 임시 라우팅 결과

    Args:
        patient_name: 환자 이름
        symptom_text: 쉼표로 연결된 증상

    Returns:
        summary, urgency, suggestedSpecialty 딕셔너리
    """
    routing = classify(symptom_text)
    return {
        "summary": f"Patient {patient_name} reports: {symptom_text}",
        "urgency": routing.urgency.value,
        "suggestedSpecialty": routing.specialty,
        "provisional": True,
    }
