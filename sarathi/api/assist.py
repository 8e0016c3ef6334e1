"""음성/안내문 보조 엔드포인트

실제 음성 인식, 음성 합성, 번역 모델은 연결하지 않는다. 같은 입력에는
항상 같은 응답을 돌려준다.
"""

from __future__ import annotations

from fastapi import APIRouter

from sarathi.api.sync import error_response

router = APIRouter()


@router.post("/speech-to-text")
def speech_to_text(payload: dict):
    audio = str(payload.get("audio") or "")
    if not audio:
        return error_response(400, "audio is required")
    language = payload.get("language") or "English"
    return {"text": f"[voice note, {len(audio)} chars, {language}]"}


@router.post("/text-to-speech")
def text_to_speech(payload: dict) -> dict:
    return {"audio": None}


@router.post("/patient-response")
def patient_response(payload: dict) -> dict:
    """의사 소견/처방을 환자용 안내문과 아이콘으로 변환"""
    note = str(payload.get("note") or "")
    medication = str(payload.get("medication") or "")
    if medication:
        return {
            "text": f"Please take {medication} as prescribed. {note}".strip(),
            "icons": ["SUN", "MOON"],
        }
    return {"text": note, "icons": []}
