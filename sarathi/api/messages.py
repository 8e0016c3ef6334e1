from __future__ import annotations

from fastapi import APIRouter, Query, Request
from pydantic import ValidationError

from sarathi.api.sync import error_response
from sarathi.models.sync import DoctorMessage
from sarathi.utils.parsing import make_record_id

router = APIRouter()


@router.post("/send-doctor-message")
def send_doctor_message(payload: dict, request: Request):
    """의사 메시지를 환자 메시지함에 저장

    Args:
        payload: DoctorMessage 필드(messageId 없으면 생성)

    Returns:
        success, message
    """
    payload = {"messageId": make_record_id("MSG"), **payload}
    try:
        message = DoctorMessage.model_validate(payload)
    except ValidationError as exc:
        return error_response(400, f"Invalid doctor message: {exc.error_count()} errors")
    request.app.state.messages.add(message)
    return {"success": True, "message": message.to_json_dict()}


@router.get("/get-patient-messages")
def get_patient_messages(
    request: Request,
    patient_id: str | None = Query(default=None, alias="patientId"),
):
    if not patient_id:
        return error_response(400, "patientId is required")
    messages = request.app.state.messages.for_patient(patient_id)
    return {"messages": [message.to_json_dict() for message in messages]}
