from __future__ import annotations

import math

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from sarathi.core.logger import log_event
from sarathi.core.routing import classify
from sarathi.models.records import Severity
from sarathi.models.sync import CurrentSymptoms, DeltaSyncResponse, SyncPacket, VisualTriageResult
from sarathi.utils.parsing import coerce_int, make_record_id
from sarathi.utils.timeutil import utc_now_iso

router = APIRouter()

VISUAL_FINDINGS = "Visual inspection suggests routine assessment needed"


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post("/delta-sync")
def delta_sync(payload: dict, request: Request):
    """환자 증상 델타 수신 후 진료과 라우팅, 패킷 생성

    Args:
        payload: vault, newSymptoms, currentSymptoms

    Returns:
        summary, urgency, suggestedSpecialty, packetSize, patientId
    """
    vault = payload.get("vault")
    if not isinstance(vault, dict):
        vault = {}
    name = str(vault.get("name") or "").strip()
    age = coerce_int(vault.get("age"))
    if not name or age <= 0:
        return error_response(400, "Incomplete patient profile: name and age are required")
    symptoms = str(payload.get("newSymptoms") or "").strip()
    if not symptoms:
        return error_response(400, "newSymptoms is required")

    current = payload.get("currentSymptoms")
    try:
        current_symptoms = (
            CurrentSymptoms.model_validate(current) if isinstance(current, dict) else None
        )
    except ValidationError as exc:
        return error_response(400, f"Invalid currentSymptoms: {exc.error_count()} errors")

    routing = classify(symptoms)
    patient_id = str(vault.get("patientId") or "UNKNOWN")
    summary = (
        f"Patient {name} ({age}y, {vault.get('location', '')}, {vault.get('state', '')}) "
        f"reports: {symptoms}"
    )
    packet = SyncPacket(
        packet_id=make_record_id("PKT"),
        patient_id=patient_id,
        patient_name=name,
        summary=summary,
        suggested_specialty=routing.specialty,
        urgency=routing.urgency,
        payload_size=f"{max(1, math.ceil(len(symptoms) / 100))}KB",
        patient_context=vault,
        current_symptoms=current_symptoms,
    )
    request.app.state.packets.add(packet)
    log_event(
        request.app.state.telemetry,
        "packet_created",
        "INFO",
        patient_id,
        "delta_sync",
        f"패킷 생성 {packet.packet_id} -> {routing.specialty}",
        record_count=1,
    )
    return DeltaSyncResponse(
        summary=summary,
        urgency=routing.urgency,
        suggested_specialty=routing.specialty,
        packet_size=packet.payload_size,
        patient_id=patient_id,
    ).to_json_dict()


@router.get("/fetch-sync-packets")
def fetch_sync_packets(
    request: Request,
    specialty: str | None = None,
    last_packet_id: str | None = Query(default=None, alias="lastPacketId"),
) -> dict:
    """처리되지 않은 패킷 조회(최신순)"""
    packets = request.app.state.packets.list_open(specialty, last_packet_id)
    return {
        "packets": [packet.to_json_dict() for packet in packets],
        "totalCount": len(packets),
        "lastSync": utc_now_iso(),
    }


@router.post("/mark-packet-processed")
def mark_packet_processed(payload: dict, request: Request):
    """패킷 삭제, 이미 삭제된 패킷도 성공으로 응답"""
    packet_id = str(payload.get("packetId") or "").strip()
    if not packet_id:
        return error_response(400, "packetId is required")
    request.app.state.packets.mark_processed(packet_id, payload.get("doctorId"))
    return {"success": True, "packetId": packet_id}


@router.post("/visual-triage")
def visual_triage(payload: dict):
    """이미지 판독 대체 응답"""
    if not payload.get("image"):
        return error_response(400, "image is required")
    return VisualTriageResult(findings=VISUAL_FINDINGS, urgency=Severity.MEDIUM).to_json_dict()
