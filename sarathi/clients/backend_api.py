from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

import httpx

from sarathi.core.config import Settings
from sarathi.core.errors import BackendError, ProfileIncompleteError
from sarathi.models.sync import (
    DoctorMessage,
    PatientResponse,
    SyncPacket,
    VisualTriageResult,
)


class BackendClient:
    """텔레메디슨 백엔드 REST 클라이언트

    ``client`` 를 주입하면(예: FastAPI TestClient) 호출마다 새 연결을 만들지
    않고 그 클라이언트를 사용한다.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "BackendClient":
        return cls(settings.backend_base_url, timeout=settings.request_timeout_seconds)

    @contextmanager
    def _session(self) -> Iterator[httpx.Client]:
        if self._client is not None:
            yield self._client
            return
        with httpx.Client(base_url=self.base_url, timeout=self.timeout) as client:
            yield client

    def _request(
        self,
        method: str,
        path: str,
        json: dict | None = None,
        params: dict | None = None,
    ) -> Any:
        """요청 전송 후 JSON 응답 반환

        Args:
            method: HTTP 메서드
            path: API 경로
            json: 요청 본문
            params: 쿼리 파라미터

        Returns:
            응답 JSON

        Raises:
            ProfileIncompleteError: 델타 동기화 400 응답(재시도 불가)
            BackendError: 그 밖의 네트워크/상태 오류
        """
        try:
            with self._session() as client:
                response = client.request(method, path, json=json, params=params)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            detail = _error_detail(exc.response)
            if status_code == 400 and path == "/api/delta-sync":
                raise ProfileIncompleteError(detail) from exc
            raise BackendError(
                "NET_STATUS_001", f"{path}: HTTP {status_code} {detail}", status_code
            ) from exc
        except httpx.TimeoutException as exc:
            raise BackendError("NET_TIMEOUT_001", f"{path}: 시간 초과") from exc
        except httpx.HTTPError as exc:
            raise BackendError("NET_CONN_001", f"{path}: {exc}") from exc
        except ValueError as exc:
            raise BackendError("NET_BODY_001", f"{path}: JSON 응답 아님") from exc

    def delta_sync(self, payload: dict) -> dict:
        """델타 동기화 전송

        Args:
            payload: 델타 동기화 요청 본문

        Returns:
            summary, urgency, suggestedSpecialty, packetSize, patientId
        """
        return self._request("POST", "/api/delta-sync", json=payload)

    def visual_triage(self, image: str) -> VisualTriageResult:
        data = self._request("POST", "/api/visual-triage", json={"image": image})
        return VisualTriageResult.model_validate(data)

    def fetch_sync_packets(
        self, specialty: str | None = None, last_packet_id: str | None = None
    ) -> list[SyncPacket]:
        """의사용 동기화 패킷 조회(최신순)

        Args:
            specialty: 진료과 필터
            last_packet_id: 이 패킷 이후의 새 패킷만 조회

        Returns:
            패킷 목록
        """
        params = {}
        if specialty:
            params["specialty"] = specialty
        if last_packet_id:
            params["lastPacketId"] = last_packet_id
        data = self._request("GET", "/api/fetch-sync-packets", params=params)
        return [SyncPacket.model_validate(item) for item in data.get("packets", [])]

    def mark_packet_processed(self, packet_id: str, doctor_id: str | None = None) -> bool:
        data = self._request(
            "POST",
            "/api/mark-packet-processed",
            json={"packetId": packet_id, "doctorId": doctor_id},
        )
        return bool(data.get("success", True))

    def send_doctor_message(self, message: DoctorMessage) -> DoctorMessage:
        data = self._request("POST", "/api/send-doctor-message", json=message.to_json_dict())
        return DoctorMessage.model_validate(data.get("message", data))

    def get_patient_messages(self, patient_id: str) -> list[DoctorMessage]:
        data = self._request(
            "GET", "/api/get-patient-messages", params={"patientId": patient_id}
        )
        return [DoctorMessage.model_validate(item) for item in data.get("messages", [])]

    def patient_response(
        self, note: str, medication: str, language: str = "English"
    ) -> PatientResponse:
        data = self._request(
            "POST",
            "/api/patient-response",
            json={"note": note, "medication": medication, "language": language},
        )
        return PatientResponse.model_validate(data)

    def speech_to_text(self, audio: str, language: str = "English") -> str:
        data = self._request(
            "POST", "/api/speech-to-text", json={"audio": audio, "language": language}
        )
        return str(data.get("text", ""))

    def text_to_speech(self, text: str) -> str | None:
        data = self._request("POST", "/api/text-to-speech", json={"text": text})
        return data.get("audio")


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)
