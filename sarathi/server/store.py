"""백엔드 메모리 저장소(패킷 큐, 의사 메시지)

프로세스가 재시작되면 비워진다.
"""

from __future__ import annotations

import itertools
import logging
import threading

from sarathi.models.sync import DoctorMessage, SyncPacket

logger = logging.getLogger(__name__)


class PacketStore:
    """의사가 소비하는 동기화 패킷 큐

    처리 완료된 패킷은 큐에서 삭제된다. 패킷 ID별 도착 순번은 삭제 뒤에도
    남겨 두어 ``lastPacketId`` 가 이미 삭제된 패킷을 가리켜도 그 이후
    패킷만 돌려줄 수 있다.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._packets: dict[str, SyncPacket] = {}
        self._sequence: dict[str, int] = {}
        self._counter = itertools.count(1)

    def __len__(self) -> int:
        with self._lock:
            return len(self._packets)

    def add(self, packet: SyncPacket) -> SyncPacket:
        with self._lock:
            self._packets[packet.packet_id] = packet
            self._sequence.setdefault(packet.packet_id, next(self._counter))
        return packet

    def list_open(
        self, specialty: str | None = None, last_packet_id: str | None = None
    ) -> list[SyncPacket]:
        """남아 있는 패킷을 최신순으로 반환

        Args:
            specialty: 진료과 필터
            last_packet_id: 이 패킷보다 나중에 들어온 패킷만 반환(모르는 ID면 전체)

        Returns:
            패킷 목록
        """
        with self._lock:
            ordered = sorted(
                self._packets.values(), key=lambda p: self._sequence[p.packet_id]
            )
            after = self._sequence.get(last_packet_id) if last_packet_id else None
            if after is not None:
                ordered = [p for p in ordered if self._sequence[p.packet_id] > after]
        if specialty:
            ordered = [p for p in ordered if p.suggested_specialty == specialty]
        return list(reversed(ordered))

    def mark_processed(self, packet_id: str, doctor_id: str | None = None) -> bool:
        """처리 완료된 패킷 삭제, 이미 삭제된 패킷이어도 오류가 아니다

        Returns:
            이번 호출로 삭제되었는지 여부
        """
        with self._lock:
            removed = self._packets.pop(packet_id, None) is not None
        if removed:
            logger.info("패킷 처리 완료 %s doctor=%s", packet_id, doctor_id or "-")
        return removed


class MessageStore:
    """환자별 의사 메시지함, 같은 messageId는 한 번만 보관"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._messages: dict[str, DoctorMessage] = {}

    def add(self, message: DoctorMessage) -> DoctorMessage:
        with self._lock:
            return self._messages.setdefault(message.message_id, message)

    def for_patient(self, patient_id: str) -> list[DoctorMessage]:
        with self._lock:
            return [m for m in self._messages.values() if m.patient_id == patient_id]
