from __future__ import annotations

import logging
from enum import Enum

from apscheduler.job import Job

from sarathi.core.scheduler import SyncScheduler

logger = logging.getLogger(__name__)


class ConnectivityState(str, Enum):
    OFFLINE = "OFFLINE"
    LOW_SIGNAL = "2G/EDGE"
    ONLINE = "4G/5G"


class ConnectivityMonitor:
    """네트워크 상태 보관, 연결 회복 시 지연 동기화 예약"""

    def __init__(
        self,
        scheduler: SyncScheduler | None = None,
        state: ConnectivityState = ConnectivityState.OFFLINE,
    ) -> None:
        self._scheduler = scheduler
        self._state = state

    @property
    def state(self) -> ConnectivityState:
        return self._state

    @property
    def is_online(self) -> bool:
        return self._state != ConnectivityState.OFFLINE

    def set_state(self, state: ConnectivityState) -> Job | None:
        """상태 변경, 오프라인이 아닌 상태로 바뀌면 지연 동기화 예약

        Args:
            state: 새 연결 상태

        Returns:
            예약된 작업 핸들 또는 None
        """
        previous, self._state = self._state, state
        if previous == state:
            return None
        logger.info("연결 상태 %s -> %s", previous.value, state.value)
        if state == ConnectivityState.OFFLINE:
            if self._scheduler is not None:
                self._scheduler.cancel_pending()
            return None
        if self._scheduler is None:
            return None
        return self._scheduler.schedule_debounced()
