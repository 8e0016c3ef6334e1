from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from apscheduler.job import Job
from apscheduler.schedulers.background import BackgroundScheduler

from sarathi.core.errors import SarathiError

logger = logging.getLogger(__name__)

DEBOUNCE_JOB_ID = "sync-debounced"
IMMEDIATE_JOB_ID = "sync-immediate"
POLL_JOB_ID = "sync-poll"


class SyncScheduler:
    """동기화 트리거용 백그라운드 스케줄러

    지연 실행(debounce), 즉시 실행, 주기 실행 세 가지 작업을 관리한다.
    반환된 작업 핸들은 실행 전이면 ``remove()`` 로 취소할 수 있다.
    """

    def __init__(
        self,
        trigger: Callable[[], object],
        is_online: Callable[[], bool] = lambda: True,
        debounce_seconds: float = 1.5,
        poll_seconds: int = 60,
        scheduler: BackgroundScheduler | None = None,
    ) -> None:
        self._trigger = trigger
        self._is_online = is_online
        self.debounce_seconds = debounce_seconds
        self.poll_seconds = poll_seconds
        self._scheduler = scheduler or BackgroundScheduler()

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> BackgroundScheduler:
        """주기 작업을 등록하고 스케줄러를 시작

        Returns:
            BackgroundScheduler 인스턴스
        """
        if self._scheduler.running:
            return self._scheduler
        if self.poll_seconds > 0:
            self._scheduler.add_job(
                self._poll,
                "interval",
                seconds=self.poll_seconds,
                id=POLL_JOB_ID,
                replace_existing=True,
            )
        self._scheduler.start()
        logger.info("동기화 스케줄러 시작 (주기 %s초)", self.poll_seconds)
        return self._scheduler

    def schedule_debounced(self, delay: float | None = None) -> Job | None:
        """지연 동기화 예약, 대기 중인 예약은 새 예약으로 교체

        Args:
            delay: 지연 시간(초), 없으면 설정값 사용

        Returns:
            작업 핸들, 스케줄러가 꺼져 있으면 None
        """
        if not self._scheduler.running:
            logger.debug("스케줄러 미실행, 지연 동기화 예약 생략")
            return None
        seconds = self.debounce_seconds if delay is None else delay
        run_date = datetime.now(timezone.utc) + timedelta(seconds=seconds)
        return self._scheduler.add_job(
            self._run,
            "date",
            run_date=run_date,
            id=DEBOUNCE_JOB_ID,
            replace_existing=True,
        )

    def fire_now(self) -> Job | None:
        """즉시 동기화 작업 등록(호출 스레드를 막지 않음)"""
        if not self._scheduler.running:
            logger.debug("스케줄러 미실행, 즉시 동기화 생략")
            return None
        return self._scheduler.add_job(self._run, id=IMMEDIATE_JOB_ID, replace_existing=True)

    def cancel_pending(self) -> int:
        """아직 시작하지 않은 일회성 동기화 작업 취소

        Returns:
            취소된 작업 수
        """
        cancelled = 0
        for job_id in (DEBOUNCE_JOB_ID, IMMEDIATE_JOB_ID):
            job = self._scheduler.get_job(job_id)
            if job is not None:
                job.remove()
                cancelled += 1
        return cancelled

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("동기화 스케줄러 종료")

    def _poll(self) -> None:
        if self._is_online():
            self._run()

    def _run(self) -> None:
        try:
            self._trigger()
        except SarathiError as exc:
            logger.error("예약 동기화 실패 [%s] %s", exc.code, exc.message)
