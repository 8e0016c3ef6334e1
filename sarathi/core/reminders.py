from __future__ import annotations

import logging
from datetime import datetime
from typing import Literal

from pydantic import ValidationError

from sarathi.core.errors import ReminderNotFoundError
from sarathi.core.keys import reminders_key
from sarathi.core.storage import KeyValueStore
from sarathi.models.reminder import MedicineReminder, ReminderTime
from sarathi.utils.parsing import make_record_id
from sarathi.utils.timeutil import now_ms

logger = logging.getLogger(__name__)

DoseStatus = Literal["taken", "skipped"]


class ReminderBook:
    """환자별 복약 알림 관리"""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def list_reminders(self, patient_id: str, active_only: bool = False) -> list[MedicineReminder]:
        raw = self._store.read_json(reminders_key(patient_id), [])
        if not isinstance(raw, list):
            logger.warning("복약 알림 형식 오류 patient_id=%s", patient_id)
            return []
        reminders: list[MedicineReminder] = []
        for item in raw:
            try:
                reminders.append(MedicineReminder.model_validate(item))
            except ValidationError as exc:
                logger.warning("손상된 복약 알림 건너뜀: %s", exc.error_count())
        if active_only:
            reminders = [r for r in reminders if r.is_active]
        return reminders

    def _save(self, patient_id: str, reminders: list[MedicineReminder]) -> bool:
        return self._store.write_json(
            reminders_key(patient_id), [r.to_json_dict() for r in reminders]
        )

    def create_reminder(
        self,
        patient_id: str,
        medicine_name: str,
        time_schedule: list[str],
        dosage: str = "",
        prescribed_by: str = "",
        instructions: str | None = None,
        start_date: int | None = None,
        end_date: int | None = None,
    ) -> MedicineReminder:
        """복약 알림 생성, 시간표의 각 시각마다 복용 슬롯을 만든다

        Args:
            patient_id: 환자 식별자
            medicine_name: 약품명
            time_schedule: HH:MM 목록
            dosage: 용량
            prescribed_by: 처방 의사
            instructions: 복용 안내
            start_date: 시작 시각(epoch ms)
            end_date: 종료 시각(epoch ms)

        Returns:
            생성된 알림
        """
        reminder = MedicineReminder(
            id=make_record_id("REM"),
            patient_id=patient_id,
            medicine_name=medicine_name,
            dosage=dosage,
            time_schedule=time_schedule,
            start_date=now_ms() if start_date is None else start_date,
            end_date=end_date,
            instructions=instructions,
            prescribed_by=prescribed_by,
        )
        reminder = reminder.model_copy(
            update={"reminder_times": [ReminderTime(time=t) for t in reminder.time_schedule]}
        )
        with self._store.lock_for(reminders_key(patient_id).key):
            self._save(patient_id, [*self.list_reminders(patient_id), reminder])
        logger.info("복약 알림 생성 %s (%s)", reminder.id, medicine_name)
        return reminder

    def _update(self, patient_id: str, reminder_id: str, change) -> MedicineReminder:
        with self._store.lock_for(reminders_key(patient_id).key):
            reminders = self.list_reminders(patient_id)
            for index, reminder in enumerate(reminders):
                if reminder.id == reminder_id:
                    reminders[index] = change(reminder)
                    self._save(patient_id, reminders)
                    return reminders[index]
        raise ReminderNotFoundError(reminder_id)

    def mark_dose(
        self, patient_id: str, reminder_id: str, time_index: int, status: DoseStatus
    ) -> MedicineReminder:
        """복용 슬롯을 복용 또는 건너뜀으로 기록

        Raises:
            ReminderNotFoundError: 알림 또는 슬롯이 없는 경우
        """

        def _mark(reminder: MedicineReminder) -> MedicineReminder:
            if not 0 <= time_index < len(reminder.reminder_times):
                raise ReminderNotFoundError(f"{reminder_id}[{time_index}]")
            stamp = now_ms()
            taken = status == "taken"
            slot = reminder.reminder_times[time_index].model_copy(
                update={
                    "taken": taken,
                    "taken_at": stamp if taken else None,
                    "skipped": not taken,
                    "skipped_at": None if taken else stamp,
                }
            )
            times = list(reminder.reminder_times)
            times[time_index] = slot
            return reminder.model_copy(update={"reminder_times": times})

        return self._update(patient_id, reminder_id, _mark)

    def deactivate(self, patient_id: str, reminder_id: str) -> MedicineReminder:
        return self._update(
            patient_id, reminder_id, lambda r: r.model_copy(update={"is_active": False})
        )

    def due_reminders(
        self, patient_id: str, now: datetime
    ) -> list[tuple[MedicineReminder, int]]:
        """지금 알려야 할 (알림, 슬롯 번호) 목록

        활성 상태이고 기간 안에 있으며, 현재 HH:MM과 같은 시각의 슬롯 중
        아직 복용/건너뜀 기록이 없는 것만 반환한다.
        """
        current = now.strftime("%H:%M")
        stamp = int(now.timestamp() * 1000)
        due: list[tuple[MedicineReminder, int]] = []
        for reminder in self.list_reminders(patient_id, active_only=True):
            if reminder.start_date > stamp:
                continue
            if reminder.end_date is not None and reminder.end_date < stamp:
                continue
            for index, slot in enumerate(reminder.reminder_times):
                if slot.time == current and not slot.taken and not slot.skipped:
                    due.append((reminder, index))
        return due

    def today_status(self, patient_id: str, now: datetime) -> dict:
        """오늘 복약 현황(전체/복용/건너뜀/예정)"""
        current = now.strftime("%H:%M")
        status = {"total": 0, "taken": 0, "skipped": 0, "upcoming": 0}
        for reminder in self.list_reminders(patient_id, active_only=True):
            for slot in reminder.reminder_times:
                status["total"] += 1
                if slot.taken:
                    status["taken"] += 1
                elif slot.skipped:
                    status["skipped"] += 1
                elif slot.time > current:
                    status["upcoming"] += 1
        return status
