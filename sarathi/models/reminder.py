from __future__ import annotations

from pydantic import Field, field_validator

from sarathi.models.base import CamelModel
from sarathi.utils.timeutil import now_ms


class ReminderTime(CamelModel):
    time: str = Field(..., description="HH:MM")
    taken: bool = False
    taken_at: int | None = None
    skipped: bool = False
    skipped_at: int | None = None


class MedicineReminder(CamelModel):
    """환자별 복약 알림"""

    id: str
    patient_id: str
    medicine_name: str
    dosage: str = ""
    time_schedule: list[str] = Field(default_factory=list)
    start_date: int = Field(default_factory=now_ms)
    end_date: int | None = None
    is_active: bool = True
    instructions: str | None = None
    prescribed_by: str = ""
    prescribed_date: int = Field(default_factory=now_ms)
    reminder_times: list[ReminderTime] = Field(default_factory=list)

    @field_validator("time_schedule")
    @classmethod
    def _validate_schedule(cls, value: list[str]) -> list[str]:
        for item in value:
            hour, _, minute = item.partition(":")
            if not (hour.isdigit() and minute.isdigit()) or int(hour) > 23 or int(minute) > 59:
                raise ValueError(f"HH:MM 형식이 아님: {item}")
        return [f"{int(t.split(':')[0]):02d}:{int(t.split(':')[1]):02d}" for t in value]
