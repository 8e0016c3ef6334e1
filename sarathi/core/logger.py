from __future__ import annotations

import logging

from sarathi.core.telemetry import TelemetryStore
from sarathi.utils.timeutil import utc_now_iso


def log_event(
    telemetry: TelemetryStore | None,
    event: str,
    level: str,
    patient_id: str,
    stage: str,
    message: str,
    error_code: str | None = None,
    duration_ms: int | None = None,
    record_count: int | None = None,
) -> None:
    """이벤트를 표준 로깅과 DuckDB에 기록

    Args:
        telemetry: 텔레메트리 저장소(없으면 로깅만 수행)
        event: 이벤트 이름
        level: 로깅 레벨 문자열
        patient_id: 환자 식별자
        stage: 동기화 단계
        message: 로그 메시지
        error_code: 에러 코드(선택)
        duration_ms: 처리 시간(밀리초, 선택)
        record_count: 레코드 수(선택)
    """
    logger = logging.getLogger("sarathi")
    extra = {
        "event": event,
        "patient_id": patient_id,
        "stage": stage,
    }
    logger.log(getattr(logging, level.upper(), logging.INFO), message, extra=extra)

    if telemetry is None:
        return
    telemetry.insert_log(
        {
            "timestamp": utc_now_iso(),
            "level": level.upper(),
            "event": event,
            "patient_id": patient_id,
            "stage": stage,
            "error_code": error_code,
            "message": message,
            "duration_ms": duration_ms,
            "record_count": record_count,
        }
    )
