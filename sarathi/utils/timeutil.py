from __future__ import annotations

import time
from datetime import datetime, timezone


def now_ms() -> int:
    """현재 시각을 epoch 밀리초로 반환"""
    return int(time.time() * 1000)


def utc_now_iso() -> str:
    """현재 UTC 시각을 ISO8601(Z) 문자열로 반환"""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def ms_to_datetime(value: int) -> datetime:
    """epoch 밀리초를 로컬 시간대 datetime으로 변환

    Args:
        value: epoch 밀리초

    Returns:
        datetime 인스턴스
    """
    return datetime.fromtimestamp(value / 1000)
