from __future__ import annotations

import re
from uuid import uuid4

from sarathi.utils.timeutil import now_ms

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


def coerce_int(value: object, default: int = 0) -> int:
    """값을 정수로 변환

    Args:
        value: 원본 값
        default: 실패 시 기본값

    Returns:
        정수 값
    """
    if value is None:
        return default
    text = str(value).strip()
    if text == "":
        return default
    try:
        return int(text)
    except ValueError:
        try:
            return int(float(text))
        except ValueError:
            return default


def sanitize_identifier(text: str) -> str:
    """영숫자 외 문자를 밑줄로 바꾸고 대문자로 변환

    Args:
        text: 원본 문자열

    Returns:
        정규화된 식별자 조각
    """
    return _NON_ALNUM.sub("_", text).upper()


def make_record_id(prefix: str) -> str:
    """접두사와 생성 시각 기반의 로컬 레코드 ID 생성

    Args:
        prefix: 레코드 종류 접두사(SYM, VIS, RX ...)

    Returns:
        레코드 ID
    """
    return f"{prefix}-{now_ms()}-{uuid4().hex[:6]}"

