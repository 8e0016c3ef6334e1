import logging

LOG_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s "
    "event=%(event)s patient_id=%(patient_id)s stage=%(stage)s %(message)s"
)

# log_event가 extra로 넘기는 필드와 일반 로그의 기본값
CONTEXT_DEFAULTS = {"event": "system", "patient_id": "-", "stage": "-"}

# 작업 실행마다 INFO를 남기는 라이브러리 로거
QUIET_LOGGERS = ("apscheduler", "httpx")


class PatientContextFilter(logging.Filter):
    """event/patient_id/stage 필드가 없는 레코드에 기본값 채우기"""

    def filter(self, record: logging.LogRecord) -> bool:
        for name, default in CONTEXT_DEFAULTS.items():
            if not hasattr(record, name):
                setattr(record, name, default)
        return True


def configure_logging(level: str) -> None:
    """애플리케이션 로깅을 설정

    여러 번 호출해도 핸들러는 하나만 유지된다(앱 팩토리가 테스트마다 호출됨).

    Args:
        level: 로깅 레벨 문자열
    """
    root = logging.getLogger()
    root.setLevel(level.upper())
    handler = next(
        (h for h in root.handlers if any(isinstance(f, PatientContextFilter) for f in h.filters)),
        None,
    )
    if handler is None:
        handler = logging.StreamHandler()
        handler.addFilter(PatientContextFilter())
        root.addHandler(handler)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(root.level, logging.WARNING))
