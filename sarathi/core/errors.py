class SarathiError(Exception):
    """동기화 계층 예외의 기본 클래스"""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class StorageError(SarathiError):
    """재시도 후에도 저장에 실패한 경우 발생"""

    def __init__(self, key: str, message: str) -> None:
        super().__init__("ST_WRITE_001", f"{key}: {message}")
        self.key = key


class PatientNotFoundError(SarathiError):
    """등록되지 않은 환자 식별자"""

    def __init__(self, patient_id: str) -> None:
        super().__init__("PT_NOT_FOUND", f"등록되지 않은 환자: {patient_id}")
        self.patient_id = patient_id


class ProfileIncompleteError(SarathiError):
    """환자 프로필 필수 항목 누락, 프로필 보완 전까지 재시도하지 않음"""

    def __init__(self, message: str) -> None:
        super().__init__("VAL_PROFILE_001", message)


class BackendError(SarathiError):
    """백엔드 통신 실패"""

    def __init__(self, code: str, message: str, status_code: int | None = None) -> None:
        super().__init__(code, message)
        self.status_code = status_code


class OrderTransitionError(SarathiError):
    """허용되지 않는 주문 상태 전이"""

    def __init__(self, order_id: str, message: str) -> None:
        super().__init__("RX_STATUS_001", f"{order_id}: {message}")


class ReminderNotFoundError(SarathiError):
    """존재하지 않는 복약 알림"""

    def __init__(self, reminder_id: str) -> None:
        super().__init__("REM_NOT_FOUND", f"복약 알림 없음: {reminder_id}")


class CaseNotFoundError(SarathiError):
    """존재하지 않는 이미지 진료 케이스"""

    def __init__(self, case_id: str) -> None:
        super().__init__("CASE_NOT_FOUND", f"케이스 없음: {case_id}")
