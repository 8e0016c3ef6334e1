from __future__ import annotations

import threading
from pathlib import Path

import duckdb


class TelemetryStore:
    """동기화 로그와 환자별 동기화 상태를 저장하는 DuckDB 텔레메트리 저장소"""

    def __init__(self, path: str) -> None:
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = duckdb.connect(path)
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS logs (
                timestamp TIMESTAMP,
                level VARCHAR,
                event VARCHAR,
                patient_id VARCHAR,
                stage VARCHAR,
                error_code VARCHAR,
                message VARCHAR,
                duration_ms INTEGER,
                record_count INTEGER
            )
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS sync_status (
                patient_id VARCHAR,
                last_run_at TIMESTAMP,
                last_success_at TIMESTAMP,
                last_status VARCHAR,
                last_error_code VARCHAR,
                pending_count INTEGER
            )
            """
        )

    def insert_log(self, record: dict) -> None:
        """로그 레코드를 저장

        Args:
            record: 로그 레코드 딕셔너리
        """
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO logs (timestamp, level, event, patient_id, stage, error_code, message, duration_ms, record_count)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    record.get("timestamp"),
                    record.get("level"),
                    record.get("event"),
                    record.get("patient_id"),
                    record.get("stage"),
                    record.get("error_code"),
                    record.get("message"),
                    record.get("duration_ms"),
                    record.get("record_count"),
                ],
            )

    def update_status(self, status: dict) -> None:
        """환자별 동기화 상태 레코드를 업서트

        마지막 성공 시각은 실패 실행으로 지워지지 않는다.

        Args:
            status: 상태 레코드 딕셔너리
        """
        with self._lock:
            previous = self._conn.execute(
                "SELECT last_success_at FROM sync_status WHERE patient_id = ?",
                [status.get("patient_id")],
            ).fetchone()
            last_success_at = status.get("last_success_at")
            if last_success_at is None and previous is not None:
                last_success_at = previous[0]
            self._conn.execute(
                "DELETE FROM sync_status WHERE patient_id = ?",
                [status.get("patient_id")],
            )
            self._conn.execute(
                """
                INSERT INTO sync_status (patient_id, last_run_at, last_success_at, last_status, last_error_code, pending_count)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    status.get("patient_id"),
                    status.get("last_run_at"),
                    last_success_at,
                    status.get("last_status"),
                    status.get("last_error_code"),
                    status.get("pending_count"),
                ],
            )

    def query_logs(self, where: str, params: list) -> list[tuple]:
        """조건절(WHERE)을 사용해 로그를 조회

        Args:
            where: SQL WHERE 절
            params: 파라미터 목록

        Returns:
            행 목록
        """
        query = "SELECT * FROM logs"
        if where:
            query += f" WHERE {where}"
        with self._lock:
            return self._conn.execute(query, params).fetchall()

    def query_status(self) -> list[tuple]:
        """모든 환자 동기화 상태 항목을 조회

        Returns:
            행 목록
        """
        with self._lock:
            return self._conn.execute(
                "SELECT * FROM sync_status ORDER BY patient_id"
            ).fetchall()

    def close(self) -> None:
        with self._lock:
            self._conn.close()
