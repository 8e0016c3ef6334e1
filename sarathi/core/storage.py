"""
sarathi/core/storage.py

단말 키-값 영속 어댑터.

상위 컴포넌트(레지스트리, 볼트, 원장, 주문, 알림)는 모두 이 모듈을 통해
읽고 쓴다.

- 모든 호출은 동기식이다.
- 저장 실패(디스크/용량/직렬화)는 로깅 후 ``False`` 로 반환되고 호출자에게
  예외로 전달되지 않는다. 실패한 쓰기는 이전 상태를 그대로 남긴다.
- 읽기는 표준 키 다음 레거시 별칭 순서로 시도한다.
- 쓰기는 표준 키에 기록한 뒤 레거시 별칭에도 복제한다.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from pathlib import Path
from typing import Any, Iterable, Protocol

from sarathi.core.keys import StorageKey

logger = logging.getLogger(__name__)


def _atomic_write_json(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
    tmp.replace(path)


class StorageBackend(Protocol):
    def load(self) -> dict[str, str]: ...

    def save(self, data: dict[str, str]) -> None: ...


class MemoryBackend:
    """프로세스 메모리 백엔드(테스트용)"""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data = dict(initial or {})

    def load(self) -> dict[str, str]:
        return dict(self._data)

    def save(self, data: dict[str, str]) -> None:
        self._data = dict(data)


class JsonFileBackend:
    """단일 JSON 문서 파일 백엔드

    쓰기는 임시 파일 작성 후 교체(원자적)로 수행한다.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            corrupt = self.path.with_suffix(".corrupt")
            logger.error("저장소 파일 손상, %s 로 보관 후 빈 상태로 시작: %s", corrupt, exc)
            try:
                self.path.replace(corrupt)
            except OSError:
                logger.exception("손상 파일 보관 실패: %s", self.path)
            return {}
        if not isinstance(data, dict):
            logger.error("저장소 파일 형식 오류: %s", type(data).__name__)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def save(self, data: dict[str, str]) -> None:
        _atomic_write_json(self.path, data)


class KeyValueStore:
    """동기식 문자열 키-값 저장소"""

    def __init__(self, backend: StorageBackend, mirror_legacy: bool = True) -> None:
        self._backend = backend
        self._lock = threading.RLock()
        self._key_locks: defaultdict[str, threading.RLock] = defaultdict(threading.RLock)
        self.mirror_legacy = mirror_legacy
        self._data = backend.load()

    def lock_for(self, key: str) -> threading.RLock:
        """키 단위 읽기-수정-쓰기 직렬화용 락

        Args:
            key: 표준 키

        Returns:
            재진입 가능 락
        """
        with self._lock:
            return self._key_locks[key]

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> bool:
        """값 저장, 실패 시 이전 상태 유지

        Args:
            key: 키
            value: 문자열 값

        Returns:
            저장 성공 여부
        """
        with self._lock:
            previous = self._data.get(key)
            self._data[key] = value
            try:
                self._backend.save(self._data)
            except (OSError, TypeError, ValueError) as exc:
                self._restore(key, previous)
                logger.error("저장 실패 key=%s: %s", key, exc)
                return False
            return True

    def remove(self, key: str) -> bool:
        with self._lock:
            if key not in self._data:
                return True
            previous = self._data.pop(key)
            try:
                self._backend.save(self._data)
            except (OSError, TypeError, ValueError) as exc:
                self._restore(key, previous)
                logger.error("삭제 실패 key=%s: %s", key, exc)
                return False
            return True

    def _restore(self, key: str, previous: str | None) -> None:
        if previous is None:
            self._data.pop(key, None)
        else:
            self._data[key] = previous

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)

    def read(self, key: str, aliases: Iterable[str] = ()) -> str | None:
        """표준 키를 먼저 읽고 없으면 레거시 별칭을 순서대로 읽음

        Args:
            key: 표준 키
            aliases: 레거시 별칭 목록

        Returns:
            찾은 값 또는 None
        """
        value = self.get(key)
        if value is not None:
            return value
        for alias in aliases:
            value = self.get(alias)
            if value is not None:
                logger.info("레거시 키에서 읽음 %s -> %s", alias, key)
                return value
        return None

    def write(self, key: str, value: str, mirrors: Iterable[str] = ()) -> bool:
        """표준 키에 쓰고 레거시 별칭에 복제

        Args:
            key: 표준 키
            value: 문자열 값
            mirrors: 복제할 레거시 별칭 목록

        Returns:
            표준 키 저장 성공 여부
        """
        if not self.set(key, value):
            return False
        if self.mirror_legacy:
            for alias in mirrors:
                if not self.set(alias, value):
                    logger.warning("레거시 키 복제 실패 %s", alias)
        return True

    def delete(self, storage_key: StorageKey) -> bool:
        """표준 키와 모든 레거시 별칭 삭제"""
        ok = self.remove(storage_key.key)
        for alias in storage_key.aliases:
            ok = self.remove(alias) and ok
        return ok

    def read_json(self, storage_key: StorageKey, default: Any) -> Any:
        """JSON 값 읽기, 손상된 값은 기본값으로 처리

        Args:
            storage_key: 저장소 키
            default: 값이 없거나 손상된 경우 기본값

        Returns:
            파싱된 값
        """
        raw = self.read(storage_key.key, storage_key.aliases)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("손상된 JSON 무시 key=%s", storage_key.key)
            return default

    def write_json(self, storage_key: StorageKey, data: Any) -> bool:
        """JSON 직렬화 후 표준 키와 별칭에 저장

        Args:
            storage_key: 저장소 키
            data: JSON 직렬화 가능한 값

        Returns:
            저장 성공 여부
        """
        try:
            raw = json.dumps(data, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            logger.error("직렬화 실패 key=%s: %s", storage_key.key, exc)
            return False
        return self.write(storage_key.key, raw, storage_key.aliases)


def open_store(path: str | None, mirror_legacy: bool = True) -> KeyValueStore:
    """경로가 있으면 파일 저장소, 없으면 메모리 저장소를 생성

    Args:
        path: 저장소 파일 경로
        mirror_legacy: 레거시 별칭 복제 여부

    Returns:
        KeyValueStore 인스턴스
    """
    backend: StorageBackend = JsonFileBackend(path) if path else MemoryBackend()
    return KeyValueStore(backend, mirror_legacy=mirror_legacy)
