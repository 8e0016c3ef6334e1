from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from sarathi.models.profiles import DoctorProfile, PharmacyProfile


class Settings(BaseSettings):
    """환경 변수에서 애플리케이션 설정을 로드"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    environment: Literal["local", "dev", "prod"] = "local"
    version: str = "0.1.0"
    log_level: str = "INFO"
    backend_base_url: str = "http://localhost:4000"
    request_timeout_seconds: float = 30.0
    storage_path: str = "data/device_storage.json"
    config_path: str = "sarathi.yaml"
    duckdb_path: str = "data/telemetry.duckdb"
    scheduler_enabled: bool = True
    sync_debounce_seconds: float = 1.5
    sync_settle_seconds: float = 2.0
    sync_poll_seconds: int = 60
    ledger_write_retries: int = 3


class StorageConfig(BaseModel):
    """로컬 저장소 설정"""

    mirror_legacy_writes: bool = True


class AppConfig(BaseModel):
    """단말 설정 파일(YAML) 래퍼"""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    doctor: DoctorProfile | None = None
    pharmacy: PharmacyProfile | None = None


@lru_cache
def get_settings() -> Settings:
    """캐시된 설정 인스턴스를 반환"""
    return Settings()


@lru_cache
def load_app_config() -> AppConfig:
    """설정 파일(YAML)에서 단말 설정 로드

    파일이 없으면 기본값을 사용한다.

    Returns:
        단말 설정 인스턴스
    """
    settings = get_settings()
    path = Path(settings.config_path)
    if not path.exists():
        return AppConfig()
    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    return AppConfig(**data)


def reload_app_config() -> AppConfig:
    """설정 캐시를 초기화하고 다시 로드

    Returns:
        단말 설정 인스턴스
    """
    load_app_config.cache_clear()
    return load_app_config()
