# migration_manager/config.py
import os
from dataclasses import dataclass, field
from typing import List


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _env_list(name: str) -> List[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Settings:
    """환경 변수로부터 읽어 들이는 실행 설정"""
    database_url: str = "sqlite:///migration_manager.db"
    log_level: str = "INFO"
    json_logs: bool = False
    log_file: str = ""

    # 워커 루프 주기(초)
    scheduler_interval: float = 30.0
    migration_interval: float = 30.0
    sync_interval: float = 600.0

    # 외부 호출(인벤토리 조회, 디스크 동기화 한 단계) 마감 시간(초)
    call_timeout: float = 3600.0
    max_parallel_migrations: int = 4

    trusted_cert_fingerprints: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("MM_DATABASE_URL", cls.database_url),
            log_level=os.getenv("MM_LOG_LEVEL", cls.log_level),
            json_logs=_env_bool("MM_JSON_LOGS"),
            log_file=os.getenv("MM_LOG_FILE", ""),
            scheduler_interval=float(os.getenv("MM_SCHEDULER_INTERVAL", "30")),
            migration_interval=float(os.getenv("MM_MIGRATION_INTERVAL", "30")),
            sync_interval=float(os.getenv("MM_SYNC_INTERVAL", "600")),
            call_timeout=float(os.getenv("MM_CALL_TIMEOUT", "3600")),
            max_parallel_migrations=int(os.getenv("MM_MAX_PARALLEL_MIGRATIONS", "4")),
            trusted_cert_fingerprints=_env_list("MM_TRUSTED_CERT_FINGERPRINTS"),
        )
