"""
로깅 설정.
운영 환경에서는 JSON 한 줄 로그, 개발 환경에서는 사람이 읽기 쉬운 콘솔 로그를 사용합니다.
"""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging"""

    EXTRA_FIELDS = ("instance", "batch", "source", "target", "status")

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in self.EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = str(getattr(record, name))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


CONSOLE_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)-40s | %(message)s"


def setup_logging(log_level: str = "INFO", json_logs: bool = False, log_file: Optional[str] = None):
    """
    루트 로거를 설정합니다. 여러 번 호출해도 핸들러가 중복 등록되지 않습니다.

    Args:
        log_level: 로그 레벨 이름 (DEBUG, INFO, WARNING, ERROR).
        json_logs: True면 JSON 포맷으로 출력합니다.
        log_file: 지정하면 같은 포맷으로 파일에도 기록합니다.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = JSONFormatter() if json_logs else logging.Formatter(CONSOLE_FORMAT, "%Y-%m-%d %H:%M:%S")

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # SQLAlchemy 엔진 로그는 WARNING 이상만 남깁니다.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
