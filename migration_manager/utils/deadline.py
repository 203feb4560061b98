import time
from typing import Optional

from migration_manager.services.exceptions import DeadlineExceededError


class Deadline:
    """
    외부 호출 하나에 주어진 마감 시간.

    하이퍼바이저/타겟 드라이버는 긴 작업 사이사이 check()를 호출하고,
    하위 프로세스에는 remaining()을 timeout으로 넘깁니다.
    """

    def __init__(self, seconds: float, clock=time.monotonic):
        self._clock = clock
        self.seconds = seconds
        self.expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self._clock() >= self.expires_at

    def check(self, operation: Optional[str] = None):
        if self.expired:
            what = f" during {operation}" if operation else ""
            raise DeadlineExceededError(f"Deadline of {self.seconds:.0f}s exceeded{what}")
