import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class PeriodicWorker(threading.Thread):
    """
    작업 하나를 일정 주기로 반복 실행하는 데몬 스레드.

    한 번의 실행이 실패해도 예외를 로그로 남기고 다음 주기에 다시 실행합니다.
    stop()을 호출하면 대기 중이던 스레드가 즉시 깨어나 종료됩니다.
    """

    def __init__(self, name: str, task: Callable[[], object], interval: float):
        super().__init__(name=name, daemon=True)
        self.task = task
        self.interval = interval
        self._stop_event = threading.Event()

    def run(self):
        logger.info("Worker '%s' starting (every %.0fs)", self.name, self.interval)
        while not self._stop_event.is_set():
            self.run_once()
            self._stop_event.wait(self.interval)
        logger.info("Worker '%s' stopped", self.name)

    def run_once(self):
        try:
            self.task()
        except Exception:
            logger.exception("Worker '%s' iteration failed", self.name)

    def stop(self):
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()
