from abc import ABC, abstractmethod

from migration_manager.domain import Batch, Instance
from migration_manager.utils.deadline import Deadline


class ITargetExecution(ABC):
    """
    타겟 플랫폼에서 마이그레이션 단계를 실제로 수행하는 드라이버.

    모든 메서드는 재시도에 안전해야(idempotent) 합니다. 워커는 실패한 단계를 같은 인자로 다시 호출합니다.
    재시도 가능한 실패는 TransientExecutionError, 재시도 불가능한 실패는 FatalExecutionError,
    마감 초과는 DeadlineExceededError로 알립니다.
    """

    @abstractmethod
    def provision(self, instance: Instance, batch: Batch, deadline: Deadline):
        """타겟에 인스턴스 정의(도메인, 디스크 자리)를 만듭니다. 이미 있으면 아무것도 하지 않습니다."""
        pass

    @abstractmethod
    def import_disks(self, instance: Instance, final: bool, deadline: Deadline):
        """
        디스크 데이터를 타겟으로 옮깁니다.

        final=False는 원본이 켜진 상태에서의 백그라운드 동기화,
        final=True는 원본을 멈춘 뒤의 마지막 (차등) 동기화입니다.
        """
        pass

    @abstractmethod
    def cutover(self, instance: Instance, deadline: Deadline):
        """타겟 인스턴스를 기동해 전환을 마칩니다. 이미 실행 중이면 아무것도 하지 않습니다."""
        pass
