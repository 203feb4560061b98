from migration_manager.domain import Target, TargetType
from migration_manager.services.exceptions import FatalExecutionError
from migration_manager.targets.interface import ITargetExecution


def create_target_driver(target: Target) -> ITargetExecution:
    """
    타겟 타입에 맞는 실행 드라이버를 만듭니다.

    libvirt 바인딩은 선택 설치(extra)이므로 필요할 때만 import합니다.

    Raises:
        FatalExecutionError: 이 타입을 실행할 드라이버가 없거나 바인딩이 설치되지 않았을 때.
    """
    if TargetType(target.target_type) == TargetType.LIBVIRT:
        try:
            from migration_manager.targets.libvirt_target import LibvirtTarget
        except ImportError as e:
            raise FatalExecutionError(
                f"Target '{target.name}' requires the libvirt Python bindings: {e}"
            ) from e
        return LibvirtTarget(target)

    raise FatalExecutionError(
        f"No execution driver available for target '{target.name}' of type '{target.target_type.value}'"
    )


__all__ = ["ITargetExecution", "create_target_driver"]
