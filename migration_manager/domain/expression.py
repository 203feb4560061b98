"""
배치의 include_expression을 해석하는 제한된 표현식 평가기.

표현식은 파이썬 문법의 부분 집합입니다. 허용되는 것은 불리언 연산(and/or/not),
비교(==, !=, <, <=, >, >=, in, not in), 상수(음수 포함), 리스트/튜플 리터럴, 인스턴스 속성 이름,
문자열 메서드(startswith, endswith, lower, upper), 그리고 matches(value, regex) 뿐입니다.
`true`/`false`도 불리언 상수로 인식합니다.

예:
    os == "Ubuntu" and os_version.startswith("24")
    matches(path, "^/prod/") or source == "vcenter-02"
"""
import ast
import operator
import re
from typing import Any, Callable, Dict

from migration_manager.services.exceptions import ValidationError

_COMPARE_OPS: Dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
}

_STRING_METHODS = frozenset({"startswith", "endswith", "lower", "upper"})

_CONSTANT_NAMES = {"true": True, "false": False, "True": True, "False": False}


def _matches(value: Any, pattern: str) -> bool:
    return re.search(pattern, str(value)) is not None


_FUNCTIONS: Dict[str, Callable[..., Any]] = {
    "matches": _matches,
}


class ExpressionError(ValidationError):
    """include_expression을 해석하거나 평가할 수 없을 때"""
    pass


class IncludeExpression:
    """한 번 컴파일(구문 검사)한 뒤 여러 인스턴스에 반복 평가합니다."""

    def __init__(self, source: str):
        if not source or not source.strip():
            raise ExpressionError("Include expression can not be empty")
        self.source = source
        try:
            self._tree = ast.parse(source.strip(), mode="eval")
        except SyntaxError as e:
            raise ExpressionError(f"Invalid include expression {source!r}: {e.msg}") from e
        self._check(self._tree.body)

    def _check(self, node: ast.AST):
        allowed = (
            ast.BoolOp, ast.And, ast.Or, ast.UnaryOp, ast.Not, ast.USub, ast.Compare,
            ast.Constant, ast.Name, ast.Load, ast.List, ast.Tuple, ast.Call, ast.Attribute,
        ) + tuple(_COMPARE_OPS)
        for child in ast.walk(node):
            if not isinstance(child, allowed):
                raise ExpressionError(f"Unsupported syntax in include expression: {type(child).__name__}")
            if isinstance(child, ast.Attribute) and child.attr not in _STRING_METHODS:
                raise ExpressionError(f"Unsupported attribute '{child.attr}' in include expression")
            if isinstance(child, ast.Call):
                func = child.func
                if isinstance(func, ast.Name) and func.id in _FUNCTIONS:
                    continue
                if isinstance(func, ast.Attribute):
                    continue
                raise ExpressionError("Only matches() and string methods can be called in include expressions")

    def evaluate(self, attributes: Dict[str, Any]) -> bool:
        try:
            return bool(self._eval(self._tree.body, attributes))
        except ExpressionError:
            raise
        except Exception as e:
            raise ExpressionError(f"Failed to evaluate include expression {self.source!r}: {e}") from e

    def _eval(self, node: ast.AST, env: Dict[str, Any]) -> Any:
        if isinstance(node, ast.Constant):
            return node.value

        if isinstance(node, ast.Name):
            if node.id in env:
                return env[node.id]
            if node.id in _CONSTANT_NAMES:
                return _CONSTANT_NAMES[node.id]
            raise ExpressionError(f"Unknown attribute '{node.id}' in include expression")

        if isinstance(node, (ast.List, ast.Tuple)):
            return [self._eval(elt, env) for elt in node.elts]

        if isinstance(node, ast.BoolOp):
            if isinstance(node.op, ast.And):
                return all(self._eval(v, env) for v in node.values)
            return any(self._eval(v, env) for v in node.values)

        if isinstance(node, ast.UnaryOp):
            operand = self._eval(node.operand, env)
            if isinstance(node.op, ast.USub):
                return -operand
            return not operand

        if isinstance(node, ast.Compare):
            left = self._eval(node.left, env)
            for op, comparator in zip(node.ops, node.comparators):
                right = self._eval(comparator, env)
                if not _COMPARE_OPS[type(op)](left, right):
                    return False
                left = right
            return True

        if isinstance(node, ast.Call):
            args = [self._eval(arg, env) for arg in node.args]
            if isinstance(node.func, ast.Name):
                return _FUNCTIONS[node.func.id](*args)
            target = self._eval(node.func.value, env)
            if not isinstance(target, str):
                raise ExpressionError(f"'{node.func.attr}' can only be called on strings")
            return getattr(target, node.func.attr)(*args)

        raise ExpressionError(f"Unsupported syntax in include expression: {type(node).__name__}")


def instance_attributes(instance, source_name: str = "", source_type: str = "") -> Dict[str, Any]:
    """include_expression에서 참조할 수 있는 고정된 인스턴스 속성 집합을 만듭니다."""
    return {
        "name": instance.name,
        "path": instance.inventory_path,
        "annotation": instance.annotation,
        "os": instance.os,
        "os_version": instance.os_version,
        "architecture": instance.architecture,
        "hardware_version": instance.hardware_version,
        "guest_tools_version": instance.guest_tools_version,
        "source": source_name,
        "source_type": source_type,
        "cpus": instance.effective_number_cpus,
        "memory": instance.effective_memory_in_bytes,
        "legacy_bios": instance.use_legacy_bios,
        "secure_boot": instance.secure_boot_enabled,
        "tpm": instance.tpm_present,
        "disks": len(instance.disks),
        "nics": len(instance.nics),
    }
