# tests/domain/test_expression.py
import pytest

from conftest import make_instance
from migration_manager.domain import Overrides
from migration_manager.domain.expression import ExpressionError, IncludeExpression, instance_attributes


@pytest.fixture
def attributes():
    instance = make_instance(1, path="/dc/prod/web-01", annotation="frontend")
    return instance_attributes(instance, source_name="vcenter-01", source_type="vmware")


class TestIncludeExpression:
    @pytest.mark.parametrize("source, expected", [
        ('os == "Ubuntu"', True),
        ('os == "Ubuntu" and os_version.startswith("24")', True),
        ('os != "Ubuntu" or cpus >= 2', True),
        ('not legacy_bios', True),
        ('matches(path, "^/dc/prod/")', True),
        ('source in ["vcenter-01", "vcenter-02"]', True),
        ('name.upper() == "WEB-01"', True),
        ('memory > 8 * 1024', None),
        ('disks == 1 and nics == 1', True),
        ('tpm == true', False),
        ('source_type not in ("vmware",)', False),
        ('cpus > -1', True),
        ('-cpus < 0', True),
    ])
    def test_evaluate(self, attributes, source, expected):
        if expected is None:
            with pytest.raises(ExpressionError):
                IncludeExpression(source)
            return
        assert IncludeExpression(source).evaluate(attributes) is expected

    @pytest.mark.parametrize("source", [
        "",
        "os ==",
        "__import__('os').system('true')",
        "os.__class__",
        "[x for x in disks]",
        "lambda: True",
    ])
    def test_rejects_unsupported_syntax(self, source):
        """허용 목록 밖의 구문은 컴파일 단계에서 거부되는지 테스트합니다."""
        with pytest.raises(ExpressionError):
            IncludeExpression(source)

    def test_unknown_attribute_fails_at_evaluation(self, attributes):
        expression = IncludeExpression("datacenter == 'x'")

        with pytest.raises(ExpressionError):
            expression.evaluate(attributes)

    def test_overrides_feed_effective_values(self):
        instance = make_instance(1)
        instance.overrides = Overrides(uuid=instance.uuid, number_cpus=16)

        assert IncludeExpression("cpus == 16").evaluate(instance_attributes(instance)) is True
