# tests/domain/test_validation.py
import pytest

from conftest import LIBVIRT_PROPERTIES, make_source, make_target
from migration_manager.domain import SourceType, TargetType
from migration_manager.domain.properties import (
    LibvirtTargetProperties,
    decode_source_properties,
    decode_target_properties,
)
from migration_manager.domain.validation import is_valid_url
from migration_manager.services.exceptions import ValidationError


@pytest.mark.parametrize("value", [
    "https://vcenter.example.com",
    "https://vcenter.example.com:8443/sdk",
    "qemu+tls://kvm01.example.com/system",
    "endpoint.url",
])
def test_valid_urls(value):
    assert is_valid_url(value)


@pytest.mark.parametrize("value", [
    "",
    "https://bad host",
    "https://vcenter:notaport",
    "1http://vcenter",
    "https://vcenter/<script>",
])
def test_invalid_urls(value):
    assert not is_valid_url(value)


class TestSourceValidation:
    def test_valid_vmware_source(self):
        source = make_source()
        source.validate()

    def test_empty_name_is_rejected(self):
        with pytest.raises(ValidationError):
            make_source(name="").validate()

    def test_negative_id_is_rejected(self):
        with pytest.raises(ValidationError):
            make_source(id=-1).validate()

    def test_unknown_type_is_rejected(self):
        with pytest.raises(ValidationError):
            make_source(source_type="hyperv").validate()

    def test_vmware_requires_credentials(self):
        """VMware 소스는 사용자 이름과 비밀번호가 비어 있으면 안 되는지 테스트합니다."""
        source = make_source(properties={"endpoint": "https://vc", "username": "", "password": "x"})
        with pytest.raises(ValidationError):
            source.validate()

    def test_vmware_rejects_invalid_endpoint(self):
        source = make_source(properties={"endpoint": "https://bad host", "username": "u", "password": "p"})
        with pytest.raises(ValidationError):
            source.validate()

    def test_common_source_accepts_any_object(self):
        decoded = decode_source_properties(SourceType.COMMON, {"anything": [1, 2, 3]})
        assert decoded.model_dump()["anything"] == [1, 2, 3]

    def test_null_properties_are_rejected(self):
        with pytest.raises(ValidationError):
            decode_source_properties(SourceType.COMMON, None)


class TestTargetValidation:
    def test_libvirt_defaults(self):
        decoded = decode_target_properties(TargetType.LIBVIRT, dict(LIBVIRT_PROPERTIES))

        assert isinstance(decoded, LibvirtTargetProperties)
        assert decoded.storage_dir == "/var/lib/libvirt/images"
        assert decoded.insecure is False

    def test_incus_target_with_oidc_tokens(self):
        target = make_target(
            target_type=TargetType.INCUS,
            properties={"endpoint": "https://incus:8443", "oidc_tokens": {"access_token": "abc"}},
        )
        target.validate()
        assert target.decoded_properties().oidc_tokens.access_token == "abc"

    def test_missing_endpoint_is_rejected(self):
        with pytest.raises(ValidationError):
            make_target(properties={"insecure": True}).validate()

    def test_non_object_properties_are_rejected(self):
        with pytest.raises(ValidationError):
            make_target(properties=["endpoint"]).validate()
