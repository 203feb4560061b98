"""
Source/Target의 타입별 properties 스키마.

properties는 DB에 불투명한 JSON으로 저장되지만, 생성/수정 시에는 반드시
타입 enum으로 선택된 pydantic 모델로 디코딩하여 검증합니다.
"""
from typing import Any, Dict, Optional, Type

import pydantic
from pydantic import BaseModel, ConfigDict, field_validator

from migration_manager.domain.types import SourceType, TargetType
from migration_manager.domain.validation import is_valid_url
from migration_manager.services.exceptions import ValidationError


class _EndpointProperties(BaseModel):
    model_config = ConfigDict(extra="allow")

    endpoint: str
    insecure: bool = False

    @field_validator("endpoint")
    @classmethod
    def _check_endpoint(cls, value: str) -> str:
        if not is_valid_url(value):
            raise ValueError(f"endpoint {value!r} is not a valid URL")
        return value


class CommonSourceProperties(BaseModel):
    """COMMON 타입은 임의의 JSON 객체를 허용합니다."""
    model_config = ConfigDict(extra="allow")


class VMwareSourceProperties(_EndpointProperties):
    username: str
    password: str

    @field_validator("username", "password")
    @classmethod
    def _check_credentials(cls, value: str) -> str:
        if not value:
            raise ValueError("can not be empty for source type VMware")
        return value


class OIDCTokens(BaseModel):
    model_config = ConfigDict(extra="allow")

    access_token: str = ""
    token_type: str = ""
    refresh_token: str = ""
    expiry: Optional[str] = None


class IncusTargetProperties(_EndpointProperties):
    tls_client_key: str = ""
    tls_client_cert: str = ""
    oidc_tokens: Optional[OIDCTokens] = None
    connectivity_status: int = 0


class LibvirtTargetProperties(_EndpointProperties):
    """endpoint는 libvirt 연결 URI입니다. (예: qemu+tls://kvm01/system)"""
    storage_dir: str = "/var/lib/libvirt/images"
    source_export_dir: str = "/var/lib/migration-manager/exports"


SOURCE_PROPERTY_SCHEMAS: Dict[SourceType, Type[BaseModel]] = {
    SourceType.COMMON: CommonSourceProperties,
    SourceType.VMWARE: VMwareSourceProperties,
}

TARGET_PROPERTY_SCHEMAS: Dict[TargetType, Type[BaseModel]] = {
    TargetType.INCUS: IncusTargetProperties,
    TargetType.LIBVIRT: LibvirtTargetProperties,
}


def _decode(entity: str, type_name: str, schema: Type[BaseModel], properties: Any) -> BaseModel:
    if properties is None:
        raise ValidationError(f"Invalid {entity}, properties can not be null")
    if not isinstance(properties, dict):
        raise ValidationError(f"Invalid properties for {type_name} type: expected a JSON object")
    try:
        return schema.model_validate(properties)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid properties for {type_name} type: {e}") from e


def decode_source_properties(source_type: SourceType, properties: Any) -> BaseModel:
    schema = SOURCE_PROPERTY_SCHEMAS.get(source_type)
    if schema is None:
        raise ValidationError(f"Invalid source, {source_type!r} is not a valid source type")
    return _decode("source", source_type.value, schema, properties)


def decode_target_properties(target_type: TargetType, properties: Any) -> BaseModel:
    schema = TARGET_PROPERTY_SCHEMAS.get(target_type)
    if schema is None:
        raise ValidationError(f"Invalid target, {target_type!r} is not a valid target type")
    return _decode("target", target_type.value, schema, properties)
