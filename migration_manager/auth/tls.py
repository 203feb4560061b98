"""
클라이언트 인증서 기반 권한 확인.

TLS로 인증된 클라이언트의 username은 인증서의 SHA-256 지문(16진수 소문자)이며,
신뢰 목록에 있는 지문이면 모든 객체에 대한 전체 권한을 가집니다.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes

from migration_manager.services.exceptions import PermissionDeniedError

logger = logging.getLogger(__name__)

PROTOCOL_UNIX = "unix"
PROTOCOL_TLS = "tls"


@dataclass(frozen=True)
class Identity:
    """요청을 보낸 주체. protocol은 인증 방식, username은 방식별 식별자입니다."""
    protocol: str
    username: str = ""


def cert_fingerprint(cert: x509.Certificate) -> str:
    return cert.fingerprint(hashes.SHA256()).hex()


def _normalize(fingerprint: str) -> str:
    return fingerprint.replace(":", "").strip().lower()


def check_trust_state(
    cert: x509.Certificate,
    trusted_fingerprints: Iterable[str],
    now: Optional[datetime] = None,
) -> Tuple[bool, str]:
    """
    클라이언트 인증서를 신뢰할 수 있는지 확인합니다.

    유효 기간 밖이거나 신뢰 목록에 없는 인증서는 신뢰하지 않습니다.

    Returns:
        (신뢰 여부, 일치한 지문). 신뢰하지 않으면 지문은 빈 문자열입니다.
    """
    now = now or datetime.now(timezone.utc)
    if now < cert.not_valid_before_utc or now > cert.not_valid_after_utc:
        return False, ""

    fingerprint = cert_fingerprint(cert)
    for trusted in trusted_fingerprints:
        if _normalize(trusted) == fingerprint:
            logger.debug("Matched trusted certificate %s (%s)", fingerprint, cert.subject.rfc4514_string())
            return True, fingerprint

    return False, ""


class TLSAuthorizer:
    def __init__(self, certificate_fingerprints: Iterable[str]):
        self.certificate_fingerprints = frozenset(_normalize(f) for f in certificate_fingerprints)

    def check_permission(self, identity: Identity, obj: str, entitlement: str):
        """
        identity가 obj에 대해 entitlement 권한을 가지는지 확인합니다.

        - 로컬 unix 소켓 요청은 항상 허용합니다.
        - TLS가 아닌 인증 방식은 이 authorizer가 판단할 수 없으므로 경고만 남기고 허용합니다.
        - TLS 요청은 인증서 지문이 신뢰 목록에 있어야 합니다.

        Raises:
            PermissionDeniedError: TLS 클라이언트 인증서가 신뢰 목록에 없을 때.
        """
        if identity.protocol == PROTOCOL_UNIX:
            return

        if identity.protocol != PROTOCOL_TLS:
            logger.warning("Authentication protocol '%s' is not compatible with the TLS authorizer", identity.protocol)
            return

        if _normalize(identity.username) in self.certificate_fingerprints:
            return

        raise PermissionDeniedError(f"Client certificate not found, '{entitlement}' on '{obj}' denied")
