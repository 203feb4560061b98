from .tls import Identity, TLSAuthorizer, cert_fingerprint, check_trust_state

__all__ = ["Identity", "TLSAuthorizer", "cert_fingerprint", "check_trust_state"]
