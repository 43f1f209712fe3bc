from __future__ import annotations

import logging

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from casetalink.errors import KeyGenerationFailed

logger = logging.getLogger(__name__)

# CN presented to the bridge; shows up in its list of integrations
CLIENT_COMMON_NAME = "casetalink"
KEY_SIZE = 2048


def generate_csr(common_name: str = CLIENT_COMMON_NAME) -> tuple[str, str]:
    """Create a fresh RSA key and a CSR signed with it.

    Returns ``(csr_pem, private_key_pem)``.
    """
    logger.debug("Generating %d-bit RSA key for '%s'", KEY_SIZE, common_name)
    try:
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=KEY_SIZE)
        csr = (
            x509.CertificateSigningRequestBuilder()
            .subject_name(
                x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
            )
            .sign(private_key, hashes.SHA256())
        )
        csr_pem = csr.public_bytes(serialization.Encoding.PEM).decode("ascii")
        key_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("ascii")
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise KeyGenerationFailed(f"key generation failed: {exc}") from exc
    return csr_pem, key_pem
