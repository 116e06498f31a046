"""Certificate utility functions for key generation, serialization, and metadata extraction."""

import re
import uuid
from datetime import UTC, datetime
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.x509.oid import NameOID

from .models import CertificateMetadata

OPENSSL_DATE_FORMAT = "%b %d %H:%M:%S %Y %Z"

# characters openssl escapes with a backslash in its one-line name format
_ONELINE_SPECIALS = re.compile(r'([\\,+"<>;])')


def generate_private_key(key_size: int = 2048) -> RSAPrivateKey:
    """Generate RSA private key with specified size."""
    return rsa.generate_private_key(
        public_exponent=65537,
        key_size=key_size,
    )


def serialize_private_key(key: RSAPrivateKey) -> bytes:
    """Serialize private key to PEM format (PKCS8, no encryption)."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def deserialize_private_key(pem_data: bytes) -> RSAPrivateKey:
    """Deserialize private key from PEM bytes."""
    key = serialization.load_pem_private_key(pem_data, password=None)
    if not isinstance(key, RSAPrivateKey):
        raise ValueError("expected RSA private key")
    return key


def serialize_certificate(cert: x509.Certificate) -> bytes:
    """Serialize certificate to PEM format."""
    return cert.public_bytes(serialization.Encoding.PEM)


def deserialize_certificate(pem_data: bytes) -> x509.Certificate:
    """Deserialize certificate from PEM bytes."""
    return x509.load_pem_x509_certificate(pem_data)


def serialize_csr(csr: x509.CertificateSigningRequest) -> bytes:
    """Serialize CSR to PEM format."""
    return csr.public_bytes(serialization.Encoding.PEM)


def deserialize_csr(pem_data: bytes) -> x509.CertificateSigningRequest:
    """Deserialize CSR from PEM bytes."""
    return x509.load_pem_x509_csr(pem_data)


def generate_serial_number() -> int:
    """Generate certificate serial number from UUID4.

    Uses UUID v4 (random) for 128-bit serial numbers, which is what
    openssl's ``-CAcreateserial`` produces for a fresh serial file.

    Returns:
        Integer serial number for x509.CertificateBuilder.serial_number()
    """
    return uuid.uuid4().int


def next_serial_number(serial_path: Path) -> int:
    """Read, increment and persist the serial stored in an openssl ``.srl`` file.

    A missing or empty file is created with a random serial.

    Args:
        serial_path: Path to the serial file

    Returns:
        Serial number to use for the next issued certificate
    """
    current = serial_path.read_text().strip() if serial_path.exists() else ""
    serial = int(current, 16) + 1 if current else generate_serial_number()
    serial_path.write_text(f"{serial:X}\n")
    return serial


def get_certificate_serial_hex(cert: x509.Certificate) -> str:
    """Return certificate serial number as hex with colons (e.g., 3A:F2:B1:...)."""
    serial_hex = f"{cert.serial_number:X}"
    if len(serial_hex) % 2 != 0:
        serial_hex = "0" + serial_hex
    return ":".join(serial_hex[i : i + 2] for i in range(0, len(serial_hex), 2))


def format_openssl_date(value: datetime) -> str:
    """Render a datetime the way ``openssl x509 -enddate`` does (``Jan  2 03:04:05 2030 GMT``)."""
    value = value.astimezone(UTC)
    return f"{value:%b} {value.day:2d} {value:%H:%M:%S} {value.year} GMT"


def parse_openssl_date(value: str) -> datetime:
    """Parse an openssl date string into an aware UTC datetime.

    Raises:
        ValueError: If the string is not in openssl's date format
    """
    return datetime.strptime(value.strip(), OPENSSL_DATE_FORMAT).replace(tzinfo=UTC)


def extract_certificate_metadata(
    cert: x509.Certificate, device_id: str | None = None
) -> CertificateMetadata:
    """Extract certificate metadata for structured logging.

    Args:
        cert: X.509 certificate to extract metadata from
        device_id: Optional device the certificate was delivered to

    Returns:
        CertificateMetadata with serialNumber, clientName and timestamps.
    """
    attributes = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    cn = attributes[0].value if attributes else ""
    if not isinstance(cn, str):
        raise ValueError("CN must be string")

    metadata = CertificateMetadata(
        serialNumber=get_certificate_serial_hex(cert),
        clientName=cn,
        notBefore=cert.not_valid_before_utc.isoformat(),
        expiry=cert.not_valid_after_utc.isoformat(),
        issuedAt=datetime.now(UTC).isoformat(),
    )

    if device_id is not None:
        metadata["deviceId"] = device_id

    return metadata


def extract_csr_subject(csr: x509.CertificateSigningRequest) -> x509.Name:
    """Extract subject DN from CSR."""
    return csr.subject


def extract_csr_public_key(
    csr: x509.CertificateSigningRequest,
) -> rsa.RSAPublicKey | ec.EllipticCurvePublicKey:
    """Extract public key from CSR.

    Raises:
        ValueError: If public key is neither RSA nor EC
    """
    public_key = csr.public_key()
    if not isinstance(public_key, (rsa.RSAPublicKey, ec.EllipticCurvePublicKey)):
        raise ValueError("CSR public key must be RSA or EC type")
    return public_key


def validate_csr_signature(csr: x509.CertificateSigningRequest) -> bool:
    """Verify CSR self-signature to prove private key possession."""
    try:
        return csr.is_signature_valid
    except Exception:
        return False


def _escape_oneline_value(value: str) -> str:
    return _ONELINE_SPECIALS.sub(r"\\\1", value)


def format_subject_oneline(name: x509.Name) -> str:
    """Render a name in openssl's default one-line format (``C = US, O = Sonar, CN = x``).

    Separators and quotes inside values are backslash escaped like openssl
    does, so a value can never read as an extra RDN.
    """
    return ", ".join(
        f"{attribute.rfc4514_attribute_name} = {_escape_oneline_value(str(attribute.value))}"
        for attribute in name
    )
