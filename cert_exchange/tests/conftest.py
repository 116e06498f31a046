"""Test fixtures for cert_exchange tests."""

from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.x509.oid import NameOID

from cert_exchange.lib.authority import AuthorityManager
from cert_exchange.lib.bridges import BridgeHandle
from cert_exchange.lib.cert_utils import (
    generate_private_key,
    generate_serial_number,
    serialize_certificate,
)
from cert_exchange.lib.config import AuthorityConfig, ExchangeConfig, ProvisioningPaths
from cert_exchange.lib.crypto_toolkit import CryptographyToolkit
from cert_exchange.lib.models import DeviceTarget, TargetOS

APP_NAME = "com.example.app"
ANDROID_APP_DIRECTORY = "/data/data/com.example.app/files/sonar/"


def build_csr_pem(common_name: str, organization: str = "Example") -> str:
    """Build an app CSR the way a client SDK would (EC key, CN = app id)."""
    key = ec.generate_private_key(ec.SECP256R1())
    csr = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(
            x509.Name(
                [
                    x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
                    x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization),
                    x509.NameAttribute(NameOID.COMMON_NAME, common_name),
                ]
            )
        )
        .sign(key, hashes.SHA256())
    )
    return csr.public_bytes(serialization.Encoding.PEM).decode()


def write_certificate(
    path: Path,
    subject_cn: str,
    issuer_cert: x509.Certificate | None,
    issuer_key: RSAPrivateKey,
    not_after: datetime,
    subject_key: RSAPrivateKey | None = None,
) -> x509.Certificate:
    """Write a certificate with an arbitrary validity window (self-signed if no issuer)."""
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, subject_cn)])
    public_key = (subject_key or issuer_key).public_key()
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer_cert.subject if issuer_cert else subject)
        .public_key(public_key)
        .serial_number(generate_serial_number())
        .not_valid_before(not_after - timedelta(days=60))
        .not_valid_after(not_after)
        .sign(issuer_key, hashes.SHA256())
    )
    path.write_bytes(serialize_certificate(cert))
    return cert


@pytest.fixture
def csr_pem() -> str:
    """Return a valid CSR for com.example.app."""
    return build_csr_pem(APP_NAME)


@pytest.fixture
def provisioning_paths(tmp_path: Path) -> ProvisioningPaths:
    """Return provisioning layout inside a temporary directory (not yet created)."""
    return ProvisioningPaths(directory=tmp_path / "certs")


@pytest.fixture
def toolkit() -> CryptographyToolkit:
    """Return in-process toolkit."""
    return CryptographyToolkit()


@pytest.fixture
def authority_config() -> AuthorityConfig:
    """Return authority configuration with default subjects."""
    return AuthorityConfig(key_size=2048)


@pytest.fixture
def authority(
    provisioning_paths: ProvisioningPaths,
    toolkit: CryptographyToolkit,
    authority_config: AuthorityConfig,
) -> AuthorityManager:
    """Return authority manager over an empty provisioning directory."""
    return AuthorityManager(provisioning_paths, toolkit, authority_config)


@pytest.fixture
def exchange_config() -> ExchangeConfig:
    """Return exchange configuration with an upload bucket and short timeout."""
    return ExchangeConfig(
        idb_path="/opt/idb",
        upload_bucket="cert-intake",
        upload_timeout_seconds=1,
    )


@pytest.fixture
def android_bridge() -> AsyncMock:
    """Return mocked Android bridge with no devices."""
    bridge = AsyncMock()
    bridge.list_devices.return_value = []
    return bridge


@pytest.fixture
def android_handle(android_bridge: AsyncMock) -> BridgeHandle:
    """Return ready handle around the mocked Android bridge."""
    return BridgeHandle.ready("Android", android_bridge)


@pytest.fixture
def ios_bridge() -> AsyncMock:
    """Return mocked iOS bridge with no targets."""
    bridge = AsyncMock()
    bridge.targets.return_value = []
    return bridge


@pytest.fixture
def android_devices() -> list[DeviceTarget]:
    """Return three connected Android devices."""
    return [
        DeviceTarget(id="emulator-5554", platform=TargetOS.ANDROID),
        DeviceTarget(id="R58M123ABC", platform=TargetOS.ANDROID),
        DeviceTarget(id="emulator-5556", platform=TargetOS.ANDROID),
    ]


@pytest.fixture
def notifier() -> MagicMock:
    """Return notification sink."""
    return MagicMock()


@pytest.fixture
def ca_key() -> RSAPrivateKey:
    """Generate RSA key for ad-hoc CA certificates."""
    return generate_private_key(key_size=2048)


@pytest.fixture
def now() -> datetime:
    return datetime.now(UTC)


@pytest.fixture
def make_csr():
    """Return factory building CSR PEM text for a given CN."""
    return build_csr_pem


@pytest.fixture
def cert_writer():
    """Return helper writing certificates with arbitrary validity windows."""
    return write_certificate
