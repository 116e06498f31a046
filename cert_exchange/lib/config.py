"""Certificate exchange configuration dataclasses."""

import os
from dataclasses import dataclass, field
from pathlib import Path

from cryptography import x509
from cryptography.x509 import oid

# Device-side file names
CSR_FILE_NAME = "app.csr"
DEVICE_CA_CERT_FILE = "sonarCA.crt"
DEVICE_CLIENT_CERT_FILE = "device.crt"

MIN_CERT_EXPIRY_WINDOW_SECONDS = 24 * 60 * 60
UPLOAD_TIMEOUT_SECONDS = 5 * 60


@dataclass
class DistinguishedName:
    """X.509 Subject Distinguished Name."""

    country: str
    state: str
    locality: str
    organization: str
    common_name: str
    organizational_unit: str | None = None

    def to_x509_name(self) -> x509.Name:
        """Convert to cryptography x509.Name for certificate generation."""
        attributes = [
            x509.NameAttribute(oid.NameOID.COUNTRY_NAME, self.country),
            x509.NameAttribute(oid.NameOID.STATE_OR_PROVINCE_NAME, self.state),
            x509.NameAttribute(oid.NameOID.LOCALITY_NAME, self.locality),
            x509.NameAttribute(oid.NameOID.ORGANIZATION_NAME, self.organization),
        ]
        if self.organizational_unit:
            attributes.append(
                x509.NameAttribute(oid.NameOID.ORGANIZATIONAL_UNIT_NAME, self.organizational_unit)
            )
        attributes.append(x509.NameAttribute(oid.NameOID.COMMON_NAME, self.common_name))
        return x509.Name(attributes)

    def to_openssl_subject(self) -> str:
        """Render as an openssl ``-subj`` argument, e.g. ``/C=US/O=Sonar/CN=SonarCA``."""
        parts = [
            f"C={self.country}",
            f"ST={self.state}",
            f"L={self.locality}",
            f"O={self.organization}",
        ]
        if self.organizational_unit:
            parts.append(f"OU={self.organizational_unit}")
        parts.append(f"CN={self.common_name}")
        return "/" + "/".join(parts)


def _sonar_dn(common_name: str) -> DistinguishedName:
    return DistinguishedName(
        country="US",
        state="CA",
        locality="Menlo Park",
        organization="Sonar",
        common_name=common_name,
    )


@dataclass
class AuthorityConfig:
    """Fixed parameters of the local certificate authority."""

    ca_subject: DistinguishedName = field(default_factory=lambda: _sonar_dn("SonarCA"))
    server_subject: DistinguishedName = field(default_factory=lambda: _sonar_dn("localhost"))
    key_size: int = 2048
    # openssl's default validity when no -days is given
    ca_validity_days: int = 30
    server_validity_days: int = 30
    client_validity_days: int = 30
    expiry_window_seconds: int = MIN_CERT_EXPIRY_WINDOW_SECONDS


def default_provisioning_dir() -> Path:
    """Per-user provisioning directory."""
    return Path.home() / ".flipper" / "certs"


@dataclass
class ProvisioningPaths:
    """On-disk layout of CA and server artifacts under one directory."""

    directory: Path = field(default_factory=default_provisioning_dir)

    @property
    def ca_key(self) -> Path:
        return self.directory / "ca.key"

    @property
    def ca_cert(self) -> Path:
        return self.directory / "ca.crt"

    @property
    def server_key(self) -> Path:
        return self.directory / "server.key"

    @property
    def server_csr(self) -> Path:
        return self.directory / "server.csr"

    @property
    def server_serial(self) -> Path:
        return self.directory / "server.srl"

    @property
    def server_cert(self) -> Path:
        return self.directory / "server.crt"


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ExchangeConfig:
    """Device bridge and upload settings for the exchange service."""

    idb_path: str = "/usr/local/bin/idb"
    enable_android: bool = True
    enable_ios: bool = True
    android_home: str = ""
    enable_physical_ios: bool = False
    upload_bucket: str = ""
    region: str = "eu-west-2"
    upload_timeout_seconds: float = UPLOAD_TIMEOUT_SECONDS
    reject_ambiguous_matches: bool = False

    @classmethod
    def from_env(cls) -> "ExchangeConfig":
        """Build configuration from ``CERT_EXCHANGE_*`` environment variables."""
        defaults = cls()
        return cls(
            idb_path=os.environ.get("CERT_EXCHANGE_IDB_PATH", defaults.idb_path),
            enable_android=_env_flag("CERT_EXCHANGE_ENABLE_ANDROID", defaults.enable_android),
            enable_ios=_env_flag("CERT_EXCHANGE_ENABLE_IOS", defaults.enable_ios),
            android_home=os.environ.get("ANDROID_HOME", defaults.android_home),
            enable_physical_ios=_env_flag(
                "CERT_EXCHANGE_ENABLE_PHYSICAL_IOS", defaults.enable_physical_ios
            ),
            upload_bucket=os.environ.get("CERT_EXCHANGE_UPLOAD_BUCKET", defaults.upload_bucket),
            region=os.environ.get("AWS_REGION", defaults.region),
            upload_timeout_seconds=float(
                os.environ.get("CERT_EXCHANGE_UPLOAD_TIMEOUT", defaults.upload_timeout_seconds)
            ),
            reject_ambiguous_matches=_env_flag(
                "CERT_EXCHANGE_REJECT_AMBIGUOUS", defaults.reject_ambiguous_matches
            ),
        )
