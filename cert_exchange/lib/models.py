"""Types shared across the certificate exchange."""

from dataclasses import dataclass
from enum import Enum
from typing import Literal, NotRequired, TypedDict

from .errors import UnsupportedMedium, UnsupportedPlatform


class TargetOS(str, Enum):
    """Operating systems that can request a client certificate."""

    ANDROID = "Android"
    IOS = "iOS"
    WINDOWS = "windows"
    MACOS = "MacOS"

    @classmethod
    def parse(cls, value: "str | TargetOS") -> "TargetOS":
        """Parse the OS string sent by a client."""
        try:
            return cls(value)
        except ValueError as e:
            raise UnsupportedPlatform(
                f"Unsupported device OS for Certificate Exchange: {value}"
            ) from e


class ExchangeMedium(str, Enum):
    """Channel used to hand certificates to the device."""

    FS_ACCESS = "FS_ACCESS"
    WWW = "WWW"
    NONE = "NONE"

    @classmethod
    def parse(cls, value: "str | ExchangeMedium") -> "ExchangeMedium":
        """Parse the medium string sent by a client."""
        try:
            return cls(value)
        except ValueError as e:
            raise UnsupportedMedium(f"Unsupported certificate exchange medium: {value}") from e


@dataclass(frozen=True)
class DeviceTarget:
    """A connected device as reported by a bridge."""

    id: str
    platform: TargetOS


@dataclass
class DeviceMatch:
    """Outcome of checking one device for a matching CSR."""

    device_id: str
    is_match: bool
    found_csr: str | None = None
    error: Exception | None = None


@dataclass
class ExchangeResult:
    """Result of a completed certificate signing request."""

    device_id: str
    app_name: str


@dataclass
class SecureServerConfig:
    """TLS material for the socket that accepts client connections."""

    key: bytes
    cert: bytes
    ca: bytes
    request_cert: bool = True
    reject_unauthorized: bool = True


class CertificateMetadata(TypedDict):
    """Summary of an issued certificate for structured logging."""

    serialNumber: str
    clientName: str
    notBefore: str
    expiry: str
    issuedAt: str
    deviceId: NotRequired[str]


class Notification(TypedDict):
    """User-facing notification raised by the exchange."""

    type: Literal["error", "warning", "info"]
    title: str
    description: str
