"""Error taxonomy for certificate provisioning and exchange."""


class CertificateExchangeError(Exception):
    """Base class for every failure raised by the exchange."""


class EmptyRequest(CertificateExchangeError):
    """The CSR was empty after sanitization."""


class ToolkitUnavailable(CertificateExchangeError):
    """The CA toolkit is not installed."""


class ToolkitError(CertificateExchangeError):
    """A CA toolkit invocation failed."""


class MalformedSubject(CertificateExchangeError):
    """No Common Name could be extracted from the CSR subject."""


class DisallowedAppName(CertificateExchangeError):
    """The CSR Common Name contains characters outside the allow-list."""


class NoDevicesFound(CertificateExchangeError):
    """No connected devices or targets were enumerated."""


class NoMatchingDevice(CertificateExchangeError):
    """No device holds a CSR matching the one presented."""


class AmbiguousMatch(CertificateExchangeError):
    """More than one device holds a matching CSR (strict mode only)."""


class ConflictInStaging(CertificateExchangeError):
    """More than one file appeared in an isolated pull directory."""


class NoCsrRetrieved(CertificateExchangeError):
    """Pulling the CSR from a device produced no file."""


class UnexpectedContainerPath(CertificateExchangeError):
    """A destination did not match ``.../Application/<id>/<rest>``."""


class UnsupportedPlatform(CertificateExchangeError):
    """The target OS has no delivery strategy."""


class UnsupportedMedium(UnsupportedPlatform):
    """The exchange medium is not recognised."""


class PlatformDisabled(CertificateExchangeError):
    """The platform is disabled in settings."""


class BridgeUnavailable(CertificateExchangeError):
    """The device bridge failed to initialise."""


class DeliveryFailed(CertificateExchangeError):
    """A file could not be written or pushed to its destination."""


class AuthorityInvalid(CertificateExchangeError):
    """The CA or server certificate could not be generated."""


class CertificateNotFound(AuthorityInvalid):
    """A certificate file is absent."""


class CertificateExpiring(AuthorityInvalid):
    """A certificate expires within the guard window."""


class ChainVerificationFailed(AuthorityInvalid):
    """The server certificate was not issued by the current CA."""


class UploadError(CertificateExchangeError):
    """Artifacts were delivered but recording them remotely failed."""

    def __init__(self, message: str, device_id: str = "") -> None:
        super().__init__(message)
        self.device_id = device_id


class UploadTimeout(UploadError):
    """The certificate upload exceeded its timeout."""


class UploadFailed(UploadError):
    """The certificate upload was rejected or errored."""
