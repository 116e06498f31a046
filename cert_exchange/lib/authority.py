"""Authority manager: keeps a valid CA and a CA-issued server certificate on disk."""

import asyncio
import time
from pathlib import Path

import aiofiles.os

from .cert_utils import parse_openssl_date
from .config import AuthorityConfig, ProvisioningPaths
from .errors import (
    AuthorityInvalid,
    CertificateExpiring,
    CertificateNotFound,
    ChainVerificationFailed,
    ToolkitError,
    ToolkitUnavailable,
)
from .logging_config import LOGGER
from .toolkit import CAToolkit


class AuthorityManager:
    """Owns the provisioning directory and every file in it.

    Regeneration is serialised by a lock so concurrent exchanges that observe
    an expiring CA do not rewrite the directory at the same time.
    """

    def __init__(
        self,
        paths: ProvisioningPaths,
        toolkit: CAToolkit,
        config: AuthorityConfig | None = None,
    ) -> None:
        """Initialize the authority manager.

        Args:
            paths: Provisioning directory layout
            toolkit: CA toolkit used for every key and certificate operation
            config: Subjects, key size and validity windows
        """
        self.paths = paths
        self.toolkit = toolkit
        self.config = config or AuthorityConfig()
        self._lock = asyncio.Lock()

    async def ensure_authority_exists(self) -> None:
        """Make sure a valid CA key and certificate exist, regenerating if needed."""
        async with self._lock:
            await self._ensure_authority_exists()

    async def ensure_server_certificate_exists(self) -> None:
        """Make sure a valid server certificate issued by the current CA exists.

        An expiry check alone cannot detect a CA that was rotated underneath the
        server certificate, so the chain is verified as well.
        """
        async with self._lock:
            paths = self.paths
            exists = await asyncio.gather(
                aiofiles.os.path.exists(paths.server_key),
                aiofiles.os.path.exists(paths.server_cert),
                aiofiles.os.path.exists(paths.ca_cert),
            )
            if not all(exists):
                await self._generate_server_certificate()
                return

            try:
                await self.check_validity(paths.server_cert)
                await self._verify_server_cert_was_issued_by_ca()
            except AuthorityInvalid as e:
                LOGGER.warning("Not all certs are valid, generating new ones: %s", e)
                await self._generate_server_certificate()

    async def check_validity(self, certificate_path: Path) -> None:
        """Raise unless ``certificate_path`` exists and outlives the guard window.

        The toolkit's quick ``checkend`` style test can be stricter than the
        real expiry state, so a failing quick check falls back to parsing the
        end date, which is the authoritative decision.

        Raises:
            CertificateNotFound: If the file does not exist
            CertificateExpiring: If the certificate expires within the window
        """
        if not await aiofiles.os.path.exists(certificate_path):
            raise CertificateNotFound(f"{certificate_path} does not exist")

        window = self.config.expiry_window_seconds
        if await self.toolkit.check_expiring_within(window, certificate_path):
            return

        LOGGER.warning("Checking if certificate expire soon: %s", certificate_path)
        try:
            end_date_output = await self.toolkit.read_end_date(certificate_path)
            date_string = end_date_output.strip().split("=", 1)[1]
            expiry = parse_openssl_date(date_string).timestamp()
        except (ToolkitError, IndexError, ValueError) as e:
            LOGGER.error("Unable to parse certificate expiry date for %s: %s", certificate_path, e)
            raise CertificateExpiring(
                "Cannot parse certificate expiry date. Assuming it has expired."
            ) from e

        if expiry <= time.time() + window:
            raise CertificateExpiring(
                f"Certificate {certificate_path} has expired or will expire soon."
            )

    async def _ensure_authority_exists(self) -> None:
        if not await aiofiles.os.path.exists(self.paths.ca_key):
            await self._generate_certificate_authority()
            return
        try:
            await self.check_validity(self.paths.ca_cert)
        except AuthorityInvalid as e:
            LOGGER.warning("CA certificate is not valid, regenerating: %s", e)
            await self._generate_certificate_authority()

    async def _verify_server_cert_was_issued_by_ca(self) -> None:
        verified = await self.toolkit.verify_chain(self.paths.ca_cert, self.paths.server_cert)
        if not verified:
            raise ChainVerificationFailed("Current server cert was not issued by current CA")

    async def _generate_certificate_authority(self) -> None:
        paths = self.paths
        LOGGER.info("Generating new CA in %s", paths.directory)
        try:
            await aiofiles.os.makedirs(paths.directory, exist_ok=True)
            await self.toolkit.generate_rsa_key(self.config.key_size, paths.ca_key)
            await self.toolkit.generate_self_signed_cert(
                self.config.ca_subject,
                paths.ca_key,
                paths.ca_cert,
                self.config.ca_validity_days,
            )
        except (ToolkitError, ToolkitUnavailable, OSError) as e:
            raise AuthorityInvalid(f"Failed to generate certificate authority: {e}") from e

    async def _generate_server_certificate(self) -> None:
        await self._ensure_authority_exists()
        paths = self.paths
        LOGGER.warning("Creating new server cert in %s", paths.directory)
        try:
            await self.toolkit.generate_rsa_key(self.config.key_size, paths.server_key)
            await self.toolkit.generate_csr(
                self.config.server_subject, paths.server_key, paths.server_csr
            )
            await self.toolkit.sign_csr(
                paths.server_csr,
                paths.ca_cert,
                paths.ca_key,
                paths.server_serial,
                self.config.server_validity_days,
                out=paths.server_cert,
            )
        except (ToolkitError, ToolkitUnavailable, OSError) as e:
            raise AuthorityInvalid(f"Failed to generate server certificate: {e}") from e
