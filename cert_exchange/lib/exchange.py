"""Certificate exchange: signs app CSRs and deploys the resulting trust material.

The exchange takes a Certificate Signing Request generated by an app with
its own key pair, signs a client certificate for it with the local CA and
deploys that certificate, together with the CA certificate, back to the app.
An app trusts the desktop server if and only if it holds a certificate
signed by that CA.
"""

import asyncio
import os
import tempfile
import uuid
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import assert_never

import aiofiles
import aiofiles.os
from botocore.exceptions import BotoCoreError, ClientError

from .authority import AuthorityManager
from .bridges import AndroidBridge, BridgeHandle, IOSBridge
from .cert_utils import deserialize_certificate, extract_certificate_metadata
from .config import (
    DEVICE_CA_CERT_FILE,
    DEVICE_CLIENT_CERT_FILE,
    ExchangeConfig,
    ProvisioningPaths,
)
from .crypto_toolkit import CryptographyToolkit
from .csr_utils import parse_common_name, sanitize_csr, validate_app_name
from .delivery import CertificateDelivery, package_staged_artifacts
from .device_resolver import DeviceIdentityResolver
from .errors import (
    EmptyRequest,
    ToolkitUnavailable,
    UnsupportedPlatform,
    UploadFailed,
    UploadTimeout,
)
from .logging_config import LOGGER, report_platform_failures
from .models import (
    ExchangeMedium,
    ExchangeResult,
    Notification,
    SecureServerConfig,
    TargetOS,
)
from .s3_client import S3Client
from .toolkit import CAToolkit, OpenSSLToolkit

Notifier = Callable[[Notification], None]

STAGING_FOLDER_NAME = "FlipperCerts"
ARCHIVE_NAME = "certs.zip"


def _log_notification(notification: Notification) -> None:
    LOGGER.warning("%s: %s", notification["title"], notification["description"])


class CertificateExchange:
    """Entry point used by the server component that owns the listening socket."""

    def __init__(
        self,
        authority: AuthorityManager,
        config: ExchangeConfig | None = None,
        android: BridgeHandle[AndroidBridge] | None = None,
        ios: IOSBridge | None = None,
        uploader: S3Client | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        """Initialize the exchange.

        Args:
            authority: Manager of the CA and server certificate
            config: Bridge and upload settings
            android: Android bridge handle (disabled when omitted)
            ios: iOS bridge, None when iOS is unavailable
            uploader: S3 client for the WWW medium
            notifier: Receives user-facing notifications
        """
        self.authority = authority
        self.toolkit = authority.toolkit
        self.config = config or ExchangeConfig()
        self.android = android or BridgeHandle.disabled("Android")
        self.ios = ios
        self.uploader = uploader
        self.notify = notifier or _log_notification
        self.resolver = DeviceIdentityResolver(self.android, ios, self.config)
        self.delivery = CertificateDelivery(self.android, ios, self.resolver, self.config)
        self._certificate_setup: asyncio.Future[None] | None = None

    @classmethod
    def create(
        cls,
        config: ExchangeConfig,
        paths: ProvisioningPaths | None = None,
        toolkit: CAToolkit | None = None,
        android_factory: Callable[[], Awaitable[AndroidBridge]] | None = None,
        ios: IOSBridge | None = None,
        notifier: Notifier | None = None,
    ) -> "CertificateExchange":
        """Wire up an exchange from configuration.

        The openssl toolkit is used when it is installed, otherwise the
        in-process cryptography toolkit.
        """
        notify = notifier or _log_notification
        if toolkit is None:
            openssl = OpenSSLToolkit()
            toolkit = openssl if openssl.binary_path() else CryptographyToolkit()

        def on_adb_failure(error: Exception) -> None:
            notify(
                Notification(
                    type="error",
                    title="Failed to initialise ADB",
                    description=(
                        "Failed to initialize ADB. Please disable Android support in "
                        f"settings, or configure a correct path. ({error})"
                    ),
                )
            )

        android = BridgeHandle(
            "Android",
            android_factory if config.enable_android else None,
            on_failure=on_adb_failure,
        )
        uploader = (
            S3Client(region=config.region, timeout=config.upload_timeout_seconds)
            if config.upload_bucket
            else None
        )
        return cls(
            authority=AuthorityManager(paths or ProvisioningPaths(), toolkit),
            config=config,
            android=android,
            ios=ios if config.enable_ios else None,
            uploader=uploader,
            notifier=notify,
        )

    async def certificate_setup(self) -> None:
        """Ensure the server certificate once per exchange service and share the outcome."""
        if self._certificate_setup is None:
            self._certificate_setup = asyncio.ensure_future(
                report_platform_failures(
                    self.authority.ensure_server_certificate_exists(),
                    "ensureServerCertExists",
                )
            )
        await asyncio.shield(self._certificate_setup)

    async def process_signing_request(
        self,
        unsanitized_csr: str,
        target_os: str | TargetOS,
        app_directory: str,
        medium: str | ExchangeMedium,
    ) -> ExchangeResult:
        """Sign the app's CSR and deliver the CA and client certificates.

        Args:
            unsanitized_csr: CSR as received over the control channel
            target_os: Target operating system
            app_directory: App container directory the files go into
            medium: Exchange medium

        Returns:
            ExchangeResult with the resolved device id and app name

        Raises:
            EmptyRequest: If the CSR is empty
            UploadError: If delivery succeeded but the WWW upload failed
        """
        csr = sanitize_csr(unsanitized_csr)
        if csr == "":
            raise EmptyRequest(f"Received empty CSR from {target_os} device")
        exchange_medium = ExchangeMedium.parse(medium)
        # a network exchange never touches a device, so its OS string is not needed
        platform = None if exchange_medium is ExchangeMedium.WWW else TargetOS.parse(target_os)

        await self._ensure_toolkit_available()
        with tempfile.TemporaryDirectory() as root:
            staging_dir = Path(root) / STAGING_FOLDER_NAME
            archive_path = Path(root) / ARCHIVE_NAME

            await self.certificate_setup()
            app_name = await self.extract_app_name(csr)

            ca_cert = await self._read_ca_certificate()
            await self.delivery.deliver(
                platform,
                exchange_medium,
                app_directory,
                DEVICE_CA_CERT_FILE,
                ca_cert,
                app_name,
                csr,
                staging_dir,
            )
            client_cert = await self.generate_client_certificate(csr)
            await self.delivery.deliver(
                platform,
                exchange_medium,
                app_directory,
                DEVICE_CLIENT_CERT_FILE,
                client_cert,
                app_name,
                csr,
                staging_dir,
            )

            device_id = await self._target_device_id(
                platform, exchange_medium, app_name, app_directory, csr
            )
            LOGGER.info(
                "Issued client certificate: %s",
                extract_certificate_metadata(deserialize_certificate(client_cert), device_id),
            )

            if exchange_medium is ExchangeMedium.WWW:
                await report_platform_failures(
                    package_staged_artifacts(staging_dir, archive_path),
                    "www-certs-exchange-zipping-certs",
                )
                await report_platform_failures(
                    self._upload_files(archive_path, device_id),
                    "www-certs-exchange-uploading-certs",
                )

        return ExchangeResult(device_id=device_id, app_name=app_name)

    async def extract_app_name(self, csr: str) -> str:
        """Return the app identifier (subject CN) of ``csr``.

        Raises:
            MalformedSubject: If the subject has no CN
            DisallowedAppName: If the CN is not a safe identifier
        """
        path = await self._write_to_temp_file(csr)
        try:
            subject = await self.toolkit.dump_subject(path)
        finally:
            await aiofiles.os.remove(path)
        return validate_app_name(parse_common_name(subject))

    async def generate_client_certificate(self, csr: str) -> bytes:
        """Sign ``csr`` with the CA and return the PEM certificate."""
        LOGGER.debug("Creating new client cert")
        paths = self.authority.paths
        path = await self._write_to_temp_file(csr)
        try:
            return await self.toolkit.sign_csr(
                path,
                paths.ca_cert,
                paths.ca_key,
                paths.server_serial,
                self.authority.config.client_validity_days,
            )
        finally:
            await aiofiles.os.remove(path)

    async def load_secure_server_config(self) -> SecureServerConfig:
        """TLS material for the server socket; clients must present a CA-issued cert."""
        await self.certificate_setup()
        paths = self.authority.paths
        key, cert, ca = await asyncio.gather(
            self._read_bytes(paths.server_key),
            self._read_bytes(paths.server_cert),
            self._read_bytes(paths.ca_cert),
        )
        return SecureServerConfig(key=key, cert=cert, ca=ca)

    async def _target_device_id(
        self,
        target_os: TargetOS | None,
        medium: ExchangeMedium,
        app_name: str,
        app_directory: str,
        csr: str,
    ) -> str:
        if medium is ExchangeMedium.WWW or medium is ExchangeMedium.NONE:
            # nothing to enumerate for a network mediated exchange
            return str(uuid.uuid4())
        elif medium is ExchangeMedium.FS_ACCESS:
            if target_os is None:
                raise UnsupportedPlatform("No device OS given for a file system exchange")
            return await self.resolver.resolve(target_os, app_name, app_directory, csr)
        else:
            assert_never(medium)

    async def _ensure_toolkit_available(self) -> None:
        if await self.toolkit.is_installed():
            return
        error = ToolkitUnavailable(
            "It looks like you don't have OpenSSL installed. Please install it to continue."
        )
        LOGGER.error("%s", error)
        self.notify(
            Notification(type="error", title="OpenSSL not installed", description=str(error))
        )

    async def _read_ca_certificate(self) -> bytes:
        return await self._read_bytes(self.authority.paths.ca_cert)

    async def _upload_files(self, archive_path: Path, device_id: str) -> None:
        bucket = self.config.upload_bucket
        if self.uploader is None or not bucket:
            raise UploadFailed("No certificate upload bucket is configured", device_id)

        archive = await self._read_bytes(archive_path)
        try:
            version_id = await asyncio.wait_for(
                asyncio.to_thread(
                    self.uploader.upload_certificate_archive, bucket, device_id, archive
                ),
                timeout=self.config.upload_timeout_seconds,
            )
        except TimeoutError as e:
            raise UploadTimeout("Timed out uploading certificates to WWW.", device_id) from e
        except (ClientError, BotoCoreError) as e:
            raise UploadFailed(
                f"Failed to upload certificates for device {device_id}: {e}", device_id
            ) from e
        LOGGER.info("Uploaded certificates for device %s (version: %s)", device_id, version_id)

    @staticmethod
    async def _read_bytes(path: Path) -> bytes:
        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    @staticmethod
    async def _write_to_temp_file(content: str) -> Path:
        fd, name = tempfile.mkstemp(suffix=".csr")
        os.close(fd)
        async with aiofiles.open(name, "w") as f:
            await f.write(content)
        return Path(name)
