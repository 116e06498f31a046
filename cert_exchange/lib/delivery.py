"""Delivery of certificate files to devices or to a local staging folder."""

import asyncio
import posixpath
import tempfile
import zipfile
from pathlib import Path
from typing import assert_never

import aiofiles
import aiofiles.os

from .bridges import AndroidBridge, BridgeHandle, IOSBridge
from .config import ExchangeConfig
from .device_resolver import DeviceIdentityResolver, relative_path_in_app_container
from .errors import (
    CertificateExchangeError,
    DeliveryFailed,
    PlatformDisabled,
    UnsupportedPlatform,
)
from .logging_config import LOGGER
from .models import ExchangeMedium, TargetOS


async def stage_file(staging_dir: Path, filename: str, contents: bytes) -> Path:
    """Write ``contents`` into the per-exchange staging folder.

    Raises:
        DeliveryFailed: If the folder or file cannot be written
    """
    try:
        await aiofiles.os.makedirs(staging_dir, exist_ok=True)
        path = staging_dir / filename
        async with aiofiles.open(path, "wb") as f:
            await f.write(contents)
    except OSError as e:
        raise DeliveryFailed(f"Failed to write {filename} to temporary folder. Error: {e}") from e
    return path


def _zip_directory(source_dir: Path, zip_path: Path) -> Path:
    with zipfile.ZipFile(
        zip_path, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9
    ) as archive:
        for path in sorted(source_dir.rglob("*")):
            if path.is_file():
                archive.write(path, path.relative_to(source_dir).as_posix())
    return zip_path


async def package_staged_artifacts(staging_dir: Path, zip_path: Path) -> Path:
    """Compress every staged file into ``zip_path`` (paths relative to the folder)."""
    return await asyncio.to_thread(_zip_directory, staging_dir, zip_path)


class CertificateDelivery:
    """Places a certificate file where the requesting app can read it.

    The strategy depends on the exchange medium and the target OS: staging for
    upload, an Android bridge push, or a direct write that falls back to an
    idb push when the container is not on the local filesystem.
    """

    def __init__(
        self,
        android: BridgeHandle[AndroidBridge],
        ios: IOSBridge | None,
        resolver: DeviceIdentityResolver,
        config: ExchangeConfig,
    ) -> None:
        self.android = android
        self.ios = ios
        self.resolver = resolver
        self.config = config

    async def deliver(
        self,
        target_os: TargetOS | None,
        medium: ExchangeMedium,
        destination: str,
        filename: str,
        contents: bytes,
        app_name: str,
        csr: str,
        staging_dir: Path,
    ) -> None:
        """Deliver one file for one exchange.

        Args:
            target_os: Target operating system, unused for WWW
            medium: Exchange medium
            destination: App container directory on the device
            filename: Device-side file name
            contents: File contents
            app_name: Validated app identifier from the CSR
            csr: Sanitized CSR, used to identify the device
            staging_dir: Per-exchange staging folder for uploads
        """
        if medium is ExchangeMedium.WWW:
            await stage_file(staging_dir, filename, contents)
            return

        if target_os is None:
            raise UnsupportedPlatform(f"No device OS given for a {medium.value} exchange")
        if target_os is TargetOS.ANDROID:
            await self._push_to_android(destination, filename, contents, app_name, csr)
        elif (
            target_os is TargetOS.IOS
            or target_os is TargetOS.WINDOWS
            or target_os is TargetOS.MACOS
        ):
            await self._write_to_container(
                target_os, destination, filename, contents, app_name, csr
            )
        else:
            assert_never(target_os)

    async def _push_to_android(
        self, destination: str, filename: str, contents: bytes, app_name: str, csr: str
    ) -> None:
        device_id = await self.resolver.resolve_android(app_name, destination, csr)
        bridge = await self.android.get()
        try:
            await bridge.push(device_id, app_name, posixpath.join(destination, filename), contents)
        except CertificateExchangeError:
            raise
        except Exception as e:
            raise DeliveryFailed(
                f"Failed to push {filename} to Android device {device_id} for {app_name}: {e}"
            ) from e

    async def _write_to_container(
        self,
        target_os: TargetOS,
        destination: str,
        filename: str,
        contents: bytes,
        app_name: str,
        csr: str,
    ) -> None:
        try:
            async with aiofiles.open(Path(destination) / filename, "wb") as f:
                await f.write(contents)
            return
        except OSError as e:
            # Not filesystem addressable, so most likely a physical device.
            LOGGER.info(
                "Direct write of %s for %s %s failed, pushing to device: %s",
                filename,
                target_os.value,
                app_name,
                e,
            )

        relative_path = relative_path_in_app_container(destination)
        udid = await self.resolver.resolve_ios(app_name, destination, csr)
        await self._push_file_to_ios_device(udid, app_name, relative_path, filename, contents)

    async def _push_file_to_ios_device(
        self, udid: str, bundle_id: str, destination: str, filename: str, contents: bytes
    ) -> None:
        if self.ios is None or not self.config.enable_ios:
            raise PlatformDisabled("iOS is not enabled in settings")
        with tempfile.TemporaryDirectory() as staging:
            file_path = Path(staging) / filename
            async with aiofiles.open(file_path, "wb") as f:
                await f.write(contents)
            try:
                await self.ios.push(udid, file_path, bundle_id, destination, self.config.idb_path)
            except CertificateExchangeError:
                raise
            except Exception as e:
                raise DeliveryFailed(
                    f"Failed to push {filename} to iOS device {udid} for {bundle_id}: {e}"
                ) from e
