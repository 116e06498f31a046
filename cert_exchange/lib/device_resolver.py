"""Work out which connected device sent a certificate signing request."""

import asyncio
import posixpath
import re
import tempfile
from pathlib import Path
from typing import assert_never
from urllib.parse import quote

import aiofiles
import aiofiles.os

from .bridges import AndroidBridge, BridgeHandle, IOSBridge
from .config import CSR_FILE_NAME, ExchangeConfig
from .csr_utils import sanitize_csr
from .errors import (
    AmbiguousMatch,
    ConflictInStaging,
    NoCsrRetrieved,
    NoDevicesFound,
    NoMatchingDevice,
    PlatformDisabled,
    UnexpectedContainerPath,
)
from .logging_config import LOGGER
from .models import DeviceMatch, TargetOS

_APP_CONTAINER_PATH = re.compile(r"Application/[^/]+/(.*)")
_SIMULATOR_PATH = re.compile(r"/Devices/([^/]+)/")


def relative_path_in_app_container(absolute_path: str) -> str:
    """Return the part of ``absolute_path`` below ``.../Application/<id>/``.

    Raises:
        UnexpectedContainerPath: If the path is not inside an app container
    """
    match = _APP_CONTAINER_PATH.search(absolute_path)
    if match is None:
        raise UnexpectedContainerPath(f"Path didn't match expected pattern: {absolute_path}")
    return match.group(1)


def simulator_id_from_path(path: str) -> str | None:
    """Simulator UDID encoded in a ``.../Devices/<id>/...`` path, if any."""
    match = _SIMULATOR_PATH.search(path)
    return match.group(1) if match else None


class DeviceIdentityResolver:
    """Matches the CSR presented over the control channel against each device's own copy.

    Every device is checked concurrently; one device failing never hides a
    match on another.
    """

    def __init__(
        self,
        android: BridgeHandle[AndroidBridge],
        ios: IOSBridge | None,
        config: ExchangeConfig,
    ) -> None:
        self.android = android
        self.ios = ios
        self.config = config

    async def resolve(
        self, target_os: TargetOS, app_name: str, app_directory: str, csr: str
    ) -> str:
        """Return the id of the device that generated ``csr``."""
        if target_os is TargetOS.ANDROID:
            return await self.resolve_android(app_name, app_directory, csr)
        elif target_os is TargetOS.IOS:
            return await self.resolve_ios(app_name, app_directory, csr)
        elif target_os is TargetOS.MACOS:
            return ""
        elif target_os is TargetOS.WINDOWS:
            return "unknown"
        else:
            assert_never(target_os)

    async def resolve_android(self, app_name: str, device_csr_directory: str, csr: str) -> str:
        bridge = await self.android.get()
        devices = await bridge.list_devices()
        if not devices:
            raise NoDevicesFound("No Android devices found")

        matches = await asyncio.gather(
            *(
                self._check_android_device(bridge, device.id, app_name, device_csr_directory, csr)
                for device in devices
            )
        )
        if not any(m.is_match for m in matches) and not any(m.error for m in matches):
            found = [quote(m.found_csr) if m.found_csr else "null" for m in matches]
            LOGGER.warning(
                "Looking for CSR (url encoded): %s Found these: %s",
                quote(sanitize_csr(csr)),
                " ".join(found),
            )
        return self._choose_device(matches, app_name)

    async def resolve_ios(self, app_name: str, device_csr_directory: str, csr: str) -> str:
        simulator_id = simulator_id_from_path(device_csr_directory)
        if simulator_id is not None:
            return simulator_id

        bridge = self._ios_bridge()
        targets = await bridge.targets(self.config.idb_path, self.config.enable_physical_ios)
        if not targets:
            raise NoDevicesFound("No iOS devices found")

        matches = await asyncio.gather(
            *(
                self._check_ios_device(bridge, target.id, app_name, device_csr_directory, csr)
                for target in targets
            )
        )
        return self._choose_device(matches, app_name)

    def _ios_bridge(self) -> IOSBridge:
        if self.ios is None or not self.config.enable_ios:
            raise PlatformDisabled("iOS is not enabled in settings")
        return self.ios

    def _choose_device(self, matches: list[DeviceMatch], app_name: str) -> str:
        matching_ids = [m.device_id for m in matches if m.is_match]
        if not matching_ids:
            errored = next((m for m in matches if m.error is not None), None)
            if errored is not None and errored.error is not None:
                raise errored.error
            raise NoMatchingDevice(f"No matching device found for app: {app_name}")
        if len(matching_ids) > 1:
            if self.config.reject_ambiguous_matches:
                raise AmbiguousMatch(
                    f"More than one matching device found for app {app_name}: {matching_ids}"
                )
            LOGGER.warning(
                "[conn] More than one matching device found for app %s: %s", app_name, matching_ids
            )
        return matching_ids[0]

    async def _check_android_device(
        self,
        bridge: AndroidBridge,
        device_id: str,
        app_name: str,
        directory: str,
        csr: str,
    ) -> DeviceMatch:
        try:
            device_csr = await bridge.pull(
                device_id, app_name, posixpath.join(directory, CSR_FILE_NAME)
            )
        except Exception as e:
            LOGGER.warning("Unable to check for matching CSR in %s:%s: %s", device_id, app_name, e)
            return DeviceMatch(device_id=device_id, is_match=False, error=e)

        found = sanitize_csr(device_csr.decode(errors="replace"))
        return DeviceMatch(
            device_id=device_id, is_match=found == sanitize_csr(csr), found_csr=found
        )

    async def _check_ios_device(
        self,
        bridge: IOSBridge,
        udid: str,
        app_name: str,
        directory: str,
        csr: str,
    ) -> DeviceMatch:
        try:
            original_file = relative_path_in_app_container(
                posixpath.join(directory, CSR_FILE_NAME)
            )
            with tempfile.TemporaryDirectory() as staging:
                found = await self._pull_single_file(
                    bridge, udid, original_file, app_name, Path(staging)
                )
        except Exception as e:
            LOGGER.warning("Unable to check for matching CSR in %s:%s: %s", udid, app_name, e)
            return DeviceMatch(device_id=udid, is_match=False, error=e)

        return DeviceMatch(device_id=udid, is_match=found == sanitize_csr(csr), found_csr=found)

    async def _pull_single_file(
        self, bridge: IOSBridge, udid: str, remote_path: str, app_name: str, staging: Path
    ) -> str:
        await bridge.pull(udid, remote_path, app_name, staging, self.config.idb_path)
        items = await aiofiles.os.listdir(staging)
        if len(items) > 1:
            raise ConflictInStaging(f"Conflict in temp dir {staging}: {items}")
        if not items:
            raise NoCsrRetrieved(f"Failed to pull CSR from device {udid}")

        copied_file = staging / items[0]
        LOGGER.debug("Trying to read CSR from %s", copied_file)
        async with aiofiles.open(copied_file, "rb") as f:
            data = await f.read()
        return sanitize_csr(data.decode(errors="replace"))
