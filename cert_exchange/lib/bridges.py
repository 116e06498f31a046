"""Device bridge interfaces and memoised bridge initialisation."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Generic, Protocol, TypeVar

from .errors import BridgeUnavailable, PlatformDisabled
from .logging_config import LOGGER
from .models import DeviceTarget


class AndroidBridge(Protocol):
    """Device bridge for Android: enumerate devices and move files in app containers."""

    async def list_devices(self) -> list[DeviceTarget]: ...

    async def push(
        self, device_id: str, app_id: str, destination: str, contents: bytes
    ) -> None: ...

    async def pull(self, device_id: str, app_id: str, source: str) -> bytes: ...


class IOSBridge(Protocol):
    """Bridge for physical iOS devices, driven through an idb binary."""

    async def targets(self, idb_path: str, include_physical: bool) -> list[DeviceTarget]: ...

    async def push(
        self, udid: str, local_path: Path, app_id: str, destination: str, idb_path: str
    ) -> None: ...

    async def pull(
        self, udid: str, remote_path: str, app_id: str, local_dir: Path, idb_path: str
    ) -> None: ...


B = TypeVar("B")


@dataclass
class BridgeReady(Generic[B]):
    client: B


@dataclass
class BridgeFailed:
    error: Exception


class BridgeHandle(Generic[B]):
    """Lazily initialised bridge client whose outcome is recorded once.

    Every caller either gets the ready client or a ``BridgeUnavailable`` that
    chains the original initialisation failure.
    """

    def __init__(
        self,
        name: str,
        factory: Callable[[], Awaitable[B]] | None,
        on_failure: Callable[[Exception], None] | None = None,
    ) -> None:
        """Initialize the handle.

        Args:
            name: Platform name used in error messages
            factory: Coroutine factory creating the client, None if the platform is disabled
            on_failure: Called once with the initialisation error
        """
        self.name = name
        self._factory = factory
        self._on_failure = on_failure
        self._result: BridgeReady[B] | BridgeFailed | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def ready(cls, name: str, client: B) -> "BridgeHandle[B]":
        """Handle wrapping an already initialised client."""
        handle: BridgeHandle[B] = cls(name, None)
        handle._result = BridgeReady(client)
        return handle

    @classmethod
    def disabled(cls, name: str) -> "BridgeHandle[B]":
        return cls(name, None)

    async def get(self) -> B:
        """Return the client, initialising it on first use.

        Raises:
            PlatformDisabled: If the platform is disabled in settings
            BridgeUnavailable: If initialisation failed
        """
        if self._result is None:
            if self._factory is None:
                raise PlatformDisabled(f"{self.name} is not enabled in settings")
            async with self._lock:
                if self._result is None:
                    self._result = await self._initialise(self._factory)

        if isinstance(self._result, BridgeFailed):
            raise BridgeUnavailable(
                f"{self.name} initialisation was not successful"
            ) from self._result.error
        return self._result.client

    async def _initialise(
        self, factory: Callable[[], Awaitable[B]]
    ) -> BridgeReady[B] | BridgeFailed:
        try:
            return BridgeReady(await factory())
        except Exception as e:
            LOGGER.error("Failed to initialise %s bridge: %s", self.name, e)
            if self._on_failure is not None:
                self._on_failure(e)
            return BridgeFailed(e)
