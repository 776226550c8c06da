"""Location provider interface and an in-process push implementation."""

import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import UTC, datetime
from typing import Protocol
from uuid import uuid4

from src.models.position import Position

logger = logging.getLogger(__name__)

PermissionState = Mapping[str, object]
WatchCallback = Callable[[Position | None, object | None], Awaitable[None]]

GRANTED = "granted"


class ProviderError(Exception):
    """Raw error as delivered by a location provider (``code`` is optional)."""

    def __init__(self, message: str = "", code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class LocationProvider(Protocol):
    async def check_permissions(self) -> PermissionState: ...

    async def request_permissions(self) -> PermissionState: ...

    async def watch_position(self, options: dict, callback: WatchCallback) -> str: ...

    async def clear_watch(self, handle: str) -> None: ...


def has_granted_permission(permission: PermissionState | None) -> bool:
    """True when any string entry of the permission map is ``"granted"``."""
    if not permission:
        return False
    return any(isinstance(v, str) and v == GRANTED for v in permission.values())


class PushLocationProvider:
    """Provider fed by the host: fixes and errors are pushed in, then fanned
    out to every active watch.

    Args:
        permission: Initial permission state (``"granted"``, ``"denied"``,
            ``"prompt"``...).
        grant_on_request: Whether ``request_permissions`` flips a
            ``"prompt"`` state to ``"granted"``.
    """

    def __init__(self, permission: str = GRANTED, grant_on_request: bool = True) -> None:
        self.permission = permission
        self.grant_on_request = grant_on_request
        self._watches: dict[str, WatchCallback] = {}
        self.options: dict[str, dict] = {}

    async def check_permissions(self) -> PermissionState:
        return {"location": self.permission}

    async def request_permissions(self) -> PermissionState:
        if self.grant_on_request and self.permission == "prompt":
            self.permission = GRANTED
        return {"location": self.permission}

    async def watch_position(self, options: dict, callback: WatchCallback) -> str:
        handle = uuid4().hex
        self._watches[handle] = callback
        self.options[handle] = dict(options)
        logger.debug("Watch %s registered", handle)
        return handle

    async def clear_watch(self, handle: str) -> None:
        if handle not in self._watches:
            raise KeyError(f"Unknown watch handle: {handle}")
        del self._watches[handle]
        self.options.pop(handle, None)
        logger.debug("Watch %s cleared", handle)

    @property
    def active_watches(self) -> int:
        return len(self._watches)

    async def push_position(
        self,
        latitude: float,
        longitude: float,
        accuracy: float | None = None,
        timestamp: datetime | None = None,
    ) -> int:
        """Deliver a fix to every watch. Returns the number of watches reached."""
        position = Position(
            latitude=latitude,
            longitude=longitude,
            accuracy=accuracy,
            timestamp=timestamp or datetime.now(tz=UTC),
        )
        return await self._dispatch(position, None)

    async def push_error(self, message: str, code: int | None = None) -> int:
        """Deliver a raw provider error to every watch."""
        return await self._dispatch(None, ProviderError(message, code))

    async def _dispatch(self, position: Position | None, error: object | None) -> int:
        # Copy: a fatal error may clear the watch while we iterate
        callbacks = list(self._watches.values())
        for callback in callbacks:
            await callback(position, error)
        return len(callbacks)
