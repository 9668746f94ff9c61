"""Online/offline state with transition callbacks."""
from __future__ import annotations

import asyncio
from typing import Callable, List, Optional

from core.log import get_logger


logger = get_logger("connectivity")

ConnectivityCallback = Callable[[bool], None]


class ConnectivityMonitor:
    """Holds the current online flag and notifies subscribers on transitions.

    Applications feed it from whatever network signal they have; tests drive
    it directly through :meth:`set_online`.
    """

    def __init__(self, online: bool = False) -> None:
        self._online = online
        self._callbacks: List[ConnectivityCallback] = []

    def is_online(self) -> bool:
        return self._online

    def on_change(self, callback: ConnectivityCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def set_online(self, online: bool) -> bool:
        online = bool(online)
        if online == self._online:
            return False
        self._online = online
        logger.info("Network status: %s", "ONLINE" if online else "OFFLINE")
        for callback in list(self._callbacks):
            try:
                callback(online)
            except Exception:
                logger.exception("Connectivity callback failed")
        return True


class ProbeConnectivityMonitor(ConnectivityMonitor):
    """Decides online state by opening a TCP connection to ``host:port``."""

    def __init__(
        self,
        host: str,
        port: int = 443,
        *,
        interval: float = 30.0,
        timeout: float = 5.0,
        online: bool = False,
    ) -> None:
        super().__init__(online)
        self.host = host
        self.port = port
        self._interval = interval
        self._timeout = timeout
        self._task: Optional[asyncio.Task] = None

    async def probe_once(self) -> bool:
        try:
            _reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), self._timeout
            )
        except (OSError, asyncio.TimeoutError):
            reachable = False
        else:
            reachable = True
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass
        self.set_online(reachable)
        return reachable

    async def _loop(self) -> None:
        while True:
            await self.probe_once()
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


__all__ = ["ConnectivityCallback", "ConnectivityMonitor", "ProbeConnectivityMonitor"]
