"""
Network Reachability Monitor.
Caches the result of a lightweight connectivity probe for a short window so that
every sync attempt does not hit the network just to learn whether it is online.
A failed probe counts as offline.
"""
import logging
from typing import Awaitable, Callable, Optional, Set

import httpx

from ..core.clock import Clock, system_clock
from ..core.config import settings

logger = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[bool]]


class HttpProbe:
    """HEAD a known 204 endpoint and report whether it answered."""

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None):
        self.url = url or settings.CONNECTIVITY_CHECK_URL
        self.timeout = timeout or settings.CONNECTIVITY_TIMEOUT

    async def __call__(self) -> bool:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.head(self.url, headers={"Cache-Control": "no-store"})
            return response.is_success


class ReachabilityMonitor:
    def __init__(
        self,
        probe: Optional[Probe] = None,
        ttl_seconds: Optional[float] = None,
        clock: Optional[Clock] = None,
    ):
        self._probe = probe or HttpProbe()
        self.ttl_seconds = settings.REACHABILITY_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._clock = clock or system_clock
        self._cached: Optional[bool] = None
        self._checked_at: Optional[float] = None
        self._listeners: Set[Callable[[bool], None]] = set()

    @property
    def last_known(self) -> Optional[bool]:
        return self._cached

    async def is_online(self) -> bool:
        now = self._clock.monotonic()
        if self._cached is not None and self._checked_at is not None:
            if now - self._checked_at < self.ttl_seconds:
                return self._cached

        try:
            online = bool(await self._probe())
        except Exception as exc:
            logger.debug("Reachability probe failed: %s", exc)
            online = False

        self._update(online, now)
        return online

    def invalidate(self) -> None:
        """Force the next is_online() call to probe again."""
        self._checked_at = None

    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        """Call ``callback`` whenever the observed state flips. Returns an unsubscribe function."""
        self._listeners.add(callback)

        def unsubscribe() -> None:
            self._listeners.discard(callback)

        return unsubscribe

    def _update(self, online: bool, checked_at: float) -> None:
        previous = self._cached
        self._cached = online
        self._checked_at = checked_at
        if previous is None or previous == online:
            return
        logger.info("Network state changed: %s", "online" if online else "offline")
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception as exc:
                logger.warning("Reachability listener failed: %s", exc)


reachability = ReachabilityMonitor()
