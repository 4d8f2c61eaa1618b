"""Single-flight rendezvous: concurrent identical requests share one execution."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class Flight:
    """One in-progress execution that followers can wait on."""

    def __init__(self, key: str, leader_id: str):
        self.key = key
        self.leader_id = leader_id
        self.followers = 0
        self._ready = asyncio.Event()
        self._response: Any = None
        self._error: Optional[BaseException] = None

    def resolve(self, response: Any = None, error: Optional[BaseException] = None) -> None:
        if self._ready.is_set():
            return
        self._response = response
        self._error = error
        self._ready.set()

    async def wait(self) -> Any:
        await self._ready.wait()
        if self._error is not None:
            raise self._error
        return self._response


class SingleFlight:
    def __init__(self) -> None:
        self._flights: Dict[str, Flight] = {}
        self._lock = asyncio.Lock()

    async def claim(self, key: str, owner: str) -> Tuple[Flight, bool]:
        """Return the flight for ``key`` and whether ``owner`` leads it."""
        async with self._lock:
            flight = self._flights.get(key)
            if flight is not None:
                flight.followers += 1
                logger.debug(
                    f"[FLIGHT] Joined | key={key[:12]} | leader={flight.leader_id}"
                )
                return flight, False
            flight = Flight(key, owner)
            self._flights[key] = flight
            return flight, True

    async def release(self, flight: Flight) -> None:
        async with self._lock:
            if self._flights.get(flight.key) is flight:
                del self._flights[flight.key]

    def get(self, key: str) -> Optional[Flight]:
        return self._flights.get(key)

    def __len__(self) -> int:
        return len(self._flights)
