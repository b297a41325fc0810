"""Device identifier to vehicle resolution (create on first sight)."""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict

from hqtrack._constants import DEFAULT_VEHICLE_KEY, DEFAULT_VEHICLE_TYPE, vehicle_name_for
from hqtrack.exceptions import DuplicateVehicleError, StorageError
from hqtrack.storage.base import Storage

_logger = logging.getLogger(__name__)


def vehicle_key(device_id: str | None) -> str:
    """Storage key for a device identifier; blank identifiers share a default vehicle."""
    key = (device_id or "").strip()
    return key or DEFAULT_VEHICLE_KEY


class DeviceResolver:
    """Resolve-or-create vehicles by device identifier.

    Concurrent calls for the same unseen identifier share one in-flight
    lookup, so a process creates at most one vehicle per identifier. A
    :class:`DuplicateVehicleError` from storage (another process won the
    race) is answered by reading the existing record back.
    """

    def __init__(
        self,
        storage: Storage,
        *,
        cache_size: int = 10_000,
        vehicle_type: str = DEFAULT_VEHICLE_TYPE,
    ) -> None:
        self._storage = storage
        self._cache_size = cache_size
        self._vehicle_type = vehicle_type
        self._cache: OrderedDict[str, str] = OrderedDict()
        self._inflight: dict[str, asyncio.Future[str]] = {}

    def _remember(self, key: str, vehicle_id: str) -> None:
        if self._cache_size <= 0:
            return
        self._cache[key] = vehicle_id
        self._cache.move_to_end(key)
        while len(self._cache) > self._cache_size:
            self._cache.popitem(last=False)

    async def resolve(self, device_id: str | None) -> str:
        """Return the vehicle id for *device_id*, creating the vehicle if needed.

        Raises
        ------
        StorageError
            When storage is unavailable; the caller may retry.
        """
        key = vehicle_key(device_id)
        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            return cached

        pending = self._inflight.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            vehicle_id = await self._lookup_or_create(key)
        except asyncio.CancelledError:
            # Waiters belong to other connections; the cancellation is not theirs.
            future.set_exception(StorageError(f"Lookup of {key!r} was cancelled", retryable=True))
            future.exception()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Mark retrieved so a future nobody else awaited does not log a warning.
            future.exception()
            raise
        else:
            self._remember(key, vehicle_id)
            future.set_result(vehicle_id)
            return vehicle_id
        finally:
            self._inflight.pop(key, None)

    async def _lookup_or_create(self, key: str) -> str:
        vehicle = await self._storage.get_vehicle_by_imei(key)
        if vehicle is not None:
            return vehicle.id
        try:
            vehicle = await self._storage.create_vehicle(
                key,
                name=vehicle_name_for(key),
                type=self._vehicle_type,
            )
        except DuplicateVehicleError:
            vehicle = await self._storage.get_vehicle_by_imei(key)
            if vehicle is None:
                raise StorageError(f"Vehicle {key!r} reported as duplicate but not found") from None
            return vehicle.id
        _logger.info("Registered new vehicle imei=%s id=%s", key, vehicle.id)
        return vehicle.id
