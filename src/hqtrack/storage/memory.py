"""In-process storage backend.

Used by tests and single-process deployments. Fix history is capped per
vehicle so a long-running process does not grow without bound.
"""

from __future__ import annotations

import uuid
from collections import deque
from datetime import datetime

from hqtrack.exceptions import DuplicateVehicleError, StorageError
from hqtrack.models.fix import Fix
from hqtrack.models.vehicle import ActiveRide, Ride, Vehicle


def new_id() -> str:
    return uuid.uuid4().hex


class InMemoryStorage:
    """Dict-backed implementation of :class:`~hqtrack.storage.base.Storage`.

    None of the methods suspend between reading and writing, so each call is
    atomic on the event loop; concurrent ``create_vehicle`` calls for one
    IMEI therefore yield one record and :class:`DuplicateVehicleError`.
    """

    def __init__(self, *, max_fixes_per_vehicle: int = 10_000) -> None:
        if max_fixes_per_vehicle <= 0:
            raise ValueError("max_fixes_per_vehicle must be positive")
        self._max_fixes = max_fixes_per_vehicle
        self._vehicles: dict[str, Vehicle] = {}
        self._by_imei: dict[str, str] = {}
        self._rides: dict[str, Ride] = {}
        self._fixes: dict[str, deque[Fix]] = {}
        self._fix_count = 0

    # ------------------------------------------------------------------
    # Storage protocol
    # ------------------------------------------------------------------

    async def get_vehicle_by_imei(self, imei: str) -> Vehicle | None:
        vehicle_id = self._by_imei.get(imei)
        return self._vehicles.get(vehicle_id) if vehicle_id is not None else None

    async def create_vehicle(self, imei: str, *, name: str, type: str) -> Vehicle:
        if imei in self._by_imei:
            raise DuplicateVehicleError(imei)
        vehicle = Vehicle(id=new_id(), imei=imei, name=name, type=type)
        self._vehicles[vehicle.id] = vehicle
        self._by_imei[vehicle.imei] = vehicle.id
        return vehicle

    async def get_active_ride(self, vehicle_id: str) -> ActiveRide | None:
        fixes = self._fixes.get(vehicle_id)
        if not fixes:
            return None
        last = fixes[-1]
        ride = self._rides.get(last.ride_id)
        return ActiveRide(
            vehicle_id=vehicle_id,
            ride_id=last.ride_id,
            last_ts=last.ts,
            started_at=ride.started_at if ride is not None else None,
        )

    async def create_ride(self, ride: Ride) -> Ride:
        if ride.vehicle_id not in self._vehicles:
            raise StorageError(f"Unknown vehicle {ride.vehicle_id!r}", retryable=False)
        self._rides[ride.id] = ride
        return ride

    async def extend_ride(self, ride_id: str, started_at: datetime) -> None:
        ride = self._rides.get(ride_id)
        if ride is None:
            raise StorageError(f"Unknown ride {ride_id!r}", retryable=False)
        if started_at < ride.started_at:
            self._rides[ride_id] = ride.model_copy(update={"started_at": started_at})

    async def close_ride(self, ride_id: str, ended_at: datetime) -> None:
        ride = self._rides.get(ride_id)
        if ride is None:
            raise StorageError(f"Unknown ride {ride_id!r}", retryable=False)
        if ride.ended_at is None:
            self._rides[ride_id] = ride.model_copy(update={"ended_at": ended_at})

    async def append_fix(self, fix: Fix) -> None:
        if fix.ride_id not in self._rides:
            raise StorageError(f"Unknown ride {fix.ride_id!r}", retryable=False)
        fixes = self._fixes.setdefault(fix.vehicle_id, deque(maxlen=self._max_fixes))
        if len(fixes) < self._max_fixes:
            self._fix_count += 1
        fixes.append(fix)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    async def get_vehicle(self, vehicle_id: str) -> Vehicle | None:
        return self._vehicles.get(vehicle_id)

    async def get_ride(self, ride_id: str) -> Ride | None:
        return self._rides.get(ride_id)

    async def latest_fix(self, vehicle_id: str | None = None) -> Fix | None:
        """Most recently received fix of one vehicle, or of any vehicle by timestamp."""
        if vehicle_id is not None:
            fixes = self._fixes.get(vehicle_id)
            return fixes[-1] if fixes else None
        tails = [fixes[-1] for fixes in self._fixes.values() if fixes]
        return max(tails, key=lambda fix: fix.ts, default=None)

    async def list_fixes(
        self,
        vehicle_id: str | None = None,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int = 500,
    ) -> list[Fix]:
        """Fixes ordered by timestamp, optionally restricted to ``[since, until]``."""
        if vehicle_id is not None:
            pool = list(self._fixes.get(vehicle_id, ()))
        else:
            pool = [fix for fixes in self._fixes.values() for fix in fixes]
        selected = [
            fix
            for fix in pool
            if (since is None or fix.ts >= since) and (until is None or fix.ts <= until)
        ]
        selected.sort(key=lambda fix: fix.ts)
        return selected[:limit]

    async def list_rides(self, vehicle_id: str) -> list[Ride]:
        rides = [ride for ride in self._rides.values() if ride.vehicle_id == vehicle_id]
        return sorted(rides, key=lambda ride: ride.started_at)

    async def count_vehicles(self) -> int:
        return len(self._vehicles)

    async def count_fixes(self) -> int:
        return self._fix_count
