"""Storage collaborator contract.

The ingestion core never talks to a database directly; it depends on this
protocol. Implementations raise :class:`~hqtrack.exceptions.StorageError`
for failures and :class:`~hqtrack.exceptions.DuplicateVehicleError` when a
vehicle with the same IMEI already exists.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from hqtrack.models.fix import Fix
from hqtrack.models.vehicle import ActiveRide, Ride, Vehicle


class Storage(Protocol):
    """Structural storage interface used by the resolver, segmenter and pipeline."""

    async def get_vehicle_by_imei(self, imei: str) -> Vehicle | None:
        ...

    async def create_vehicle(self, imei: str, *, name: str, type: str) -> Vehicle:
        ...

    async def get_active_ride(self, vehicle_id: str) -> ActiveRide | None:
        """Ride and timestamp of the vehicle's most recent fix, if any."""
        ...

    async def create_ride(self, ride: Ride) -> Ride:
        ...

    async def extend_ride(self, ride_id: str, started_at: datetime) -> None:
        """Move the ride start back to *started_at* if it is earlier."""
        ...

    async def close_ride(self, ride_id: str, ended_at: datetime) -> None:
        ...

    async def append_fix(self, fix: Fix) -> None:
        ...
