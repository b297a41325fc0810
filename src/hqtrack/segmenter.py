"""Gap-based ride segmentation.

Keeps O(1) state per vehicle: the ride and timestamp of the most recently
assigned fix. Full history lives in storage, which also seeds this state
for vehicles the process has not seen yet (or has evicted).
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from hqtrack._constants import DEFAULT_RIDE_GAP_SECONDS
from hqtrack.exceptions import StorageError
from hqtrack.models._base import ensure_utc
from hqtrack.models.vehicle import Ride
from hqtrack.storage.base import Storage
from hqtrack.storage.memory import new_id

_logger = logging.getLogger(__name__)


def opens_new_ride(last_ts: datetime, ts: datetime, gap: timedelta) -> bool:
    """Decide whether a fix at *ts* starts a new ride after one at *last_ts*.

    Fixes arrive in connection order, not device-time order, so the gap is
    taken by magnitude: a fix slightly older than the last one stays in the
    ride (moving the ride start back when needed), one older by at least
    *gap* starts a new ride.
    """
    return abs(ts - last_ts) >= gap


@dataclass(frozen=True, slots=True)
class _LastFix:
    ride_id: str
    last_ts: datetime
    started_at: datetime


@dataclass(frozen=True, slots=True)
class RideAssignment:
    """Outcome of :meth:`RideSegmenter.segment`."""

    ride_id: str
    opened: bool = False
    closed_ride_id: str | None = None


class RideSegmenter:
    """Assign fixes to rides using an inactivity gap.

    Each decision and its state update run without a suspension point in
    between, so on one event loop there is a single writer per vehicle and
    two connections reporting the same vehicle cannot both open a ride for
    the same gap. Storage calls happen outside that step.
    """

    def __init__(
        self,
        storage: Storage,
        *,
        gap: timedelta = timedelta(seconds=DEFAULT_RIDE_GAP_SECONDS),
        max_vehicles: int = 10_000,
        id_factory: Callable[[], str] = new_id,
    ) -> None:
        if gap <= timedelta(0):
            raise ValueError("gap must be positive")
        self._storage = storage
        self._gap = gap
        self._max_vehicles = max_vehicles
        self._id_factory = id_factory
        self._state: OrderedDict[str, _LastFix] = OrderedDict()
        self._opening: dict[str, asyncio.Future[None]] = {}

    @property
    def gap(self) -> timedelta:
        return self._gap

    @property
    def tracked_vehicles(self) -> int:
        return len(self._state)

    def _store(self, vehicle_id: str, entry: _LastFix) -> None:
        self._state[vehicle_id] = entry
        self._state.move_to_end(vehicle_id)
        while len(self._state) > self._max_vehicles:
            self._state.popitem(last=False)

    def _rollback(self, vehicle_id: str, ride_id: str, previous: _LastFix | None) -> None:
        current = self._state.get(vehicle_id)
        if current is None or current.ride_id != ride_id:
            return
        if previous is None:
            self._state.pop(vehicle_id, None)
        else:
            self._store(vehicle_id, previous)

    async def _extend(self, vehicle_id: str, previous: _LastFix, ts: datetime) -> None:
        try:
            await self._storage.extend_ride(previous.ride_id, ts)
        except BaseException:
            current = self._state.get(vehicle_id)
            if current is not None and current.ride_id == previous.ride_id and current.started_at == ts:
                self._store(vehicle_id, replace(current, started_at=previous.started_at))
            raise

    def last_fix(self, vehicle_id: str) -> tuple[str, datetime] | None:
        """``(ride_id, last_ts)`` held for *vehicle_id*, if any."""
        entry = self._state.get(vehicle_id)
        return (entry.ride_id, entry.last_ts) if entry is not None else None

    async def assign(self, vehicle_id: str, ts: datetime) -> str:
        """Return the ride id for a fix of *vehicle_id* at *ts*."""
        assignment = await self.segment(vehicle_id, ts)
        return assignment.ride_id

    async def segment(self, vehicle_id: str, ts: datetime) -> RideAssignment:
        """Assign a fix and report whether a ride was opened or closed.

        Raises
        ------
        StorageError
            When the seed lookup, ride creation or ride extension fails.
            The in-memory decision is rolled back in that case.
        """
        ts = ensure_utc(ts)

        if vehicle_id not in self._state:
            seed = await self._storage.get_active_ride(vehicle_id)
            if seed is not None and vehicle_id not in self._state:
                started_at = min(seed.started_at or seed.last_ts, seed.last_ts)
                self._store(vehicle_id, _LastFix(seed.ride_id, seed.last_ts, started_at))

        previous = self._state.get(vehicle_id)
        if previous is not None and not opens_new_ride(previous.last_ts, ts, self._gap):
            self._store(vehicle_id, _LastFix(previous.ride_id, ts, min(previous.started_at, ts)))
            opening = self._opening.get(previous.ride_id)
            if opening is not None:
                await asyncio.shield(opening)
            if ts < previous.started_at:
                await self._extend(vehicle_id, previous, ts)
            return RideAssignment(previous.ride_id)

        ride = Ride(id=self._id_factory(), vehicle_id=vehicle_id, started_at=ts)
        self._store(vehicle_id, _LastFix(ride.id, ts, ts))
        opening = asyncio.get_running_loop().create_future()
        self._opening[ride.id] = opening
        try:
            await self._storage.create_ride(ride)
        except BaseException as exc:
            self._rollback(vehicle_id, ride.id, previous)
            # Fixes that joined this ride fail with it; a cancellation stays local to its task.
            failure = exc if isinstance(exc, Exception) else StorageError(f"Opening ride {ride.id} was cancelled")
            opening.set_exception(failure)
            opening.exception()
            raise
        else:
            opening.set_result(None)
        finally:
            self._opening.pop(ride.id, None)

        _logger.debug("Opened ride %s for vehicle %s at %s", ride.id, vehicle_id, ts.isoformat())
        if previous is None:
            return RideAssignment(ride.id, opened=True)

        try:
            await self._storage.close_ride(previous.ride_id, previous.last_ts)
        except StorageError as exc:
            # The new ride is already open; an unclosed predecessor is still valid data.
            _logger.warning("Could not close ride %s: %s", previous.ride_id, exc)
        return RideAssignment(ride.id, opened=True, closed_ride_id=previous.ride_id)
