"""Vehicle and ride records."""

from __future__ import annotations

from pydantic import Field, field_validator

from hqtrack._constants import DEFAULT_VEHICLE_TYPE
from hqtrack.models._base import TrackerBaseModel, UtcDatetime


class Vehicle(TrackerBaseModel):
    """A tracked vehicle, keyed externally by the device IMEI.

    Parameters
    ----------
    id : str
        Opaque storage identifier.
    imei : str
        Device identifier reported by the tracker (unique).
    name : str
        Display name.
    type : str
        Free-form vehicle category.
    """

    id: str
    imei: str
    name: str
    type: str = DEFAULT_VEHICLE_TYPE

    @field_validator("imei")
    @classmethod
    def _normalize_imei(cls, value: str) -> str:
        imei = value.strip()
        if not imei:
            raise ValueError("imei must be non-empty")
        return imei


class Ride(TrackerBaseModel):
    """A contiguous session of fixes from one vehicle."""

    id: str
    vehicle_id: str
    started_at: UtcDatetime
    ended_at: UtcDatetime | None = None

    @property
    def is_open(self) -> bool:
        return self.ended_at is None


class ActiveRide(TrackerBaseModel):
    """Last assigned fix of a vehicle: its timestamp and ride."""

    vehicle_id: str
    ride_id: str
    last_ts: UtcDatetime = Field(..., description="Timestamp of the most recently assigned fix")
    started_at: UtcDatetime | None = Field(None, description="Start of the ride, when the backend knows it")
