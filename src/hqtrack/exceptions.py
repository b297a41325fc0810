"""Custom exception hierarchy for hqtrack."""

from __future__ import annotations


class TrackerError(Exception):
    """Base exception for all hqtrack errors."""


class TrackerConfigError(TrackerError):
    """Invalid or missing configuration."""


class DecodeError(TrackerError):
    """A frame could not be turned into a position.

    Decoders raise this internally; :class:`hqtrack.protocol.decoder.DecoderRegistry`
    converts it into a :class:`DecodeFailure` so callers never see it.
    """

    def __init__(self, reason: str, *, frame: str = "", device_id: str | None = None) -> None:
        self.reason = reason
        self.frame = frame
        self.device_id = device_id
        super().__init__(reason)


class TrackerTransportError(TrackerError):
    """Sink delivery failure (network, timeout, non-2xx)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class StorageError(TrackerError):
    """Storage collaborator failed to resolve or persist a record.

    ``retryable`` tells the caller whether repeating the operation may
    succeed (e.g. the database was briefly unreachable).
    """

    def __init__(self, message: str, *, retryable: bool = True) -> None:
        self.retryable = retryable
        super().__init__(message)


class DuplicateVehicleError(StorageError):
    """A vehicle with the same IMEI already exists (unique key conflict).

    Raised by storage backends when two writers race to create the same
    vehicle. :class:`hqtrack.resolver.DeviceResolver` handles it by reading
    back the winning record.
    """

    def __init__(self, imei: str) -> None:
        self.imei = imei
        super().__init__(f"Vehicle with imei={imei!r} already exists", retryable=True)
