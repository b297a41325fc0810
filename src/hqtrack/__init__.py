"""hqtrack - Async ingestion service for HQ/NMEA GPS tracker telemetry."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("hqtrack")
except PackageNotFoundError:
    __version__ = "0+local"
from hqtrack.config import TrackerConfig
from hqtrack.exceptions import (
    DecodeError,
    DuplicateVehicleError,
    StorageError,
    TrackerConfigError,
    TrackerError,
    TrackerTransportError,
)
from hqtrack.forwarder import Forwarder, ForwardOutcome, HttpSinkTransport
from hqtrack.models import ActiveRide, Fix, FrameKind, Position, Ride, SinkRecord, Vehicle
from hqtrack.pipeline import IngestPipeline
from hqtrack.protocol import DecodeFailure, DecoderRegistry, FrameExtractor
from hqtrack.resolver import DeviceResolver
from hqtrack.segmenter import RideSegmenter
from hqtrack.service import TrackerService
from hqtrack.stats import ServiceStats
from hqtrack.storage import InMemoryStorage, Storage

__all__ = [
    "__version__",
    "ActiveRide",
    "DecodeError",
    "DecodeFailure",
    "DecoderRegistry",
    "DeviceResolver",
    "DuplicateVehicleError",
    "Fix",
    "ForwardOutcome",
    "Forwarder",
    "FrameExtractor",
    "FrameKind",
    "HttpSinkTransport",
    "IngestPipeline",
    "InMemoryStorage",
    "Position",
    "Ride",
    "RideSegmenter",
    "ServiceStats",
    "SinkRecord",
    "Storage",
    "StorageError",
    "TrackerConfig",
    "TrackerConfigError",
    "TrackerError",
    "TrackerService",
    "TrackerTransportError",
    "Vehicle",
]
