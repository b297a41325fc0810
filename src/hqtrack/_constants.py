"""Internal constants shared across the library."""

SOURCE_TAG = "tcp-service"

# Acknowledgment tokens written back to the tracker after each chunk.
ACK_DECODED = b"OK\r\n"
ACK_UNDECODED = b"ACK\r\n"

KNOTS_TO_KPH = 1.852

DEFAULT_RIDE_GAP_SECONDS = 10 * 60
DEFAULT_FORWARD_TIMEOUT = 5.0
DEFAULT_MAX_FRAME_LENGTH = 2048

DEFAULT_VEHICLE_KEY = "veh-default"
DEFAULT_VEHICLE_NAME = "Unlabeled Vehicle"
DEFAULT_VEHICLE_TYPE = "Motorbike"

# Number of characters of a raw chunk echoed into DEBUG logs.
LOG_PREVIEW_CHARS = 256


def vehicle_name_for(imei: str) -> str:
    """Default display name for a vehicle created on first contact."""
    if not imei or imei == DEFAULT_VEHICLE_KEY:
        return DEFAULT_VEHICLE_NAME
    return f"Device {imei}"
