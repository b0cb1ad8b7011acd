"""Internal constants shared across the library."""

EARTH_RADIUS_M = 6_371_000.0
MS_PER_MINUTE = 60_000

# ------------------------------------------------------------------
# Consensus decay
# ------------------------------------------------------------------

DEFAULT_DECAY_MINUTES = 15.0
DEFAULT_MAX_SIGNAL_AGE_MINUTES = 180.0
DEFAULT_CONFIDENCE_FLOOR = 0.25
DEFAULT_CONFIDENCE_GAIN = 6.0

# ------------------------------------------------------------------
# Submission gate
# ------------------------------------------------------------------

DEFAULT_MAX_DISTANCE_METERS = 150.0
DEFAULT_COOLDOWN_MINUTES = 20.0

COOLDOWN_KEY_PREFIX = "spark:cooldown:"
DEVICE_ID_KEY = "spark:device_id"

# ------------------------------------------------------------------
# Background loops (seconds)
# ------------------------------------------------------------------

DEFAULT_TICK_INTERVAL = 30.0
DEFAULT_POLL_INTERVAL = 20.0
DEFAULT_HEARTBEAT_INTERVAL = 30.0

# ------------------------------------------------------------------
# Remote tables
# ------------------------------------------------------------------

REPORTS_TABLE = "parking_signals"
LOTS_TABLE = "lots"
LOT_CURRENT_TABLE = "lot_current"
LOTS_SELECT = "id,name,lat,lng,lot_current(status,confidence)"

# ------------------------------------------------------------------
# Geocells
# ------------------------------------------------------------------

GEOCELL_GRID_DEGREES = 0.005


def cooldown_key(lot_id: str) -> str:
    """Key-value key holding the next allowed report time for *lot_id*."""
    return f"{COOLDOWN_KEY_PREFIX}{lot_id}"
