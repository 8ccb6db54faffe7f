# =============================================================================
# pigpio Python Client -- Protocol Constants
# =============================================================================
#
# Values match the pigpiod socket interface.
# =============================================================================

# -- Endpoint -----------------------------------------------------------------

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 8888

# -- Timing -------------------------------------------------------------------

DEFAULT_TIMEOUT = 0.0  # minutes, 0 = no connect retry, no keep-alive
RETRY_BACKOFF = 5.0  # seconds between connect attempts
CONNECTION_TIMEOUT = 10.0  # seconds for a single TCP open

# -- Framing ------------------------------------------------------------------

HEADER_SIZE = 16  # 4 x uint32: command, p1, p2, p3
NOTIFICATION_SIZE = 12  # uint16 seq, uint16 flags, uint32 tick, uint32 levels
READ_CHUNK_SIZE = 65_536

# -- Notifications ------------------------------------------------------------

MAX_WATCHERS = 32

NTFY_FLAGS_EVENT = 1 << 7
NTFY_FLAGS_ALIVE = 1 << 6
NTFY_FLAGS_WDOG = 1 << 5
NTFY_FLAGS_GPIO = 0x1F

BSC_EVENT_ID = 31
BSC_EVENT_BIT = 1 << BSC_EVENT_ID

# -- Event names --------------------------------------------------------------

EVENT_CONNECTED = "connected"
EVENT_DISCONNECTED = "disconnected"
EVENT_ERROR = "error"
EVENT_BSC = "EVENT_BSC"

# -- Hardware generations -----------------------------------------------------
#
# (first revision, last revision, user GPIO mask). Revisions above the last
# range are all 40-pin boards.

HW_TYPE1_REVISIONS = (2, 3)
HW_TYPE2_REVISIONS = (4, 15)

HW_TYPE1_GPIO_MASK = 0x03E6CF93  # 26 pin header
HW_TYPE2_GPIO_MASK = 0xFBC6CF9C  # 26 pin plus 8 pin P5
HW_TYPE3_GPIO_MASK = 0x0FFFFFFC  # 40 pin header

# -- Misc ---------------------------------------------------------------------

UINT32_MASK = 0xFFFF_FFFF
