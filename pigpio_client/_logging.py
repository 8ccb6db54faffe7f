# =============================================================================
# pigpio Python Client -- Logging
# =============================================================================

import logging

logger = logging.getLogger("pigpio_client")

# Hex dumps of every frame on the wire, enabled at DEBUG.
wire_logger = logging.getLogger("pigpio_client.wire")
