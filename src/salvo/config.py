"""Central configuration for runtime-tunable parameters.

All constants can be overridden via environment variables so that the
server runs with sensible defaults in production, while the automated
test-suite can pick its own ports and timeouts.
"""

from __future__ import annotations

import os


# ===========================================================================
# Network Defaults
# ===========================================================================
# SALVO_HOST: Default host address for the server to bind to.
#   Defaults to "127.0.0.1".
#   Example: export SALVO_HOST=0.0.0.0
DEFAULT_HOST: str = os.getenv("SALVO_HOST", "127.0.0.1")

# SALVO_PORT: Default port for the server to listen on.
#   Defaults to 9090. Port 0 asks the OS for any free port.
#   Example: export SALVO_PORT=9191
DEFAULT_PORT: int = int(os.getenv("SALVO_PORT", "9090"))


# ===========================================================================
# Connection Timing Controls
# ===========================================================================
# SALVO_OUTBOX_SIZE: Number of pending outbound lines buffered per connection.
#   Replies wait for room; notifications beyond this are dropped.
#   Example: export SALVO_OUTBOX_SIZE=64
OUTBOX_SIZE: int = int(os.getenv("SALVO_OUTBOX_SIZE", "256"))

# SALVO_SHUTDOWN_TIMEOUT: Seconds stop() waits for each server thread to exit.
#   Example: export SALVO_SHUTDOWN_TIMEOUT=3
SHUTDOWN_TIMEOUT: float = float(os.getenv("SALVO_SHUTDOWN_TIMEOUT", "1"))


# ===========================================================================
# Game Constants
# ===========================================================================
# SALVO_BOARD_SIZE: Width and height of every board created on match join.
#   Defaults to 10 (for a 10x10 grid).
#   Example: export SALVO_BOARD_SIZE=8
BOARD_SIZE: int = int(os.getenv("SALVO_BOARD_SIZE", "10"))

# SALVO_TURN_RULE: Which shot outcomes hand the turn to the opponent.
#   always_pass  – water, hit and sink all pass the turn (default)
#   keep_on_sink – sinking a ship grants another shot
#   keep_on_hit  – any hit (or sink) grants another shot
#   Example: export SALVO_TURN_RULE=keep_on_hit
TURN_RULE: str = os.getenv("SALVO_TURN_RULE", "always_pass")


# ===========================================================================
# Debugging and Logging
# ===========================================================================
# SALVO_DEBUG: If "1", enables detailed debug logging across modules.
#   Defaults to "0" (disabled).
#   Example: export SALVO_DEBUG=1
DEBUG: bool = os.getenv("SALVO_DEBUG", "0") == "1"
