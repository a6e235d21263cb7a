"""Error taxonomy shared by the game model, the match engine and the server.

Every business-rule failure raised by :mod:`salvo` derives from
:class:`GameError`; the protocol server turns them into ``ERROR`` lines
without closing the connection.
"""

from __future__ import annotations


class GameError(Exception):
    """Base for recoverable game and protocol errors."""


class NotFoundError(GameError, LookupError):
    """Raised when a referenced player or match id does not exist."""


class InvalidArgumentError(GameError, ValueError):
    """Raised for malformed input: bad coordinates, illegal ship shapes, missing fields."""


class InvalidStateError(GameError):
    """Raised when an operation is not valid in the current lifecycle state."""
