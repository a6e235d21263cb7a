"""Notification seam between the match engine and whatever transport delivers it.

The engine only ever calls ``notify(player_id, message)``. The TCP server
binds this to live connections; tests substitute a recorder.
"""

from __future__ import annotations

from typing import Protocol


class Notifier(Protocol):
    def notify(self, player_id: int, message: str) -> None:
        """Push *message* to *player_id*. Must not block and must not raise."""
        ...


class NullNotifier:
    """Notifier that discards everything (engine used without a transport)."""

    def notify(self, player_id: int, message: str) -> None:
        pass
