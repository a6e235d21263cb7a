"""In-memory registries of players, boards and matches.

Each registry hands out ids from its own monotonically increasing counter
starting at 1. The maps are guarded by a single short-lived lock so lookups
and inserts from many connection threads never interleave; the repository
carries no game rules of its own.
"""

from __future__ import annotations

import itertools
import threading

from .battleship import Board
from .config import BOARD_SIZE
from .models import Match, Player


class InMemoryRepo:
    """Thread-safe id -> entity store. State is lost when the process exits."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._player_ids = itertools.count(1)
        self._board_ids = itertools.count(1)
        self._match_ids = itertools.count(1)
        self._players: dict[int, Player] = {}
        self._boards: dict[int, Board] = {}
        self._matches: dict[int, Match] = {}

    # -------------------- players --------------------
    def create_player(self) -> Player:
        with self._lock:
            player = Player(next(self._player_ids))
            self._players[player.id] = player
        return player

    def get_player(self, player_id: int) -> Player | None:
        with self._lock:
            return self._players.get(player_id)

    # -------------------- boards --------------------
    def create_board(self, rows: int = BOARD_SIZE, cols: int = BOARD_SIZE) -> Board:
        with self._lock:
            board = Board(next(self._board_ids), rows, cols)
            self._boards[board.id] = board
        return board

    def get_board(self, board_id: int) -> Board | None:
        with self._lock:
            return self._boards.get(board_id)

    # -------------------- matches --------------------
    def create_match(self) -> Match:
        with self._lock:
            match = Match(next(self._match_ids))
            self._matches[match.id] = match
        return match

    def get_match(self, match_id: int) -> Match | None:
        with self._lock:
            return self._matches.get(match_id)

    def all_matches(self) -> list[Match]:
        """Snapshot of every match, ordered by id."""
        with self._lock:
            return [self._matches[k] for k in sorted(self._matches)]
