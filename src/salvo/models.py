"""Player and match records held by the repository."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum, auto


class MatchState(Enum):
    """Match lifecycle; FINISHED is terminal."""

    WAITING_FOR_PLAYERS = auto()
    IN_PROGRESS = auto()
    FINISHED = auto()


@dataclass
class Player:
    id: int
    board_id: int | None = None
    # Guards the one-time board assignment
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


@dataclass
class Match:
    """A pairing of two players with turn and lifecycle state.

    ``turn`` is only set while the match is IN_PROGRESS. Callers mutate a
    match only while holding ``lock``.
    """

    id: int
    player1_id: int | None = None
    player2_id: int | None = None
    turn: int | None = None
    state: MatchState = MatchState.WAITING_FOR_PLAYERS
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    @property
    def players(self) -> tuple[int, ...]:
        return tuple(pid for pid in (self.player1_id, self.player2_id) if pid is not None)

    def opponent_of(self, player_id: int) -> int | None:
        """Return the other participant, or None if *player_id* has no opponent here."""
        if self.player1_id == player_id and self.player2_id is not None:
            return self.player2_id
        if self.player2_id == player_id and self.player1_id is not None:
            return self.player1_id
        return None

    def __str__(self) -> str:
        return (
            f"Match(id={self.id}, player1={self.player1_id}, player2={self.player2_id}, "
            f"turn={self.turn}, state={self.state.name})"
        )
