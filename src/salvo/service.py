"""Match engine: the turn-based state machine behind every protocol command.

The service never holds long-lived references to entities; each operation
looks ids up in the repository and serializes on the entity it mutates:

* match operations (join, shoot) hold ``match.lock``
* lazy board creation holds ``player.lock``
* board mutation holds the board's own lock

Locks are always taken in that order (match -> player -> board), so
operations on different matches run fully in parallel and operations on the
same match produce exactly one outcome per turn.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, Sequence

from . import config as _cfg
from .battleship import Board, Ship, ShotResult
from .coord_utils import format_coord
from .errors import InvalidArgumentError, InvalidStateError, NotFoundError
from .models import Match, MatchState, Player
from .notifier import Notifier, NullNotifier
from .repo import InMemoryRepo

logger = logging.getLogger(__name__)


class TurnRule(str, Enum):
    """Which shot outcomes hand the turn over to the opponent."""

    ALWAYS_PASS = "always_pass"
    KEEP_ON_SINK = "keep_on_sink"
    KEEP_ON_HIT = "keep_on_hit"

    def keeps_turn(self, result: ShotResult) -> bool:
        if self is TurnRule.KEEP_ON_HIT:
            return result in (ShotResult.HIT, ShotResult.SUNK)
        if self is TurnRule.KEEP_ON_SINK:
            return result is ShotResult.SUNK
        return False


class GameService:
    """Create/join/place/shoot operations over an :class:`InMemoryRepo`."""

    def __init__(
        self,
        repo: InMemoryRepo | None = None,
        notifier: Notifier | None = None,
        *,
        board_size: int = _cfg.BOARD_SIZE,
        turn_rule: TurnRule | str | None = None,
    ) -> None:
        self.repo = repo if repo is not None else InMemoryRepo()
        self.notifier: Notifier = notifier if notifier is not None else NullNotifier()
        self.board_size = board_size
        self.turn_rule = TurnRule(turn_rule or _cfg.TURN_RULE)

    # -------------------- players --------------------
    def create_player(self) -> Player:
        player = self.repo.create_player()
        logger.info("Player %d created", player.id)
        return player

    def get_player(self, player_id: int) -> Player:
        player = self.repo.get_player(player_id)
        if player is None:
            raise NotFoundError(f"Player not found: {player_id}")
        return player

    # -------------------- matches --------------------
    def create_match(self, creator_id: int) -> Match:
        self.get_player(creator_id)
        match = self.repo.create_match()
        with match.lock:
            match.player1_id = creator_id
            match.state = MatchState.WAITING_FOR_PLAYERS
        logger.info("Match %d created by player %d", match.id, creator_id)
        self.notifier.notify(creator_id, f"Match {match.id} created, waiting for an opponent")
        return match

    def get_match(self, match_id: int) -> Match:
        match = self.repo.get_match(match_id)
        if match is None:
            raise NotFoundError(f"Match not found: {match_id}")
        return match

    def list_matches(self) -> list[Match]:
        return self.repo.all_matches()

    def join_match(self, match_id: int, player_id: int) -> Match:
        """Seat *player_id* as the second player and start the match.

        The creator always takes the first turn.
        """
        match = self.get_match(match_id)
        joiner = self.get_player(player_id)
        with match.lock:
            if match.player2_id is not None:
                raise InvalidStateError(f"Match {match_id} already has two players")
            if match.player1_id == player_id:
                raise InvalidArgumentError(f"Player {player_id} is already in match {match_id}")
            creator = self.get_player(match.player1_id)

            self.ensure_board(joiner)
            self.ensure_board(creator)
            match.player2_id = player_id
            match.state = MatchState.IN_PROGRESS
            match.turn = creator.id
            logger.info("Player %d joined match %d; player %d starts", player_id, match.id, creator.id)

            self.notifier.notify(player_id, f"You joined match {match.id}")
            self.notifier.notify(creator.id, f"Player {player_id} joined your match {match.id}")
            for pid in match.players:
                self.notifier.notify(pid, f"Match {match.id} started. Turn: {match.turn}")
        return match

    # -------------------- boards --------------------
    def ensure_board(self, player: Player) -> int:
        """Return the player's board id, creating the board on first use."""
        with player.lock:
            if player.board_id is None:
                board = self.repo.create_board(self.board_size, self.board_size)
                player.board_id = board.id
                logger.debug("Board %d assigned to player %d", board.id, player.id)
            return player.board_id

    def board_of(self, player_id: int) -> Board:
        player = self.get_player(player_id)
        with player.lock:
            board_id = player.board_id
        if board_id is None:
            raise InvalidStateError(f"Player {player_id} has no board yet; join a match first")
        board = self.repo.get_board(board_id)
        if board is None:  # pragma: no cover – repo never forgets boards
            raise NotFoundError(f"Board not found: {board_id}")
        return board

    def place_ship(self, player_id: int, cells: Iterable[Sequence[int]]) -> Ship:
        board = self.board_of(player_id)
        ship = board.place_ship(cells)
        logger.debug("Player %d placed ship %d (size %d)", player_id, ship.id, ship.size)
        return ship

    # -------------------- shots --------------------
    def shoot(self, attacker_id: int, match_id: int, row: int, col: int) -> ShotResult:
        """Fire at (*row*, *col*) on the opponent's board and advance the match."""
        match = self.get_match(match_id)
        with match.lock:
            if match.state is not MatchState.IN_PROGRESS:
                raise InvalidStateError(f"Match {match_id} is not in progress")
            if match.turn != attacker_id:
                raise InvalidStateError("Not your turn")
            defender_id = match.opponent_of(attacker_id)
            if defender_id is None:
                raise InvalidStateError(f"No opponent in match {match_id}")

            board = self.board_of(defender_id)
            shot = board.resolve_shot(row, col)
            self._notify_shot(attacker_id, defender_id, row, col, shot.result, shot.ship_id)
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("Board %d after shot:\n%s", board.id, "\n".join(board.grid_rows()))

            if board.all_ships_sunk():
                match.state = MatchState.FINISHED
                match.turn = None
                logger.info("Match %d finished: player %d won", match.id, attacker_id)
                self.notifier.notify(attacker_id, "Victory! You sank all of your opponent's ships.")
                self.notifier.notify(defender_id, "Defeat. All of your ships have been sunk.")
            else:
                if not self.turn_rule.keeps_turn(shot.result):
                    match.turn = defender_id
                self.notifier.notify(match.turn, "Your turn.")
            return shot.result

    def _notify_shot(
        self,
        attacker_id: int,
        defender_id: int,
        row: int,
        col: int,
        result: ShotResult,
        ship_id: int | None,
    ) -> None:
        detail = result.value
        if result is ShotResult.SUNK:
            detail = f"{result.value} (ship {ship_id})"
        self.notifier.notify(attacker_id, f"You fired at ({format_coord(row, col)}): {detail}")
        self.notifier.notify(defender_id, f"You were fired at ({format_coord(row, col)}): {detail}")
