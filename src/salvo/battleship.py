"""
battleship.py

Contains the core data structures and rules for a single Battleship board:
 - Cell: one grid position with its shot state and optional ship reference
 - Ship: a straight, contiguous run of cells on one board
 - Board: the grid itself, owning ship placement and shot resolution

In a networked game each player owns exactly one Board. When a player fires
at their opponent, the match engine calls opponent_board.resolve_shot(...) and
relays the outcome to both sides.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Iterable, Sequence

from .config import BOARD_SIZE
from .errors import InvalidArgumentError, InvalidStateError


class ShotState(Enum):
    """Per-cell record of shots taken against it."""

    UNSHOT = auto()
    WATER = auto()
    HIT = auto()
    SUNK = auto()


class ShotResult(str, Enum):
    """Outcome of a shot as reported on the wire."""

    WATER = "AGUA"
    HIT = "TOCADO"
    SUNK = "HUNDIDO"


# Single-char symbols used by Board.grid_rows()
_STATE_SYMBOLS = {
    ShotState.UNSHOT: ".",
    ShotState.WATER: "o",
    ShotState.HIT: "X",
    ShotState.SUNK: "#",
}


@dataclass(slots=True)
class Cell:
    id: int
    row: int
    col: int
    ship_id: int | None = None
    state: ShotState = ShotState.UNSHOT


@dataclass(slots=True)
class Ship:
    id: int
    cell_ids: list[int] = field(default_factory=list)
    sunk: bool = False

    @property
    def size(self) -> int:
        return len(self.cell_ids)


@dataclass(frozen=True, slots=True)
class Shot:
    """Result of Board.resolve_shot(); *ship_id* is set for hits and sinks."""

    result: ShotResult
    ship_id: int | None = None


class Board:
    """
    Represents a single Battleship board.

    We store:
      - self._cells: cell id -> Cell, one cell per (row, col) inside the extent
      - self._positions: (row, col) -> cell id, for O(1) lookups
      - self._ships: ship id -> Ship

    Cell ids are assigned in row-major order starting at 1; ship ids are
    allocated per board, also starting at 1. All public methods hold the
    board lock, so a board can be shared by several connection threads.
    """

    def __init__(self, board_id: int, rows: int = BOARD_SIZE, cols: int = BOARD_SIZE):
        """Initialise an empty *rows*×*cols* board with no ships placed."""
        if rows <= 0 or cols <= 0:
            raise InvalidArgumentError(f"Board extent must be positive, got {rows}x{cols}")
        self.id = board_id
        self.rows = rows
        self.cols = cols
        self._lock = threading.RLock()
        self._cells: dict[int, Cell] = {}
        self._positions: dict[tuple[int, int], int] = {}
        self._ships: dict[int, Ship] = {}
        self._next_ship_id = 1

        cell_id = 1
        for r in range(rows):
            for c in range(cols):
                self._cells[cell_id] = Cell(cell_id, r, c)
                self._positions[(r, c)] = cell_id
                cell_id += 1

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def cell_at(self, row: int, col: int) -> Cell:
        """Return the cell at (*row*, *col*) or raise InvalidArgumentError."""
        cell_id = self._positions.get((row, col))
        if cell_id is None:
            raise InvalidArgumentError(f"Coordinate outside the board: {row},{col}")
        return self._cells[cell_id]

    def ship(self, ship_id: int) -> Ship:
        return self._ships[ship_id]

    @property
    def ships(self) -> tuple[Ship, ...]:
        with self._lock:
            return tuple(self._ships.values())

    def all_ships_sunk(self) -> bool:
        """Return True if no ship on this board is left afloat (also for an empty fleet)."""
        with self._lock:
            return all(ship.sunk for ship in self._ships.values())

    def grid_rows(self, *, reveal: bool = False) -> list[str]:
        """Board -> ["o . X ...", ...]; unshot ship cells show as 'S' when *reveal*."""
        with self._lock:
            rows: list[str] = []
            for r in range(self.rows):
                symbols = []
                for c in range(self.cols):
                    cell = self._cells[self._positions[(r, c)]]
                    if reveal and cell.ship_id is not None and cell.state is ShotState.UNSHOT:
                        symbols.append("S")
                    else:
                        symbols.append(_STATE_SYMBOLS[cell.state])
                rows.append(" ".join(symbols))
            return rows

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------
    def place_ship(self, coords: Iterable[Sequence[int]]) -> Ship:
        """Validate *coords* as one straight contiguous ship and attach it to the board.

        Every check runs before any cell is touched, so a rejected placement
        leaves the board exactly as it was.
        """
        positions = [(int(r), int(c)) for r, c in coords]
        with self._lock:
            cells = self._validate_placement(positions)
            ship = Ship(self._next_ship_id)
            self._next_ship_id += 1
            for cell in cells:
                cell.ship_id = ship.id
                ship.cell_ids.append(cell.id)
            self._ships[ship.id] = ship
            return ship

    def _validate_placement(self, positions: list[tuple[int, int]]) -> list[Cell]:
        if not positions:
            raise InvalidArgumentError("A ship needs at least one coordinate")
        if len(set(positions)) != len(positions):
            raise InvalidArgumentError("Duplicate coordinate in ship placement")

        cells = []
        for r, c in positions:
            cell = self.cell_at(r, c)
            if cell.ship_id is not None:
                raise InvalidArgumentError(f"A ship already occupies {r},{c}")
            cells.append(cell)

        if len(positions) > 1:
            rows = {r for r, _ in positions}
            cols = {c for _, c in positions}
            if len(rows) == 1:
                axis = sorted(cols)
            elif len(cols) == 1:
                axis = sorted(rows)
            else:
                raise InvalidArgumentError("Ship must be placed horizontally or vertically")
            if axis[-1] - axis[0] != len(axis) - 1:
                raise InvalidArgumentError("Ship cells must be contiguous")
        return cells

    # ------------------------------------------------------------------
    # Shots
    # ------------------------------------------------------------------
    def resolve_shot(self, row: int, col: int) -> Shot:
        """Process a shot at (*row*, *col*) and return its outcome."""
        with self._lock:
            cell = self.cell_at(row, col)
            if cell.state is not ShotState.UNSHOT:
                raise InvalidStateError(f"Coordinate {row},{col} has already been shot")

            if cell.ship_id is None:
                cell.state = ShotState.WATER
                return Shot(ShotResult.WATER)

            cell.state = ShotState.HIT
            ship = self._ships[cell.ship_id]
            ship_cells = [self._cells[cid] for cid in ship.cell_ids]
            if all(c.state in (ShotState.HIT, ShotState.SUNK) for c in ship_cells):
                for c in ship_cells:
                    c.state = ShotState.SUNK
                ship.sunk = True
                return Shot(ShotResult.SUNK, ship.id)
            return Shot(ShotResult.HIT, ship.id)
