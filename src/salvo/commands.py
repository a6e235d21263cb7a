from dataclasses import dataclass
from typing import Tuple, Union

from .coord_utils import coord_to_rowcol, parse_int
from .errors import InvalidArgumentError


class CommandParseError(InvalidArgumentError):
    """Raised when a line cannot be parsed as a valid command."""


@dataclass(frozen=True)
class HelpCommand:
    pass


@dataclass(frozen=True)
class CreatePlayerCommand:
    pass


@dataclass(frozen=True)
class UsePlayerCommand:
    player_id: int


@dataclass(frozen=True)
class CreateGameCommand:
    pass


@dataclass(frozen=True)
class JoinGameCommand:
    game_id: int


@dataclass(frozen=True)
class ListGamesCommand:
    pass


@dataclass(frozen=True)
class PlaceShipCommand:
    cells: Tuple[Tuple[int, int], ...]


@dataclass(frozen=True)
class ShootCommand:
    game_id: int
    row: int
    col: int


@dataclass(frozen=True)
class QuitCommand:
    pass


Command = Union[
    HelpCommand,
    CreatePlayerCommand,
    UsePlayerCommand,
    CreateGameCommand,
    JoinGameCommand,
    ListGamesCommand,
    PlaceShipCommand,
    ShootCommand,
    QuitCommand,
]

# Shown by HELP, one line per command
HELP_LINES = (
    "  CREATE_PLAYER               -> Create a new player and bind it to this connection.",
    "  USE_PLAYER <playerId>       -> Bind an existing player to this connection.",
    "  CREATE_GAME                 -> Create a match hosted by the current player.",
    "  JOIN_GAME <gameId>          -> Join the given match as the current player.",
    "  LIST_GAMES                  -> List every match.",
    "  PLACE_SHIP <row,col>...     -> Place one ship on the current player's board.",
    "  SHOOT <gameId> <row> <col>  -> Fire at the opponent's board.",
    "  QUIT                        -> Close the connection.",
)

_NO_ARGS = {
    "HELP": HelpCommand,
    "CREATE_PLAYER": CreatePlayerCommand,
    "CREATE_GAME": CreateGameCommand,
    "LIST_GAMES": ListGamesCommand,
    "QUIT": QuitCommand,
}


def _require_args(args: list, count: int, usage: str) -> None:
    if len(args) < count:
        raise CommandParseError(f"Not enough arguments. Usage: {usage}")


def parse_command(line: str) -> Command:
    if line is None:
        raise CommandParseError("No command to parse")
    tokens = line.split()
    if not tokens:
        raise CommandParseError("Empty command")
    verb, args = tokens[0].upper(), tokens[1:]

    if verb in _NO_ARGS:
        return _NO_ARGS[verb]()
    elif verb == "USE_PLAYER":
        _require_args(args, 1, "USE_PLAYER <playerId>")
        return UsePlayerCommand(parse_int(args[0], "playerId"))
    elif verb == "JOIN_GAME":
        _require_args(args, 1, "JOIN_GAME <gameId>")
        return JoinGameCommand(parse_int(args[0], "gameId"))
    elif verb == "PLACE_SHIP":
        _require_args(args, 1, "PLACE_SHIP <row,col>...")
        return PlaceShipCommand(tuple(coord_to_rowcol(tok) for tok in args))
    elif verb == "SHOOT":
        _require_args(args, 3, "SHOOT <gameId> <row> <col>")
        return ShootCommand(
            game_id=parse_int(args[0], "gameId"),
            row=parse_int(args[1], "row"),
            col=parse_int(args[2], "col"),
        )
    else:
        raise CommandParseError(f"Unknown command: {verb}")
