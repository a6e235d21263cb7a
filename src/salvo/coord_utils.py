import re
from typing import Tuple

from .errors import InvalidArgumentError

# Regex for a "row,col" token, e.g. 0,0 or 9,10 (signs allowed, range checked by the board)
COORD_RE = re.compile(r"^(-?\d+),(-?\d+)$")


def parse_int(value: str, label: str) -> int:
    """
    Parse a decimal integer argument, naming *label* in the error message.
    """
    try:
        return int(value)
    except ValueError:
        raise InvalidArgumentError(f"Invalid value for {label}: {value}") from None


def coord_to_rowcol(coord: str) -> Tuple[int, int]:
    """
    Convert a token like '3,4' to a zero-based (row, col) tuple.
    """
    m = COORD_RE.match(coord.strip())
    if not m:
        raise InvalidArgumentError(f"Invalid coordinate format: {coord}")
    return int(m.group(1)), int(m.group(2))


def format_coord(row: int, col: int) -> str:
    """
    Convert zero-based (row, col) to a coordinate token like '3,4'.
    """
    return f"{row},{col}"
