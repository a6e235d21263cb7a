"""Line-oriented TCP front end for the match engine.

Every accepted connection gets its own :class:`ClientHandler` thread that
reads newline-terminated commands, calls :class:`~salvo.service.GameService`
and answers with exactly one status line per command (``HELP`` is the only
multi-line reply). Outbound traffic goes through a per-connection
:class:`~salvo.io_utils.Outbox`, so a slow client never stalls the engine.

Client → Server commands
-----------------------
HELP                          List the commands below.
CREATE_PLAYER                 -> PLAYER <id>
USE_PLAYER <playerId>         -> PLAYER <id>
CREATE_GAME                   -> GAME <id>
JOIN_GAME <gameId>            -> JOINED <gameId>
LIST_GAMES                    -> GAMES [<m1> | <m2> | ...]
PLACE_SHIP <row,col>...       -> SHIP <id> SIZE <n>
SHOOT <gameId> <row> <col>    -> RESULT <AGUA|TOCADO|HUNDIDO>
QUIT                          -> BYE, then the connection closes

Server → Client messages
-----------------------
NOTIFY <text>                 Asynchronous push from the match engine.
ERROR <text>                  The command failed; the connection stays open.
"""

from __future__ import annotations

import argparse
import itertools
import logging
import os
import signal
import socket
import threading

from . import config as _cfg
from .commands import (
    HELP_LINES,
    CreateGameCommand,
    CreatePlayerCommand,
    HelpCommand,
    JoinGameCommand,
    ListGamesCommand,
    PlaceShipCommand,
    QuitCommand,
    ShootCommand,
    UsePlayerCommand,
    parse_command,
)
from .errors import GameError, InvalidStateError
from .io_utils import Outbox, safe_readline, shutdown_quietly
from .service import GameService, TurnRule

# Initialize module-level logger
logger = logging.getLogger(__name__)

BANNER = ("WELCOME Battleship TCP", "Type HELP for available commands.")

# Seconds between checks of the running flag while blocked in accept()
_ACCEPT_POLL = 0.2

_handler_ids = itertools.count(1)


class SessionNotifier:
    """Notifier that writes ``NOTIFY`` lines to the connection bound to a player."""

    def __init__(self, server: "TcpServer") -> None:
        self._server = server

    def notify(self, player_id: int, message: str) -> None:
        handler = self._server.handler_for(player_id)
        if handler is None:
            logger.debug("Dropping notification for offline player %s: %r", player_id, message)
            return
        handler.send_notification(message)


class ClientHandler(threading.Thread):
    """Thread serving a single client connection."""

    def __init__(self, server: "TcpServer", sock: socket.socket, addr) -> None:
        hid = next(_handler_ids)
        super().__init__(name=f"salvo-client-{hid}", daemon=True)
        self.server = server
        self.addr = addr
        self.player_id: int | None = None
        self._sock = sock
        # Enable TCP keepalive to detect dead peers
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
        except OSError:
            pass  # not a TCP socket (e.g. socketpair in tests)
        self._reader = sock.makefile("r", encoding="utf-8", errors="replace", newline="\n")
        self.outbox = Outbox(
            sock,
            maxsize=_cfg.OUTBOX_SIZE,
            name=f"salvo-writer-{hid}",
        )
        self._active = True

    # -------------------- output --------------------
    def send(self, line: str) -> None:
        self.outbox.put(line)

    def send_error(self, message: str) -> None:
        self.send(f"ERROR {message}")

    def send_notification(self, message: str) -> None:
        # never block the engine thread that triggered the notification
        self.outbox.put(f"NOTIFY {message}", block=False)

    # -------------------- lifecycle --------------------
    def run(self) -> None:
        self.outbox.start()
        for line in BANNER:
            self.send(line)
        try:
            self._process_commands()
        finally:
            self._cleanup()

    def _process_commands(self) -> None:
        while self._active:
            line = safe_readline(self._reader)
            if not line:
                logger.info("Client %s disconnected", self.addr)
                break
            line = line.strip()
            if not line:
                continue
            logger.debug("Client %s -> %r", self.addr, line)
            try:
                self.handle_line(line)
            except GameError as e:
                self.send_error(str(e))
            except Exception:
                logger.exception("Unexpected error processing %r from %s", line, self.addr)
                self.send_error("Unexpected server error")

    def _cleanup(self) -> None:
        self._active = False
        self.server.release(self)
        self.outbox.close_after_flush()
        try:
            self._reader.close()
        except OSError:
            pass

    def close(self) -> None:
        """Drop the connection now (server shutdown)."""
        self._active = False
        self.outbox.close_now()

    def replace_session(self) -> None:
        """Tell the client another connection took over its player, then hang up."""
        self._active = False
        self.send_notification("Session replaced by a new connection.")
        self.outbox.close_after_flush(block=False)

    # -------------------- commands --------------------
    def handle_line(self, line: str) -> None:  # noqa: C901 – flat dispatch table
        cmd = parse_command(line)
        service = self.server.service

        if isinstance(cmd, HelpCommand):
            self.send("COMMANDS:")
            for help_line in HELP_LINES:
                self.send(help_line)
        elif isinstance(cmd, CreatePlayerCommand):
            player = service.create_player()
            self.server.bind_player(self, player.id)
            self.send(f"PLAYER {player.id}")
        elif isinstance(cmd, UsePlayerCommand):
            player = service.get_player(cmd.player_id)
            self.server.bind_player(self, player.id)
            self.send(f"PLAYER {player.id}")
        elif isinstance(cmd, ListGamesCommand):
            summaries = []
            for match in service.list_matches():
                with match.lock:
                    summaries.append(str(match))
            self.send(f"GAMES {' | '.join(summaries)}" if summaries else "GAMES")
        elif isinstance(cmd, QuitCommand):
            self.send("BYE")
            self._active = False
        elif isinstance(cmd, CreateGameCommand):
            match = service.create_match(self._require_player())
            self.send(f"GAME {match.id}")
        elif isinstance(cmd, JoinGameCommand):
            match = service.join_match(cmd.game_id, self._require_player())
            self.send(f"JOINED {match.id}")
        elif isinstance(cmd, PlaceShipCommand):
            ship = service.place_ship(self._require_player(), cmd.cells)
            self.send(f"SHIP {ship.id} SIZE {ship.size}")
        elif isinstance(cmd, ShootCommand):
            result = service.shoot(self._require_player(), cmd.game_id, cmd.row, cmd.col)
            self.send(f"RESULT {result.value}")

    def _require_player(self) -> int:
        if self.player_id is None:
            raise InvalidStateError("Create or select a player first.")
        return self.player_id


class TcpServer:
    """Acceptor plus registry of live connections, keyed by player id."""

    def __init__(
        self,
        host: str = _cfg.DEFAULT_HOST,
        port: int = _cfg.DEFAULT_PORT,
        *,
        board_size: int = _cfg.BOARD_SIZE,
        turn_rule: TurnRule | str | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.service = GameService(
            notifier=SessionNotifier(self),
            board_size=board_size,
            turn_rule=turn_rule,
        )
        self._lock = threading.Lock()
        self._clients_by_player: dict[int, ClientHandler] = {}
        self._handlers: set[ClientHandler] = set()
        self._server_sock: socket.socket | None = None
        self._accept_thread: threading.Thread | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def address(self) -> tuple[str, int]:
        return self.host, self.port

    # -------------------- lifecycle --------------------
    def start(self, port: int | None = None) -> int:
        """Bind and start accepting; returns the bound port (useful with port 0)."""
        with self._lock:
            if self._running:
                return self.port
            if port is not None:
                self.port = port
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            try:
                sock.bind((self.host, self.port))
                sock.listen()
            except OSError:
                sock.close()
                raise
            sock.settimeout(_ACCEPT_POLL)
            self.port = sock.getsockname()[1]
            self._server_sock = sock
            self._running = True
            self._accept_thread = threading.Thread(target=self._accept_loop, name="salvo-accept", daemon=True)
            self._accept_thread.start()
        logger.info("Battleship server listening on %s:%d", self.host, self.port)
        return self.port

    def stop(self) -> None:
        """Close the listener and every live connection; in-memory state is discarded."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            server_sock, self._server_sock = self._server_sock, None
            handlers = list(self._handlers)
            self._handlers.clear()
            self._clients_by_player.clear()
        logger.info("Stopping server (%d live connections)", len(handlers))
        if server_sock is not None:
            try:
                server_sock.close()
            except OSError:
                pass
        for handler in handlers:
            handler.close()
        if self._accept_thread is not None and self._accept_thread is not threading.current_thread():
            self._accept_thread.join(_cfg.SHUTDOWN_TIMEOUT)
        for handler in handlers:
            if handler.is_alive() and handler is not threading.current_thread():
                handler.join(_cfg.SHUTDOWN_TIMEOUT)
            handler.outbox.join(_cfg.SHUTDOWN_TIMEOUT)

    def _accept_loop(self) -> None:
        while self._running:
            server_sock = self._server_sock
            if server_sock is None:
                break
            try:
                conn, addr = server_sock.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error("Error accepting connection: %s", e)
                    continue
                break
            logger.info("Connection from %s", addr)
            self.add_connection(conn, addr)

    def add_connection(self, conn: socket.socket, addr=None) -> ClientHandler | None:
        """Start serving an already-connected socket."""
        handler = ClientHandler(self, conn, addr)
        with self._lock:
            if not self._running:
                shutdown_quietly(conn)
                return None
            self._handlers.add(handler)
        handler.start()
        return handler

    # -------------------- registry --------------------
    def handler_for(self, player_id: int) -> ClientHandler | None:
        with self._lock:
            return self._clients_by_player.get(player_id)

    def bind_player(self, handler: ClientHandler, player_id: int) -> None:
        """Bind *player_id* to *handler*, evicting any other live connection of that player."""
        with self._lock:
            previous_id = handler.player_id
            existing = self._clients_by_player.get(player_id)
            self._clients_by_player[player_id] = handler
            if previous_id is not None and previous_id != player_id:
                if self._clients_by_player.get(previous_id) is handler:
                    del self._clients_by_player[previous_id]
            handler.player_id = player_id
        if existing is not None and existing is not handler:
            logger.info("Player %d moved to a new connection; closing the old one", player_id)
            existing.replace_session()

    def release(self, handler: ClientHandler) -> None:
        """Forget *handler*; its player binding goes only if it still points here."""
        with self._lock:
            self._handlers.discard(handler)
            pid = handler.player_id
            if pid is not None and self._clients_by_player.get(pid) is handler:
                del self._clients_by_player[pid]


def main() -> None:  # pragma: no cover – side-effect entrypoint
    """Run the Battleship server until SIGINT/SIGTERM."""
    parser = argparse.ArgumentParser(description="Battleship TCP server")
    parser.add_argument("--host", default=_cfg.DEFAULT_HOST, help="Address to bind.")
    parser.add_argument("--port", type=int, default=_cfg.DEFAULT_PORT, help="Port to listen on.")
    parser.add_argument(
        "--turn-rule",
        choices=[rule.value for rule in TurnRule],
        default=_cfg.TURN_RULE,
        help="Which shot outcomes pass the turn.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity.",
    )
    parser.add_argument(
        "-s",
        "--silent",
        "-q",
        "--quiet",
        dest="silent",
        action="store_true",
        help="Suppress all output.",
    )
    args = parser.parse_args()

    if args.debug:
        os.environ["SALVO_DEBUG"] = "1"

    # Determine log level from CLI flags:
    if args.silent:
        level = logging.ERROR
    elif args.debug or _cfg.DEBUG:
        level = logging.DEBUG
    elif args.verbose >= 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    server = TcpServer(args.host, args.port, turn_rule=args.turn_rule)
    stopped = threading.Event()

    def _shutdown(signum, frame):
        logger.info("Received signal %s, shutting down", signum)
        stopped.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    server.start()
    try:
        stopped.wait()
    finally:
        server.stop()


if __name__ == "__main__":  # pragma: no cover
    main()
