import logging
import socket
import threading

import pytest

from salvo.server import TcpServer
from salvo.service import GameService

# Suppress INFO & DEBUG logs from server threads during tests
logging.basicConfig(level=logging.WARNING)


class RecordingNotifier:
    """Notifier spy collecting (player_id, message) pairs."""

    def __init__(self) -> None:
        self.messages: list[tuple[int, str]] = []
        self._lock = threading.Lock()

    def notify(self, player_id: int, message: str) -> None:
        with self._lock:
            self.messages.append((player_id, message))

    def for_player(self, player_id: int) -> list[str]:
        with self._lock:
            return [msg for pid, msg in self.messages if pid == player_id]

    def clear(self) -> None:
        with self._lock:
            self.messages.clear()


class LineClient:
    """Simple client wrapper for integration tests over the line protocol."""

    def __init__(self, sock: socket.socket, timeout: float = 2.0) -> None:
        self.sock = sock
        self.sock.settimeout(timeout)
        self.rfile = sock.makefile("r", encoding="utf-8", newline="\n")
        self.notifications: list[str] = []

    def send(self, line: str) -> None:
        self.sock.sendall((line + "\n").encode("utf-8"))

    def readline(self) -> str:
        """Return the next raw line without its newline; "" on EOF."""
        return self.rfile.readline().rstrip("\n")

    def reply(self) -> str:
        """Return the next command reply, collecting NOTIFY lines on the way."""
        while True:
            line = self.readline()
            if line.startswith("NOTIFY "):
                self.notifications.append(line[len("NOTIFY "):])
                continue
            return line

    def command(self, line: str) -> str:
        self.send(line)
        return self.reply()

    def recv_until(self, token: str) -> str:
        """Read lines until one contains *token*; return that line ("" on EOF/timeout)."""
        try:
            while True:
                line = self.readline()
                if not line:
                    return ""
                if line.startswith("NOTIFY "):
                    self.notifications.append(line[len("NOTIFY "):])
                if token in line:
                    return line
        except socket.timeout:
            return ""

    def read_banner(self) -> list[str]:
        return [self.readline(), self.readline()]

    def close(self) -> None:
        self.rfile.close()
        self.sock.close()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(notifier: RecordingNotifier) -> GameService:
    return GameService(notifier=notifier, board_size=10, turn_rule="always_pass")


@pytest.fixture
def server():
    """A TcpServer listening on an ephemeral port for the duration of one test."""
    srv = TcpServer("127.0.0.1", 0)
    srv.start()
    yield srv
    srv.stop()


@pytest.fixture
def connect(server):
    """Factory opening banner-consumed LineClients against the running server."""
    clients: list[LineClient] = []

    def _connect(read_banner: bool = True) -> LineClient:
        sock = socket.create_connection(server.address)
        client = LineClient(sock)
        if read_banner:
            client.read_banner()
        clients.append(client)
        return client

    yield _connect
    for client in clients:
        try:
            client.close()
        except OSError:
            pass
