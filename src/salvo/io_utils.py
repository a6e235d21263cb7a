# io_utils.py
"""
Low-level line I/O helpers shared by the server and its connection handlers
–––––––––––––––––––––––––––––––––––––––––––––––––––––––––––––––––––––––––––
• send_line()     – encode + write one newline-terminated line
• safe_readline() – readline() that maps socket errors to EOF
• Outbox          – bounded per-connection queue drained by a writer thread
"""

from __future__ import annotations

import logging
import queue
import socket
import threading
from typing import TextIO

logger = logging.getLogger("salvo.io_utils")

# Queue marker telling the writer thread to close the connection
_CLOSE = object()

# Seconds between checks of the closed flag while a producer waits for room
_PUT_POLL = 0.2


def send_line(sock: socket.socket, line: str) -> bool:
    """Write *line* plus a newline; return False if the peer is gone."""
    logger.debug("send_line() – %r", line)
    try:
        sock.sendall((line + "\n").encode("utf-8"))
        return True
    except (BrokenPipeError, ConnectionResetError, ConnectionAbortedError):
        # peer closed or reset during send
        return False
    except OSError as e:
        logger.debug("send_line() failed – %s", e)
        return False


def safe_readline(reader: TextIO) -> str:
    """Return the next line, or "" on EOF and on any socket error."""
    try:
        line = reader.readline()
    except (OSError, ValueError) as e:
        # ValueError: reading from a file object closed under our feet
        logger.debug("safe_readline() error – %s", e)
        return ""
    logger.debug("safe_readline() got line %r", line)
    return line


def shutdown_quietly(sock: socket.socket) -> None:
    """Shut down both directions and close *sock*, ignoring errors."""
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass
    try:
        sock.close()
    except OSError:
        pass


class Outbox:
    """
    Serialises every outbound line of one connection through a writer thread.

    Producers never touch the socket. Command replies wait for room in the
    queue for as long as it takes, so each command still gets its reply in
    order; only the connection's own handler thread is held up. Notifications
    do not wait at all and are dropped when the queue is full.
    """

    def __init__(self, sock: socket.socket, *, maxsize: int, name: str) -> None:
        self._sock = sock
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()
        self._thread = threading.Thread(target=self._drain, name=name, daemon=True)
        self.dropped = 0

    def start(self) -> None:
        self._thread.start()

    def put(self, line: str, *, block: bool = True) -> bool:
        """Queue *line*; return False when it was dropped or the outbox is closed."""
        if block:
            return self._put_waiting(line)
        if self._closed.is_set():
            return False
        try:
            self._queue.put_nowait(line)
            return True
        except queue.Full:
            self.dropped += 1
            logger.warning("Outbox full – dropping line %r", line)
            return False

    def _put_waiting(self, item: object) -> bool:
        # Wakes up periodically so close_now() releases a blocked producer
        while not self._closed.is_set():
            try:
                self._queue.put(item, timeout=_PUT_POLL)
                return True
            except queue.Full:
                continue
        return False

    def close_after_flush(self, *, block: bool = True) -> None:
        """Let pending lines go out, then close the connection.

        With ``block=False`` a full queue closes the connection immediately
        instead of waiting for the writer.
        """
        if block:
            self._put_waiting(_CLOSE)
            return
        try:
            self._queue.put_nowait(_CLOSE)
        except queue.Full:
            self.close_now()

    def close_now(self) -> None:
        """Close the connection immediately, discarding pending lines."""
        self._closed.set()
        shutdown_quietly(self._sock)
        # Wake the writer if it is idle
        try:
            self._queue.put_nowait(_CLOSE)
        except queue.Full:
            pass

    def join(self, timeout: float | None = None) -> None:
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def _drain(self) -> None:
        while True:
            item = self._queue.get()
            if item is _CLOSE or self._closed.is_set():
                break
            if not send_line(self._sock, item):
                break
        self._closed.set()
        shutdown_quietly(self._sock)
