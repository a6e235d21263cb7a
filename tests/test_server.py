"""Protocol tests against an in-process TcpServer on an ephemeral port."""

from __future__ import annotations

import socket
import threading
import time

import pytest

from salvo import config
from salvo.commands import HELP_LINES
from salvo.server import BANNER, TcpServer
from conftest import LineClient


pytestmark = pytest.mark.timeout(10)


def _identified(connect) -> tuple[LineClient, int]:
    client = connect()
    reply = client.command("CREATE_PLAYER")
    assert reply.startswith("PLAYER ")
    return client, int(reply.split()[1])


def test_banner_is_two_lines(connect) -> None:
    client = connect(read_banner=False)
    assert client.read_banner() == list(BANNER)


def test_help_lists_commands(connect) -> None:
    client = connect()
    assert client.command("HELP") == "COMMANDS:"
    lines = [client.readline() for _ in range(8)]
    assert any("SHOOT" in line for line in lines)
    assert client.command("QUIT") == "BYE"


def test_unknown_command_keeps_connection_open(connect) -> None:
    client = connect()
    assert client.command("FIRE A1") == "ERROR Unknown command: FIRE"
    assert client.command("LIST_GAMES") == "GAMES"


def test_blank_lines_are_ignored(connect) -> None:
    client = connect()
    client.send("")
    client.send("   ")
    assert client.command("CREATE_PLAYER") == "PLAYER 1"


def test_commands_require_identified_player(connect) -> None:
    client = connect()
    for line in ("CREATE_GAME", "JOIN_GAME 1", "PLACE_SHIP 0,0", "SHOOT 1 0 0"):
        assert client.command(line) == "ERROR Create or select a player first."


def test_use_player_unknown_and_known(connect) -> None:
    client = connect()
    assert client.command("USE_PLAYER 5").startswith("ERROR ")
    assert client.command("USE_PLAYER abc").startswith("ERROR ")
    assert client.command("CREATE_PLAYER") == "PLAYER 1"
    other = connect()
    assert other.command("CREATE_PLAYER") == "PLAYER 2"
    assert other.command("USE_PLAYER 2") == "PLAYER 2"


def test_full_game_over_tcp(connect) -> None:
    host, p1 = _identified(connect)
    guest, p2 = _identified(connect)

    reply = host.command("CREATE_GAME")
    assert reply.startswith("GAME ")
    game_id = int(reply.split()[1])

    assert guest.command(f"JOIN_GAME {game_id}") == f"JOINED {game_id}"
    listing = guest.command("LIST_GAMES")
    assert listing == (
        f"GAMES Match(id={game_id}, player1={p1}, player2={p2}, turn={p1}, state=IN_PROGRESS)"
    )

    assert host.command("PLACE_SHIP 0,0 0,1") == "SHIP 1 SIZE 2"
    assert guest.command("PLACE_SHIP 5,5 5,6") == "SHIP 1 SIZE 2"
    assert guest.command("PLACE_SHIP 5,6 6,6").startswith("ERROR ")
    assert guest.command("PLACE_SHIP 1,1 2,2").startswith("ERROR ")

    assert guest.command(f"SHOOT {game_id} 0 0") == "ERROR Not your turn"
    assert host.command(f"SHOOT {game_id} 99 99").startswith("ERROR ")
    assert host.command(f"SHOOT {game_id} 5 5") == "RESULT TOCADO"
    assert guest.command(f"SHOOT {game_id} 9 9") == "RESULT AGUA"
    assert host.command(f"SHOOT {game_id} 5 5").startswith("ERROR ")
    assert host.command(f"SHOOT {game_id} 5 6") == "RESULT HUNDIDO"
    assert any(n.startswith("Victory") for n in host.notifications)

    assert guest.recv_until("Defeat")
    assert guest.command(f"SHOOT {game_id} 0 1") == f"ERROR Match {game_id} is not in progress"
    assert any("joined your match" in n for n in host.notifications)


def test_notifications_are_pushed_to_the_opponent(connect) -> None:
    host, _ = _identified(connect)
    guest, p2 = _identified(connect)
    game_id = int(host.command("CREATE_GAME").split()[1])
    guest.command(f"JOIN_GAME {game_id}")
    line = host.recv_until(f"Player {p2} joined your match {game_id}")
    assert line == f"NOTIFY Player {p2} joined your match {game_id}"


def test_identifying_elsewhere_replaces_old_session(connect) -> None:
    first, pid = _identified(connect)
    second = connect()
    assert second.command(f"USE_PLAYER {pid}") == f"PLAYER {pid}"

    assert first.readline() == "NOTIFY Session replaced by a new connection."
    assert first.readline() == ""  # server closed the old connection

    # notifications now reach the new connection only
    assert second.command("CREATE_GAME").startswith("GAME ")
    assert any("created" in n for n in second.notifications)


def test_disconnect_releases_player_binding(server, connect) -> None:
    client, pid = _identified(connect)
    assert client.command("QUIT") == "BYE"
    assert client.readline() == ""
    for _ in range(50):
        if server.handler_for(pid) is None:
            break
        threading.Event().wait(0.02)
    assert server.handler_for(pid) is None
    # notifying an offline player is silently dropped
    server.service.notifier.notify(pid, "anyone there?")


def test_unexpected_error_is_reported_generically(server, connect, monkeypatch) -> None:
    def boom() -> None:
        raise RuntimeError("database exploded")

    monkeypatch.setattr(server.service, "list_matches", boom)
    client = connect()
    assert client.command("LIST_GAMES") == "ERROR Unexpected server error"
    assert client.command("CREATE_PLAYER").startswith("PLAYER ")


def test_simultaneous_create_player_yields_distinct_ids(connect) -> None:
    clients = [connect() for _ in range(6)]
    replies: list[str] = []
    lock = threading.Lock()
    barrier = threading.Barrier(len(clients))

    def create(client: LineClient) -> None:
        barrier.wait()
        reply = client.command("CREATE_PLAYER")
        with lock:
            replies.append(reply)

    threads = [threading.Thread(target=create, args=(c,)) for c in clients]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    ids = sorted(int(r.split()[1]) for r in replies)
    assert ids == list(range(1, len(clients) + 1))


def test_handler_over_socketpair(server) -> None:
    srv_sock, cli_sock = socket.socketpair()
    server.add_connection(srv_sock)
    client = LineClient(cli_sock)
    assert client.read_banner() == list(BANNER)
    assert client.command("CREATE_PLAYER") == "PLAYER 1"
    client.close()


def test_start_twice_and_stop_closes_clients() -> None:
    srv = TcpServer("127.0.0.1", 0)
    port = srv.start()
    assert srv.start() == port
    sock = socket.create_connection(("127.0.0.1", port))
    client = LineClient(sock)
    client.read_banner()

    srv.stop()
    assert client.readline() == ""
    assert not srv.running
    with pytest.raises(OSError):
        socket.create_connection(("127.0.0.1", port), timeout=1).close()
    srv.stop()  # idempotent
    client.close()


def test_pipelined_commands_all_get_replies_from_a_slow_reader(server, monkeypatch) -> None:
    monkeypatch.setattr(config, "OUTBOX_SIZE", 2)
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, 4096)
    sock.connect(server.address)
    client = LineClient(sock, timeout=5)
    client.read_banner()

    count = 1000
    sock.sendall(b"HELP\n" * count + b"LIST_GAMES\n")
    # stay away long enough for the outbox and socket buffers to fill up
    time.sleep(1.0)

    for _ in range(count):
        assert client.readline() == "COMMANDS:"
        assert [client.readline() for _ in HELP_LINES] == list(HELP_LINES)
    assert client.readline() == "GAMES"
    client.close()


def test_stalled_opponent_does_not_slow_down_shots(monkeypatch) -> None:
    monkeypatch.setattr(config, "OUTBOX_SIZE", 4)
    size = 30
    srv = TcpServer("127.0.0.1", 0, board_size=size, turn_rule="keep_on_hit")
    srv.start()
    host = LineClient(socket.create_connection(srv.address))
    srv_sock, cli_sock = socket.socketpair()
    srv_sock.setsockopt(socket.SOL_SOCKET, socket.SO_SNDBUF, 4096)
    srv.add_connection(srv_sock)
    guest = LineClient(cli_sock)
    try:
        host.read_banner()
        guest.read_banner()
        host.command("CREATE_PLAYER")
        guest_id = int(guest.command("CREATE_PLAYER").split()[1])
        game_id = int(host.command("CREATE_GAME").split()[1])
        assert guest.command(f"JOIN_GAME {game_id}") == f"JOINED {game_id}"
        for row in range(size):
            cells = " ".join(f"{row},{col}" for col in range(size))
            assert guest.command(f"PLACE_SHIP {cells}") == f"SHIP {row + 1} SIZE {size}"

        # the guest stops reading; every shot below notifies it
        slowest = 0.0
        for row in range(size - 1):
            for col in range(size):
                started = time.monotonic()
                reply = host.command(f"SHOOT {game_id} {row} {col}")
                slowest = max(slowest, time.monotonic() - started)
                assert reply in ("RESULT TOCADO", "RESULT HUNDIDO")

        assert slowest < 1.0
        handler = srv.handler_for(guest_id)
        assert handler is not None
        assert handler.outbox.dropped > 0
    finally:
        srv.stop()
        host.close()
        guest.close()
