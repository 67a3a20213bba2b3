"""Integration Tests for the socket server

Real Unix sockets and real session threads. Socket paths live in a short
temp directory because AF_UNIX paths are length-limited.
"""

import json
import shutil
import socket
import tempfile
import threading
import time
from pathlib import Path

import pytest
from unittest.mock import MagicMock, patch

from aiosd.client import DaemonClient
from aiosd.core.errors import ListenSetupFailure
from aiosd.core.server import DaemonServer
from aiosd.core.session import MAX_MESSAGE_BYTES


def wait_for(predicate, timeout=5.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return False


@pytest.fixture
def socket_dir():
    path = Path(tempfile.mkdtemp(prefix="aiosd-"))
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def running_server(service, socket_dir):
    """Server with two session slots, serving on a background thread"""
    server = DaemonServer(service, socket_path=str(socket_dir / "ai-os.sock"), max_clients=2)
    server.start()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    thread.join(5)
    server.close()


def raw_connect(server):
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.settimeout(5)
    sock.connect(str(server.socket_path))
    return sock


def read_line(sock):
    data = b""
    while not data.endswith(b"\n"):
        chunk = sock.recv(4096)
        if not chunk:
            break
        data += chunk
    return data


class TestSessions:
    """Request/response framing over a live connection"""

    def test_status_roundtrip(self, running_server):
        with DaemonClient(str(running_server.socket_path), timeout=10) as client:
            response = client.request({"action": "status"})
        assert response["status"] == "success"
        assert response["daemon_status"] == "running"
        assert response["active_sessions"] == 1

    def test_malformed_keeps_connection_open(self, running_server):
        sock = raw_connect(running_server)
        try:
            sock.sendall(b"{oops\n")
            assert json.loads(read_line(sock))["status"] == "error"

            sock.sendall(b'{"action": "classify", "command": "git status"}\n')
            assert json.loads(read_line(sock))["classification"] == "command"
        finally:
            sock.close()

    def test_two_requests_in_one_write(self, running_server):
        sock = raw_connect(running_server)
        try:
            sock.sendall(
                b'{"action": "classify", "command": "hello"}\n'
                b'{"action": "classify", "command": "git status"}\n'
            )
            buffer = b""
            while buffer.count(b"\n") < 2:
                buffer += sock.recv(4096)
            first, second = buffer.split(b"\n")[:2]
            assert json.loads(first)["classification"] == "chat"
            assert json.loads(second)["classification"] == "command"
        finally:
            sock.close()

    def test_unterminated_message_served_at_eof(self, running_server):
        sock = raw_connect(running_server)
        try:
            sock.sendall(b'{"action": "classify", "command": "hello"}')
            sock.shutdown(socket.SHUT_WR)
            assert json.loads(read_line(sock))["classification"] == "chat"
        finally:
            sock.close()

    def test_oversized_message_closes_session(self, running_server):
        sock = raw_connect(running_server)
        try:
            sock.sendall(b"x" * (MAX_MESSAGE_BYTES + 10))
            response = json.loads(read_line(sock))
            assert response["status"] == "error"
            assert "too large" in response["message"]
            assert wait_for(lambda: running_server.active_count() == 0)
        finally:
            sock.close()


class TestCapacity:
    """Bounded session table"""

    def test_third_client_rejected(self, running_server):
        path = str(running_server.socket_path)
        first = DaemonClient(path, timeout=10)
        second = DaemonClient(path, timeout=10)
        third = DaemonClient(path, timeout=10)
        try:
            assert first.request({"action": "status"})["status"] == "success"
            assert second.request({"action": "status"})["status"] == "success"

            with pytest.raises(OSError):
                third.request({"action": "status"})

            # existing sessions keep working
            response = first.request({"action": "status"})
            assert response["active_sessions"] == 2
            assert second.request({"action": "classify", "command": "hello"})["status"] == "success"
        finally:
            first.close()
            second.close()
            third.close()

    def test_slot_released_on_disconnect(self, running_server):
        path = str(running_server.socket_path)
        with DaemonClient(path, timeout=10) as client:
            client.request({"action": "status"})
        assert wait_for(lambda: running_server.active_count() == 0)


class TestLifecycle:
    """Socket setup and shutdown"""

    def test_stale_socket_replaced(self, service, socket_dir):
        path = socket_dir / "ai-os.sock"
        stale = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        stale.bind(str(path))
        stale.close()
        assert path.exists()

        server = DaemonServer(service, socket_path=str(path))
        server.start()
        try:
            assert server.running.is_set()
        finally:
            server.close()

    def test_live_socket_refused(self, running_server, service):
        other = DaemonServer(service, socket_path=str(running_server.socket_path))
        with pytest.raises(ListenSetupFailure):
            other.start()

    def test_bad_directory(self, service, socket_dir):
        blocker = socket_dir / "file"
        blocker.write_text("")
        server = DaemonServer(service, socket_path=str(blocker / "ai-os.sock"))
        with pytest.raises(ListenSetupFailure):
            server.start()

    def test_shutdown_unlinks_socket(self, service, socket_dir):
        server = DaemonServer(service, socket_path=str(socket_dir / "ai-os.sock"))
        server.start()
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()

        client = DaemonClient(str(server.socket_path), timeout=10)
        client.request({"action": "status"})

        server.shutdown()
        thread.join(5)
        assert not thread.is_alive()
        server.close()

        assert not server.socket_path.exists()
        assert server.active_count() == 0
        client.close()

    def test_close_joins_session_that_exits_early(self, service, socket_dir):
        """A session gone from the table after stop() is still joined"""
        server = DaemonServer(service, socket_path=str(socket_dir / "ai-os.sock"))
        quick, slow = MagicMock(), MagicMock()
        # quick releases its slot as soon as it is stopped
        with patch.object(server, "sessions", side_effect=[[quick, slow], [slow]]):
            server.close()

        quick.stop.assert_called_once()
        quick.join.assert_called_once()
        slow.join.assert_called_once()
