"""Minimal client for the daemon socket

One request line out, one response line back.

    with DaemonClient("/var/run/ai-os.sock") as client:
        client.request({"action": "status"})
"""

import json
import socket
from typing import Dict, Any, Optional


DEFAULT_TIMEOUT = 30.0


class DaemonClient:
    def __init__(self, socket_path: str = "/var/run/ai-os.sock", timeout: float = DEFAULT_TIMEOUT):
        self.socket_path = str(socket_path)
        self.timeout = timeout
        self._sock: Optional[socket.socket] = None
        self._buffer = b""

    def connect(self):
        if self._sock is not None:
            return
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self.timeout)
        try:
            sock.connect(self.socket_path)
        except OSError:
            sock.close()
            raise
        self._sock = sock

    def request(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Send one request and wait for its response

        Raises:
            ConnectionError: the daemon closed the connection before replying
        """
        self.connect()
        self._sock.sendall(json.dumps(payload).encode("utf-8") + b"\n")

        while b"\n" not in self._buffer:
            chunk = self._sock.recv(4096)
            if not chunk:
                raise ConnectionError("Daemon closed the connection")
            self._buffer += chunk

        line, self._buffer = self._buffer.split(b"\n", 1)
        return json.loads(line.decode("utf-8"))

    def close(self):
        if self._sock is not None:
            self._sock.close()
            self._sock = None
        self._buffer = b""

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
