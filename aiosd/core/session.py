"""Session - one client connection's lifecycle

State machine: CONNECTING -> ACTIVE -> CLOSED

Wire framing: one JSON object per line, UTF-8, in both directions.
A session thread owns its socket and its SessionContext exclusively.
"""

import json
import time
import socket
import logging
import threading
from enum import Enum
from typing import Callable, Dict, Any, Optional

from .context import SessionContext
from .router import DispatchRouter, error_response


MAX_MESSAGE_BYTES = 64 * 1024
RECV_CHUNK = 4096
RECV_TIMEOUT = 1.0


class SessionState(Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSED = "closed"


class Session:
    """Receive loop for one connection"""

    def __init__(
        self,
        conn: socket.socket,
        router: DispatchRouter,
        running: threading.Event,
        pid: int = 0,
        uid: Optional[int] = None,
        on_close: Optional[Callable[["Session"], None]] = None,
        recv_timeout: float = RECV_TIMEOUT,
    ):
        self.conn = conn
        self.router = router
        self.running = running
        self.client_pid = pid
        self.client_uid = uid
        self.on_close = on_close
        self.recv_timeout = recv_timeout

        self.state = SessionState.CONNECTING
        self.active = True
        self.context: Optional[SessionContext] = None
        self.last_activity = time.time()
        self.thread: Optional[threading.Thread] = None
        self._buffer = b""

    def start(self):
        self.thread = threading.Thread(
            target=self.run,
            name=f"session-{self.client_pid}",
            daemon=True,
        )
        self.thread.start()

    def stop(self):
        """Ask the loop to exit and unblock a pending receive"""
        self.active = False
        try:
            self.conn.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

    def join(self, timeout: Optional[float] = None):
        if self.thread is not None and self.thread is not threading.current_thread():
            self.thread.join(timeout)

    # ------------------------------------------------------------------

    def run(self):
        logging.info(f"Client connected: PID {self.client_pid}, UID {self.client_uid}")
        try:
            self.context = SessionContext.create(self.client_pid, self.client_uid)
            self.state = SessionState.ACTIVE
            self._loop()
        except Exception as e:
            logging.exception(f"Session for PID {self.client_pid} failed: {e}")
        finally:
            self._close()

    def _loop(self):
        self.conn.settimeout(self.recv_timeout)

        while self.active and self.running.is_set():
            try:
                chunk = self.conn.recv(RECV_CHUNK)
            except socket.timeout:
                continue
            except OSError as e:
                if self.active:
                    logging.info(f"Receive error for PID {self.client_pid}: {e}")
                return

            if not chunk:
                # Peer closed; serve a final unterminated message if present
                if self._buffer.strip():
                    self._serve(self._buffer)
                return

            self._buffer += chunk
            while b"\n" in self._buffer:
                line, self._buffer = self._buffer.split(b"\n", 1)
                if line.strip() and not self._serve(line):
                    return

            if len(self._buffer) > MAX_MESSAGE_BYTES:
                logging.warning(f"Message from PID {self.client_pid} exceeds {MAX_MESSAGE_BYTES} bytes, closing")
                self._send(error_response(f"Request too large: exceeds {MAX_MESSAGE_BYTES} byte limit"))
                return

    def _serve(self, message: bytes) -> bool:
        """Dispatch one message and send the reply. False ends the session."""
        if len(message) > MAX_MESSAGE_BYTES:
            logging.warning(f"Message from PID {self.client_pid} exceeds {MAX_MESSAGE_BYTES} bytes, closing")
            self._send(error_response(f"Request too large: exceeds {MAX_MESSAGE_BYTES} byte limit"))
            return False

        self.last_activity = time.time()
        response = self.router.handle_message(message, self.context)
        return self._send(response)

    def _send(self, response: Dict[str, Any]) -> bool:
        try:
            self.conn.sendall(json.dumps(response).encode("utf-8") + b"\n")
            return True
        except OSError as e:
            logging.info(f"Send failed for PID {self.client_pid}: {e}")
            return False

    def _close(self):
        self.state = SessionState.CLOSED
        self.active = False
        try:
            self.conn.close()
        except OSError:
            pass
        self.context = None
        logging.info(f"Client disconnected: PID {self.client_pid}")
        if self.on_close is not None:
            self.on_close(self)
