"""Connection Acceptor - the daemon's outer loop

Binds the Unix socket, accepts connections, and hands each one to a
Session thread as long as a slot is free in the fixed-size session table.

Shutdown order:
1. running flag cleared (signal handler or shutdown())
2. accept loop exits within one accept timeout
3. every session is stopped and joined
4. listening socket closed and unlinked
"""

import os
import errno
import socket
import struct
import logging
import threading
from pathlib import Path
from typing import List, Optional, Tuple

from .daemon import DaemonService
from .errors import CapacityExceeded, ListenSetupFailure
from .router import DispatchRouter
from .session import Session


MAX_CLIENTS = 64
LISTEN_BACKLOG = 10
ACCEPT_TIMEOUT = 1.0
SOCKET_MODE = 0o666


def peer_credentials(conn: socket.socket) -> Tuple[int, Optional[int]]:
    """(pid, uid) of the connected peer; (0, None) when unavailable"""
    if not hasattr(socket, "SO_PEERCRED"):
        return 0, None
    try:
        creds = conn.getsockopt(socket.SOL_SOCKET, socket.SO_PEERCRED, struct.calcsize("3i"))
        pid, uid, _gid = struct.unpack("3i", creds)
        return pid, uid
    except OSError as e:
        logging.debug(f"SO_PEERCRED unavailable: {e}")
        return 0, None


class DaemonServer:
    """Unix-socket acceptor with a bounded session table"""

    def __init__(
        self,
        service: DaemonService,
        router: Optional[DispatchRouter] = None,
        socket_path: Optional[str] = None,
        max_clients: Optional[int] = None,
    ):
        self.service = service
        self.router = router if router is not None else DispatchRouter(service)
        self.socket_path = Path(socket_path or service.config.socket_path)
        self.max_clients = max_clients or service.config.max_clients or MAX_CLIENTS

        self.running = threading.Event()
        self._socket: Optional[socket.socket] = None
        self._slots: List[Optional[Session]] = [None] * self.max_clients
        self._lock = threading.Lock()

        service.active_sessions = self.active_count

    # ------------------------------------------------------------------
    # Socket setup
    # ------------------------------------------------------------------

    def _create_server_socket(self) -> socket.socket:
        """Bind and listen; a live daemon on the same path is an error

        Raises:
            ListenSetupFailure
        """
        try:
            self.socket_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ListenSetupFailure(f"Cannot create socket directory {self.socket_path.parent}: {e}")

        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            try:
                sock.bind(str(self.socket_path))
            except OSError as e:
                if e.errno != errno.EADDRINUSE:
                    raise
                if self._socket_in_use():
                    raise ListenSetupFailure(f"Another daemon is already listening on {self.socket_path}")
                # Stale socket file - remove and retry once
                self.socket_path.unlink()
                sock.bind(str(self.socket_path))

            try:
                os.chmod(self.socket_path, SOCKET_MODE)
            except OSError as e:
                logging.warning(f"Failed to set socket permissions: {e}")

            sock.listen(LISTEN_BACKLOG)
            sock.settimeout(ACCEPT_TIMEOUT)
        except ListenSetupFailure:
            sock.close()
            raise
        except OSError as e:
            sock.close()
            raise ListenSetupFailure(f"Failed to bind/listen on {self.socket_path}: {e}")

        logging.info(f"Listening on {self.socket_path}")
        return sock

    def _socket_in_use(self) -> bool:
        probe = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            probe.connect(str(self.socket_path))
            return True
        except (ConnectionRefusedError, FileNotFoundError):
            return False
        except OSError:
            return False
        finally:
            probe.close()

    def start(self):
        """Create the listening socket. Raises ListenSetupFailure."""
        self._socket = self._create_server_socket()
        self.running.set()
        logging.info("AI-OS Daemon initialized successfully")

    # ------------------------------------------------------------------
    # Session table
    # ------------------------------------------------------------------

    def _reserve_slot(self, session: Session) -> int:
        with self._lock:
            for index, occupant in enumerate(self._slots):
                if occupant is None:
                    self._slots[index] = session
                    return index
        raise CapacityExceeded(f"All {self.max_clients} session slots in use")

    def _release_slot(self, session: Session):
        with self._lock:
            for index, occupant in enumerate(self._slots):
                if occupant is session:
                    self._slots[index] = None
                    return

    def active_count(self) -> int:
        with self._lock:
            return sum(1 for s in self._slots if s is not None)

    def sessions(self) -> List[Session]:
        with self._lock:
            return [s for s in self._slots if s is not None]

    # ------------------------------------------------------------------
    # Accept loop
    # ------------------------------------------------------------------

    def accept_one(self) -> Optional[Session]:
        """Accept at most one connection. Returns the new session, if any."""
        if self._socket is None:
            return None
        try:
            conn, _ = self._socket.accept()
        except socket.timeout:
            return None
        except OSError as e:
            if self.running.is_set() and e.errno != errno.EINTR:
                logging.error(f"Failed to accept client connection: {e}")
            return None

        pid, uid = peer_credentials(conn)
        session = Session(
            conn,
            self.router,
            self.running,
            pid=pid,
            uid=uid,
            on_close=self._release_slot,
        )

        try:
            self._reserve_slot(session)
        except CapacityExceeded as e:
            logging.warning(f"Too many clients, rejecting connection from PID {pid}: {e}")
            conn.close()
            return None

        try:
            session.start()
        except RuntimeError as e:
            logging.error(f"Failed to create client thread: {e}")
            self._release_slot(session)
            conn.close()
            return None
        return session

    def serve_forever(self):
        logging.info("Starting main daemon loop")
        while self.running.is_set():
            self.accept_one()

    def shutdown(self):
        """Signal-safe: only clears the running flag"""
        self.running.clear()

    def close(self):
        """Stop and join every session, then release the socket"""
        logging.info("Cleaning up AI-OS Daemon")
        self.running.clear()

        # One snapshot: a session that exits after stop() drops out of the table
        sessions = self.sessions()
        for session in sessions:
            session.stop()
        for session in sessions:
            session.join()

        if self._socket is not None:
            try:
                self._socket.close()
            except OSError as e:
                logging.warning(f"Failed to close server socket: {e}")
            self._socket = None

        try:
            self.socket_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logging.warning(f"Failed to unlink socket file: {e}")

        self.service.close()
        logging.info("AI-OS Daemon cleanup complete")
