"""Session context management - strict, no AI here

A SessionContext is a point-in-time snapshot of the environment of the
process on the other end of a connection. It is used as prompt material for
the backend and returned verbatim by the get_context action.

INVARIANTS:
1. Creation and refresh never raise - every sub-source is best-effort
2. Command history holds at most MAX_HISTORY entries, oldest evicted first
3. A snapshot older than REFRESH_INTERVAL seconds is stale
"""

import os
import pwd
import socket
import logging
import subprocess
import time
from collections import deque
from typing import Dict, Any, List, Optional

import psutil


MAX_HISTORY = 50
REFRESH_INTERVAL = 5.0

MAX_PROCESSES = 50
MAX_ENV_VALUE = 256
GIT_TIMEOUT = 2.0

# Only these variables are captured from the peer environment
ENV_KEYS = (
    "PATH", "HOME", "SHELL", "USER", "LOGNAME", "LANG", "TERM",
    "PWD", "EDITOR", "VIRTUAL_ENV", "CONDA_DEFAULT_ENV", "KUBECONFIG",
)


class SessionContext:
    """Per-session environment snapshot

    Owned by exactly one session thread; no locking needed.
    """

    def __init__(self, pid: int = 0, uid: Optional[int] = None):
        self.process_id = pid
        self.user_id = os.getuid() if uid is None else uid
        self.current_directory = "/"
        self.username = "unknown"
        self.shell = "/bin/bash"
        self.hostname = "localhost"
        self.git_branch = ""
        self.git_status = ""
        self.recent_commands: deque = deque(maxlen=MAX_HISTORY)
        self.env_vars: Dict[str, str] = {}
        self.running_processes: List[str] = []
        self.open_ports: List[int] = []
        self.disk_usage: Dict[str, Any] = {}
        self.last_update = 0.0

    @classmethod
    def create(cls, pid: int = 0, uid: Optional[int] = None) -> "SessionContext":
        """Build a fully populated context for a peer process"""
        ctx = cls(pid, uid)
        ctx.refresh()
        return ctx

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def needs_refresh(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return now - self.last_update > REFRESH_INTERVAL

    def refresh(self):
        """Re-populate every field. History is kept."""
        self._read_directory()
        self._read_user()
        self._read_hostname()
        self._read_git()
        self._read_environment()
        self._read_processes()
        self._read_ports()
        self._read_disk()
        self.last_update = time.time()

    def _peer(self) -> Optional[psutil.Process]:
        if self.process_id <= 0:
            return None
        try:
            return psutil.Process(self.process_id)
        except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
            logging.debug(f"Peer process {self.process_id} not inspectable: {e}")
            return None

    def _read_directory(self):
        peer = self._peer()
        try:
            self.current_directory = peer.cwd() if peer else os.getcwd()
        except (psutil.Error, OSError) as e:
            logging.debug(f"Working directory unavailable: {e}")
            self.current_directory = "/"

    def _read_user(self):
        try:
            entry = pwd.getpwuid(self.user_id)
            self.username = entry.pw_name
            self.shell = entry.pw_shell or "/bin/bash"
        except KeyError:
            self.username = "unknown"
            self.shell = "/bin/bash"

    def _read_hostname(self):
        try:
            self.hostname = socket.gethostname() or "localhost"
        except OSError:
            self.hostname = "localhost"

    def _git(self, *args: str) -> str:
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=self.current_directory,
                capture_output=True,
                text=True,
                timeout=GIT_TIMEOUT,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logging.debug(f"git {' '.join(args)} failed: {e}")
            return ""
        if result.returncode != 0:
            return ""
        return result.stdout.strip()

    def _read_git(self):
        self.git_branch = self._git("rev-parse", "--abbrev-ref", "HEAD")
        if not self.git_branch:
            self.git_status = ""
            return
        changes = [line for line in self._git("status", "--porcelain").splitlines() if line.strip()]
        self.git_status = f"{len(changes)} changed file(s)" if changes else "clean"

    def _read_environment(self):
        peer = self._peer()
        try:
            source = peer.environ() if peer else dict(os.environ)
        except (psutil.Error, OSError) as e:
            logging.debug(f"Environment unavailable: {e}")
            source = {}
        self.env_vars = {
            key: source[key][:MAX_ENV_VALUE]
            for key in ENV_KEYS
            if key in source
        }

    def _read_processes(self):
        processes = []
        try:
            for proc in psutil.process_iter(["pid", "name", "username"]):
                info = proc.info
                if info.get("username") not in (None, self.username):
                    continue
                processes.append(f"{info['pid']} {info.get('name') or '?'}")
                if len(processes) >= MAX_PROCESSES:
                    break
        except (psutil.Error, OSError) as e:
            logging.debug(f"Process list unavailable: {e}")
        self.running_processes = processes

    def _read_ports(self):
        try:
            connections = psutil.net_connections(kind="inet")
        except (psutil.Error, OSError) as e:
            logging.debug(f"Listening ports unavailable: {e}")
            self.open_ports = []
            return
        ports = {
            conn.laddr.port
            for conn in connections
            if conn.status == psutil.CONN_LISTEN and conn.laddr
        }
        self.open_ports = sorted(ports)

    def _read_disk(self):
        try:
            usage = psutil.disk_usage(self.current_directory)
        except (psutil.Error, OSError) as e:
            logging.debug(f"Disk usage unavailable: {e}")
            self.disk_usage = {}
            return
        self.disk_usage = {
            "path": self.current_directory,
            "total_bytes": usage.total,
            "used_bytes": usage.used,
            "free_bytes": usage.free,
            "percent_used": usage.percent,
        }

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def add_command(self, command: str):
        """Append to history; deque evicts the oldest entry on overflow"""
        if command:
            self.recent_commands.append(command)

    @property
    def command_count(self) -> int:
        return len(self.recent_commands)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def summarize(self) -> str:
        """Short prompt context: user@host in directory"""
        return f"User: {self.username}@{self.hostname} in {self.current_directory}"

    def to_dict(self) -> Dict[str, Any]:
        """Export context as dictionary"""
        return {
            "current_directory": self.current_directory,
            "username": self.username,
            "shell": self.shell,
            "hostname": self.hostname,
            "git_branch": self.git_branch,
            "git_status": self.git_status,
            "recent_commands": list(self.recent_commands),
            "command_count": self.command_count,
            "process_id": self.process_id,
            "user_id": self.user_id,
            "env_vars": dict(self.env_vars),
            "running_processes": list(self.running_processes),
            "open_ports": list(self.open_ports),
            "disk_usage": dict(self.disk_usage),
            "last_update": self.last_update,
        }
