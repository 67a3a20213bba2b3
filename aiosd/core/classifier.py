"""Deterministic request classification - NO AI here

Two classifiers:
- classify_task_type(): picks the task-type tag used for model selection
- classify_input(): decides whether free text is a shell command or chat

Both use plain lower-cased substring matching. "ls" matches inside "tools";
that is intentional and keeps behaviour identical for every caller.
"""

from typing import Dict, Tuple


FILE_OPS = "file_ops"
PROCESS_OPS = "process_ops"
NETWORK_OPS = "network_ops"
SYSTEM_OPS = "system_ops"
DEV_OPS = "dev_ops"
DATA_OPS = "data_ops"
SECURITY_OPS = "security_ops"
GENERAL = "general"

# Declaration order is the tie-break order
TASK_TYPES: Tuple[str, ...] = (
    FILE_OPS,
    PROCESS_OPS,
    NETWORK_OPS,
    SYSTEM_OPS,
    DEV_OPS,
    DATA_OPS,
    SECURITY_OPS,
    GENERAL,
)

TASK_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    FILE_OPS: (
        "file", "document", "folder", "directory", "path",
        "ls", "find", "grep", "cat", "head", "tail",
        "cp", "mv", "rm", "mkdir", "touch",
    ),
    PROCESS_OPS: (
        "process", "ps", "kill", "pkill", "pgrep", "top", "htop",
        "systemctl", "service", "daemon",
    ),
    NETWORK_OPS: (
        "network", "connection", "port", "socket", "http", "ftp",
        "ssh", "telnet", "ping", "curl", "wget",
    ),
    SYSTEM_OPS: (
        "system", "hardware", "cpu", "memory", "ram", "disk", "storage",
        "performance", "monitor", "resource",
    ),
    DEV_OPS: (
        "code", "coding", "development", "programming", "compile", "build",
        "deploy", "git", "github", "repository",
    ),
    DATA_OPS: (
        "data", "database", "db", "sql", "query", "search", "filter",
        "sort", "export", "import",
    ),
    SECURITY_OPS: (
        "security", "permission", "access", "authentication", "authorization",
        "login", "user", "group", "sudo",
    ),
}

# Command action words - checked first
COMMAND_WORDS: Tuple[str, ...] = (
    "add", "commit", "push", "pull", "clone", "init", "status", "log", "branch", "checkout",
    "merge", "rebase", "stash", "reset", "revert", "tag", "fetch", "remote", "config",
    "list", "show", "find", "search", "grep", "cat", "head", "tail", "less", "more",
    "create", "delete", "remove", "rm", "mkdir", "touch", "cp", "copy", "mv", "move",
    "install", "uninstall", "update", "upgrade", "download", "wget", "curl", "scp", "rsync",
    "run", "start", "stop", "restart", "kill", "pkill", "killall", "ps", "top", "htop",
    "check", "test", "verify", "validate", "get", "set", "export", "import", "source",
    "open", "close", "edit", "view", "read", "write", "save", "load", "backup", "restore",
    "build", "compile", "make", "cmake", "configure", "package",
    "mount", "umount", "format", "partition", "fsck", "dd", "tar", "zip", "unzip",
    "chmod", "chown", "chgrp", "umask", "sudo", "su", "whoami", "id", "groups",
    "ping", "traceroute", "netstat", "ss", "iptables", "firewall", "ufw",
    "docker", "podman", "kubectl", "helm", "terraform", "ansible",
    "python", "pip", "node", "npm", "yarn", "cargo", "go", "java", "maven", "gradle",
)

COMMAND = "command"
CHAT = "chat"


def score_task_types(text: str) -> Dict[str, int]:
    """Count keyword hits per task type"""
    lowered = (text or "").lower()
    return {
        task_type: sum(1 for keyword in keywords if keyword in lowered)
        for task_type, keywords in TASK_KEYWORDS.items()
    }


def classify_task_type(text: str) -> str:
    """Highest score wins, earlier declaration wins ties, GENERAL if nothing hits"""
    scores = score_task_types(text)
    best, best_score = GENERAL, 0
    for task_type in TASK_TYPES:
        score = scores.get(task_type, 0)
        if score > best_score:
            best, best_score = task_type, score
    return best


def classify_input(text: str) -> str:
    """Return COMMAND if any action word appears, CHAT otherwise"""
    lowered = (text or "").lower()
    for word in COMMAND_WORDS:
        if word in lowered:
            return COMMAND
    return CHAT
