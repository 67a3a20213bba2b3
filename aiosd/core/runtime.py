"""Runtime Configuration Loader

Loads the daemon configuration from YAML.
Resolution order: explicit path > $AIOS_CONFIG > /etc/ai-os/config.yaml

A missing file is not an error - built-in defaults are used.
An unreadable or invalid file is logged and defaults are used.
"""

import os
import yaml
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, List, Optional

from .errors import ConfigLoadFailure


DEFAULT_CONFIG_PATH = Path("/etc/ai-os/config.yaml")
DEFAULT_SOCKET_PATH = "/var/run/ai-os.sock"
DEFAULT_LOG_FILE = "/var/log/ai-os.log"
DEFAULT_API_URL = "http://localhost:11434/api"
DEFAULT_MODEL = "codellama:7b-instruct"


@dataclass
class DaemonConfig:
    """Resolved daemon configuration"""
    model: str = DEFAULT_MODEL
    safety_mode: bool = True
    confirmation_required: bool = True
    safety_bypass: bool = False
    socket_path: str = DEFAULT_SOCKET_PATH
    log_file: str = DEFAULT_LOG_FILE
    api_url: str = DEFAULT_API_URL
    max_retries: int = 3
    max_clients: int = 64
    models_file: str = "/etc/ai-os/models.json"
    feedback_file: str = "/etc/ai-os/feedback.json"
    feedback_capacity: int = 1000
    switch_cooldown: int = 300
    auto_switch: bool = True
    model_overrides: List[Dict[str, Any]] = field(default_factory=list)
    source: Optional[str] = None  # path the config was loaded from, if any

    @property
    def gate_enforced(self) -> bool:
        """Blocklist is applied unless safety is off or explicitly bypassed"""
        return self.safety_mode and not self.safety_bypass

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "safety_mode": self.safety_mode,
            "confirmation_required": self.confirmation_required,
            "safety_bypass": self.safety_bypass,
            "socket_path": self.socket_path,
            "log_file": self.log_file,
            "backend": {"api_url": self.api_url, "max_retries": self.max_retries},
            "max_clients": self.max_clients,
            "models_file": self.models_file,
            "feedback_file": self.feedback_file,
            "feedback_capacity": self.feedback_capacity,
            "switch_cooldown": self.switch_cooldown,
            "auto_switch": self.auto_switch,
            "models": self.model_overrides,
        }


def _flag(raw: Dict[str, Any], key: str, default: bool) -> bool:
    """YAML booleans only; a quoted "false" is truthy and is refused"""
    value = raw.get(key, default)
    if not isinstance(value, bool):
        raise ConfigLoadFailure(f"'{key}' must be true or false, got {value!r}")
    return value


def _parse(raw: Dict[str, Any]) -> DaemonConfig:
    """Build a DaemonConfig from a parsed YAML mapping"""
    if not isinstance(raw, dict):
        raise ConfigLoadFailure(f"Top-level config must be a mapping, got {type(raw).__name__}")

    config = DaemonConfig()
    backend = raw.get("backend") or {}
    if not isinstance(backend, dict):
        raise ConfigLoadFailure("'backend' must be a mapping")

    try:
        config.model = str(raw.get("model", config.model))
        config.safety_mode = _flag(raw, "safety_mode", config.safety_mode)
        config.confirmation_required = _flag(raw, "confirmation_required", config.confirmation_required)
        config.safety_bypass = _flag(raw, "safety_bypass", config.safety_bypass)
        config.socket_path = str(raw.get("socket_path", config.socket_path))
        config.log_file = str(raw.get("log_file", config.log_file))
        config.api_url = str(backend.get("api_url", config.api_url)).rstrip('/')
        config.max_retries = int(backend.get("max_retries", config.max_retries))
        config.max_clients = int(raw.get("max_clients", config.max_clients))
        config.models_file = str(raw.get("models_file", config.models_file))
        config.feedback_file = str(raw.get("feedback_file", config.feedback_file))
        config.feedback_capacity = int(raw.get("feedback_capacity", config.feedback_capacity))
        config.switch_cooldown = int(raw.get("switch_cooldown", config.switch_cooldown))
        config.auto_switch = _flag(raw, "auto_switch", config.auto_switch)
    except (TypeError, ValueError) as e:
        raise ConfigLoadFailure(f"Invalid config value: {e}")

    overrides = raw.get("models") or []
    if not isinstance(overrides, list):
        raise ConfigLoadFailure("'models' must be a list")
    config.model_overrides = [m for m in overrides if isinstance(m, dict) and m.get("name")]
    for override in config.model_overrides:
        if "enabled" in override:
            _flag(override, "enabled", True)

    if config.max_clients < 1:
        raise ConfigLoadFailure("max_clients must be >= 1")
    if config.feedback_capacity < 1:
        raise ConfigLoadFailure("feedback_capacity must be >= 1")

    return config


def load_config(config_path: Optional[Path] = None) -> DaemonConfig:
    """Load daemon configuration

    Returns:
        DaemonConfig - never raises; falls back to defaults on any failure.
    """
    if config_path is None:
        env_path = os.environ.get("AIOS_CONFIG")
        config_path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH
    config_path = Path(config_path)

    if not config_path.exists():
        logging.warning(f"No config file found at {config_path}, using defaults")
        return DaemonConfig()

    try:
        with open(config_path, 'r') as f:
            raw = yaml.safe_load(f) or {}
        config = _parse(raw)
    except yaml.YAMLError as e:
        logging.error(f"Invalid YAML in {config_path}: {e}, using defaults")
        return DaemonConfig()
    except ConfigLoadFailure as e:
        logging.error(f"Config load failure for {config_path}: {e}, using defaults")
        return DaemonConfig()
    except OSError as e:
        logging.error(f"Could not read config {config_path}: {e}, using defaults")
        return DaemonConfig()

    config.source = str(config_path)
    logging.info(
        f"Configuration loaded: model={config.model}, safety={config.safety_mode}, "
        f"confirm={config.confirmation_required}"
    )
    return config
