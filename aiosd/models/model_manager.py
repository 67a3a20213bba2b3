"""Model Manager - SINGLE SOURCE OF TRUTH for model routing

This is the ONLY place that decides which model profile serves a request.
The dispatch router goes through this manager for every interpretation.

Responsibilities:
- Holds the registry of model profiles (built-in defaults + config overrides)
- Picks the best enabled profile for a task type (composite score)
- Enforces a cooldown between automatic switches
- Accumulates per-profile success/failure/latency statistics
- Persists registry state to models.json

All mutation happens under one re-entrant lock, so selection and stats
updates are linearizable per profile.
"""

import time
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Any, List, Optional, Tuple

from ..core import classifier
from ..core.storage import read_json, write_json_atomic


DEFAULT_SWITCH_COOLDOWN = 300
MIN_REQUESTS_FOR_RESCORE = 10


class ModelNotFoundError(ValueError):
    """Raised when a model name is not in the registry."""
    pass


class ModelDisabledError(ValueError):
    """Raised when a model exists but is disabled."""
    pass


@dataclass
class ModelProfile:
    """One configured backend model"""
    name: str
    description: str = ""
    api_url: str = ""
    max_tokens: int = 512
    temperature: float = 0.1
    timeout: int = 30
    task_types: Tuple[str, ...] = (classifier.GENERAL,)
    performance_score: float = 0.5
    success_count: int = 0
    failure_count: int = 0
    avg_response_time: float = 0.0
    priority: int = 5
    enabled: bool = True

    @property
    def total_requests(self) -> int:
        return self.success_count + self.failure_count

    @property
    def success_rate(self) -> float:
        total = self.total_requests
        return self.success_count / total if total > 0 else 0.0

    def supports(self, task_type: str) -> bool:
        return task_type in self.task_types

    def composite_score(self) -> float:
        """Selection score: performance, latency penalty, success blend, priority bonus"""
        score = self.performance_score

        # Faster is better
        if self.avg_response_time > 0:
            score -= self.avg_response_time / 10.0

        if self.total_requests > 0:
            score = score * 0.7 + self.success_rate * 0.3

        score += (10 - self.priority) * 0.01
        return score

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "performance_score": round(self.performance_score, 4),
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "avg_response_time": round(self.avg_response_time, 4),
            "priority": self.priority,
            "task_types": list(self.task_types),
        }

    def state_dict(self) -> Dict[str, Any]:
        """Fields persisted to models.json"""
        return {
            "name": self.name,
            "enabled": self.enabled,
            "priority": self.priority,
            "performance_score": self.performance_score,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "avg_response_time": self.avg_response_time,
        }


def default_profiles(api_url: str = "") -> List[ModelProfile]:
    """Built-in registry used when no configuration overrides it"""
    return [
        ModelProfile(
            name="codellama:7b-instruct",
            description="Code-focused model for development tasks",
            api_url=api_url,
            max_tokens=512,
            temperature=0.1,
            timeout=30,
            task_types=(classifier.DEV_OPS, classifier.FILE_OPS, classifier.SYSTEM_OPS),
            performance_score=0.85,
            priority=1,
        ),
        ModelProfile(
            name="phi3:mini",
            description="Fast general-purpose model",
            api_url=api_url,
            max_tokens=256,
            temperature=0.2,
            timeout=15,
            task_types=(classifier.GENERAL, classifier.FILE_OPS, classifier.PROCESS_OPS),
            performance_score=0.75,
            priority=2,
        ),
        ModelProfile(
            name="llama3.2:3b",
            description="Balanced model for mixed tasks",
            api_url=api_url,
            max_tokens=384,
            temperature=0.15,
            timeout=20,
            task_types=(classifier.GENERAL, classifier.NETWORK_OPS, classifier.DATA_OPS),
            performance_score=0.80,
            priority=3,
        ),
        ModelProfile(
            name="mistral:7b-instruct",
            description="High-quality model for complex tasks",
            api_url=api_url,
            max_tokens=1024,
            temperature=0.1,
            timeout=45,
            task_types=(classifier.SECURITY_OPS, classifier.DEV_OPS, classifier.SYSTEM_OPS),
            performance_score=0.90,
            priority=0,
        ),
    ]


class ModelManager:
    """Centralized model registry and selection"""

    def __init__(
        self,
        profiles: Optional[List[ModelProfile]] = None,
        config_file: Optional[Path] = None,
        switch_cooldown: int = DEFAULT_SWITCH_COOLDOWN,
        auto_switch: bool = True,
        initial_model: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._profiles: List[ModelProfile] = profiles if profiles is not None else default_profiles()
        if not self._profiles:
            raise ValueError("Model registry needs at least one profile")

        self.config_file = Path(config_file) if config_file else None
        self.switch_cooldown = switch_cooldown
        self.auto_switch_enabled = auto_switch
        self.learning_enabled = True
        self.last_switch = 0.0
        self._clock = clock
        self._lock = threading.RLock()
        self._current: ModelProfile = self._profiles[0]

        if self.config_file is not None:
            self.load_config()

        if initial_model:
            profile = self._find(initial_model)
            if profile is not None and profile.enabled:
                # Startup selection does not start the cooldown clock
                self._current = profile
            else:
                logging.warning(f"Configured model '{initial_model}' unavailable, using {self._current.name}")

        logging.info(f"ModelManager initialized with {len(self._profiles)} models, current={self._current.name}")

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _find(self, name: str) -> Optional[ModelProfile]:
        for profile in self._profiles:
            if profile.name == name:
                return profile
        return None

    def get_profile(self, name: str) -> Optional[ModelProfile]:
        with self._lock:
            return self._find(name)

    @property
    def current_model(self) -> ModelProfile:
        with self._lock:
            return self._current

    def names(self) -> List[str]:
        with self._lock:
            return [p.name for p in self._profiles]

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_best_model(self, task_type: str) -> ModelProfile:
        """Highest composite score among enabled profiles supporting task_type

        Falls back to the first registry entry.
        """
        with self._lock:
            best: Optional[ModelProfile] = None
            best_score = float("-inf")
            for profile in self._profiles:
                if not profile.enabled or not profile.supports(task_type):
                    continue
                score = profile.composite_score()
                if score > best_score:
                    best, best_score = profile, score
            return best if best is not None else self._profiles[0]

    def select_model(self, command: str) -> Tuple[ModelProfile, str, bool]:
        """Classify command and possibly switch the current profile

        Returns:
            (profile to use, task type, whether a switch happened)
        """
        task_type = classifier.classify_task_type(command)

        with self._lock:
            if not self.auto_switch_enabled:
                return self._current, task_type, False

            best = self.select_best_model(task_type)
            if best is self._current:
                return self._current, task_type, False

            now = self._clock()
            if now - self.last_switch < self.switch_cooldown:
                logging.debug(
                    f"Switch to {best.name} suppressed by cooldown "
                    f"({now - self.last_switch:.0f}s < {self.switch_cooldown}s)"
                )
                return self._current, task_type, False

            logging.info(f"Switching model from {self._current.name} to {best.name} for task type: {task_type}")
            self._current = best
            self.last_switch = now
            return self._current, task_type, True

    def set_model(self, name: str) -> ModelProfile:
        """Manual switch; always commits and restarts the cooldown clock

        Raises:
            ModelNotFoundError, ModelDisabledError
        """
        with self._lock:
            profile = self._find(name)
            if profile is None:
                raise ModelNotFoundError(f"Model not found: {name}")
            if not profile.enabled:
                raise ModelDisabledError(f"Model is disabled: {name}")
            self._current = profile
            self.last_switch = self._clock()
        logging.info(f"Manually switched to {name}")
        self.save_config()
        return profile

    def set_enabled(self, name: str, enabled: bool):
        with self._lock:
            profile = self._find(name)
            if profile is None:
                raise ModelNotFoundError(f"Model not found: {name}")
            profile.enabled = enabled
        logging.info(f"Model {name} {'enabled' if enabled else 'disabled'}")

    def set_auto_switch(self, enabled: bool):
        with self._lock:
            self.auto_switch_enabled = enabled
        logging.info(f"Auto-switching {'enabled' if enabled else 'disabled'}")

    def set_learning(self, enabled: bool):
        with self._lock:
            self.learning_enabled = enabled
        logging.info(f"Learning {'enabled' if enabled else 'disabled'}")

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def update_stats(self, name: str, success: bool, response_time: float):
        """Record one request outcome for a profile"""
        with self._lock:
            profile = self._find(name)
            if profile is None:
                logging.warning(f"Stats update for unknown model: {name}")
                return

            if success:
                profile.success_count += 1
            else:
                profile.failure_count += 1

            total = profile.total_requests
            if total == 1:
                profile.avg_response_time = response_time
            else:
                profile.avg_response_time = (profile.avg_response_time * (total - 1) + response_time) / total

            if self.learning_enabled and total >= MIN_REQUESTS_FOR_RESCORE:
                score = profile.success_rate * 0.8 + (1.0 - profile.avg_response_time / 30.0) * 0.2
                profile.performance_score = min(1.0, max(0.0, score))

    def list_models(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [p.to_dict() for p in self._profiles]

    def get_stats(self) -> Dict[str, Any]:
        """Registry summary for the model_stats action"""
        with self._lock:
            current = self._current
            return {
                "current_model": {
                    "name": current.name,
                    "description": current.description,
                    "performance_score": round(current.performance_score, 4),
                    "avg_response_time": round(current.avg_response_time, 4),
                },
                "auto_switch_enabled": self.auto_switch_enabled,
                "learning_enabled": self.learning_enabled,
                "last_switch": self.last_switch,
                "switch_cooldown": self.switch_cooldown,
                "models_summary": [
                    {
                        "name": p.name,
                        "enabled": p.enabled,
                        "performance_score": round(p.performance_score, 4),
                        "total_requests": p.total_requests,
                        "success_rate": round(p.success_rate, 4),
                    }
                    for p in self._profiles
                ],
            }

    # ------------------------------------------------------------------
    # Overrides & persistence
    # ------------------------------------------------------------------

    def apply_overrides(self, overrides: List[Dict[str, Any]]):
        """Apply {name, enabled?, priority?} entries from daemon config"""
        with self._lock:
            for entry in overrides:
                profile = self._find(str(entry.get("name", "")))
                if profile is None:
                    logging.warning(f"Override for unknown model ignored: {entry.get('name')}")
                    continue
                if "enabled" in entry:
                    profile.enabled = bool(entry["enabled"])
                if "priority" in entry:
                    try:
                        profile.priority = int(entry["priority"])
                    except (TypeError, ValueError):
                        logging.warning(f"Invalid priority for {profile.name}: {entry['priority']}")
            if not self._current.enabled:
                best = self.select_best_model(classifier.GENERAL)
                if not best.enabled:
                    best = next((p for p in self._profiles if p.enabled), best)
                if not best.enabled:
                    logging.warning("All models are disabled")
                self._current = best

    def load_config(self) -> bool:
        """Load persisted registry state; defaults stay on any failure"""
        if self.config_file is None or not self.config_file.exists():
            logging.info("No model config file found, using defaults")
            return False

        try:
            root = read_json(self.config_file)
        except (OSError, ValueError) as e:
            logging.error(f"Failed to parse model config {self.config_file}: {e}")
            return False

        if not isinstance(root, dict):
            logging.error(f"Model config {self.config_file} is not an object, ignoring")
            return False

        with self._lock:
            for item in root.get("models", []):
                if not isinstance(item, dict):
                    continue
                profile = self._find(str(item.get("name", "")))
                if profile is None:
                    continue
                try:
                    profile.enabled = bool(item.get("enabled", profile.enabled))
                    profile.priority = int(item.get("priority", profile.priority))
                    profile.performance_score = float(item.get("performance_score", profile.performance_score))
                    profile.success_count = int(item.get("success_count", profile.success_count))
                    profile.failure_count = int(item.get("failure_count", profile.failure_count))
                    profile.avg_response_time = float(item.get("avg_response_time", profile.avg_response_time))
                except (TypeError, ValueError) as e:
                    logging.warning(f"Bad persisted stats for {profile.name}: {e}")

            self.auto_switch_enabled = bool(root.get("auto_switch_enabled", self.auto_switch_enabled))
            self.learning_enabled = bool(root.get("learning_enabled", self.learning_enabled))
            try:
                self.switch_cooldown = int(root.get("switch_cooldown", self.switch_cooldown))
            except (TypeError, ValueError):
                pass

        logging.info(f"Model config loaded from {self.config_file}")
        return True

    def save_config(self) -> bool:
        if self.config_file is None:
            return False

        with self._lock:
            data = {
                "models": [p.state_dict() for p in self._profiles],
                "auto_switch_enabled": self.auto_switch_enabled,
                "learning_enabled": self.learning_enabled,
                "switch_cooldown": self.switch_cooldown,
            }

        try:
            write_json_atomic(self.config_file, data)
        except OSError as e:
            logging.error(f"Failed to save model config {self.config_file}: {e}")
            return False
        return True
