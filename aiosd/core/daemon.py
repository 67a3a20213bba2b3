"""Daemon service object

Owns every piece of process-wide shared state (model registry, feedback
store, backend provider, safety gate, executor) and is injected into the
dispatch router. Nothing here is a module global.
"""

import logging
from pathlib import Path
from typing import Callable, Optional

from .runtime import DaemonConfig
from ..execution.executor import CommandExecutor
from ..execution.safety import SafetyGate
from ..memory.feedback import FeedbackStore
from ..models.model_manager import ModelManager, default_profiles
from ..models.providers.base import BaseLLMProvider
from ..models.providers.ollama import OllamaProvider


class DaemonService:
    """Shared services for all sessions"""

    def __init__(
        self,
        config: DaemonConfig,
        registry: Optional[ModelManager] = None,
        feedback: Optional[FeedbackStore] = None,
        backend: Optional[BaseLLMProvider] = None,
        gate: Optional[SafetyGate] = None,
        executor: Optional[CommandExecutor] = None,
    ):
        self.config = config

        if registry is None:
            registry = ModelManager(
                profiles=default_profiles(config.api_url),
                config_file=Path(config.models_file),
                switch_cooldown=config.switch_cooldown,
                auto_switch=config.auto_switch,
                initial_model=config.model,
            )
            registry.apply_overrides(config.model_overrides)
        self.registry = registry

        self.feedback = feedback if feedback is not None else FeedbackStore(
            Path(config.feedback_file), capacity=config.feedback_capacity
        )
        self.backend = backend if backend is not None else OllamaProvider(
            api_url=config.api_url, max_retries=config.max_retries
        )
        self.gate = gate if gate is not None else SafetyGate(enforce=config.gate_enforced)
        self.executor = executor if executor is not None else CommandExecutor()

        # Set by the server once the session table exists
        self.active_sessions: Callable[[], int] = lambda: 0

        logging.info(
            f"Daemon services ready: model={self.registry.current_model.name}, "
            f"safety={config.safety_mode}, bypass={config.safety_bypass}, "
            f"confirm={config.confirmation_required}"
        )

    def close(self):
        """Persist registry state and release the backend"""
        self.registry.save_config()
        close = getattr(self.backend, "close", None)
        if callable(close):
            close()
        logging.info("Daemon services closed")
