"""Shared fixtures: temp-dir config, mocked backend, ready-made session context"""

import time
import pytest
from unittest.mock import MagicMock

from aiosd.core.context import SessionContext
from aiosd.core.daemon import DaemonService
from aiosd.core.runtime import DaemonConfig
from aiosd.memory.feedback import FeedbackStore
from aiosd.models.model_manager import ModelManager, default_profiles


@pytest.fixture
def daemon_config(tmp_path):
    return DaemonConfig(
        socket_path=str(tmp_path / "ai-os.sock"),
        log_file=str(tmp_path / "ai-os.log"),
        models_file=str(tmp_path / "models.json"),
        feedback_file=str(tmp_path / "feedback.json"),
    )


@pytest.fixture
def backend():
    """Backend provider double; tests set interpret/chat behaviour"""
    mock = MagicMock()
    mock.check_available.return_value = True
    mock.list_models.return_value = ["codellama:7b-instruct", "phi3:mini"]
    return mock


@pytest.fixture
def service(daemon_config, backend, tmp_path):
    registry = ModelManager(profiles=default_profiles(), config_file=tmp_path / "models.json")
    feedback = FeedbackStore(tmp_path / "feedback.json")
    return DaemonService(daemon_config, registry=registry, feedback=feedback, backend=backend)


@pytest.fixture
def ctx(tmp_path):
    """Fresh context that will not trigger a system refresh"""
    context = SessionContext(pid=0)
    context.current_directory = str(tmp_path)
    context.username = "tester"
    context.hostname = "testhost"
    context.last_update = time.time()
    return context
