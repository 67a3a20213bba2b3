"""Unit Tests for configuration loading and the entry point"""

from unittest.mock import patch, MagicMock

from aiosd.core.errors import ListenSetupFailure
from aiosd.core.runtime import DaemonConfig, load_config
from aiosd import main as entry


class TestLoadConfig:
    """YAML config with fallback to defaults"""

    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_config(tmp_path / "absent.yaml")
        assert config == DaemonConfig()
        assert config.source is None

    def test_values_loaded(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "model: phi3:mini\n"
            "confirmation_required: false\n"
            "socket_path: /tmp/test.sock\n"
            "max_clients: 8\n"
            "backend:\n"
            "  api_url: http://gpu-box:11434/api/\n"
            "  max_retries: 5\n"
            "models:\n"
            "  - name: phi3:mini\n"
            "    priority: 0\n"
            "  - enabled: true\n"
        )
        config = load_config(path)

        assert config.model == "phi3:mini"
        assert config.confirmation_required is False
        assert config.safety_mode is True
        assert config.socket_path == "/tmp/test.sock"
        assert config.max_clients == 8
        assert config.api_url == "http://gpu-box:11434/api"
        assert config.max_retries == 5
        assert config.model_overrides == [{"name": "phi3:mini", "priority": 0}]
        assert config.source == str(path)

    def test_invalid_yaml_uses_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("model: [unclosed\n  - :\n")
        assert load_config(path) == DaemonConfig()

    def test_wrong_shape_uses_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")
        assert load_config(path) == DaemonConfig()

    def test_bad_value_uses_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("max_clients: lots\n")
        assert load_config(path).max_clients == 64

    def test_quoted_boolean_rejected(self, tmp_path):
        """A quoted "false" must not switch the safety gate off"""
        path = tmp_path / "config.yaml"
        path.write_text('safety_bypass: "false"\nmodel: phi3:mini\n')
        config = load_config(path)
        assert config == DaemonConfig()
        assert config.safety_bypass is False
        assert config.gate_enforced

    def test_quoted_override_flag_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("models:\n  - name: phi3:mini\n    enabled: \"no\"\n")
        assert load_config(path).model_overrides == []

    def test_env_var_path(self, tmp_path, monkeypatch):
        path = tmp_path / "env.yaml"
        path.write_text("model: llama3.2:3b\n")
        monkeypatch.setenv("AIOS_CONFIG", str(path))
        assert load_config().model == "llama3.2:3b"

    def test_gate_enforced(self):
        assert DaemonConfig().gate_enforced
        assert not DaemonConfig(safety_bypass=True).gate_enforced
        assert not DaemonConfig(safety_mode=False).gate_enforced


class TestEntryPoint:
    """main(): argument handling and startup failure"""

    def test_parse_args(self):
        args = entry.parse_args(["--config", "/etc/x.yaml", "--socket", "/tmp/s.sock", "--debug"])
        assert str(args.config) == "/etc/x.yaml"
        assert args.socket == "/tmp/s.sock"
        assert args.debug

    def test_listen_failure_exits_1(self, daemon_config):
        with patch.object(entry, "load_config", return_value=daemon_config), \
             patch.object(entry, "setup_logging"), \
             patch.object(entry, "DaemonService") as service_cls, \
             patch.object(entry, "DaemonServer") as server_cls, \
             patch.object(entry.signal, "signal"):
            server_cls.return_value.start.side_effect = ListenSetupFailure("address in use")
            assert entry.main(["--socket", "/tmp/other.sock"]) == 1

        assert daemon_config.socket_path == "/tmp/other.sock"
        service_cls.return_value.close.assert_called_once()
        server_cls.return_value.serve_forever.assert_not_called()

    def test_clean_run(self, daemon_config):
        server = MagicMock()
        with patch.object(entry, "load_config", return_value=daemon_config), \
             patch.object(entry, "setup_logging"), \
             patch.object(entry, "DaemonService"), \
             patch.object(entry, "DaemonServer", return_value=server), \
             patch.object(entry.signal, "signal"):
            assert entry.main([]) == 0

        server.serve_forever.assert_called_once()
        server.close.assert_called_once()
