"""Unit Tests for the Ollama provider

HTTP is mocked at the requests.Session level; sleeps are captured instead
of slept so backoff delays can be asserted.
"""

import pytest
import requests
from unittest.mock import MagicMock

from aiosd.core.errors import BackendUnavailable, BackendTimeout, UnsafeCommand, UnclearCommand
from aiosd.models.model_manager import ModelProfile
from aiosd.models.providers.ollama import OllamaProvider


def make_provider(max_retries=3):
    sleeps = []
    provider = OllamaProvider("http://ollama.test/api/", max_retries=max_retries, sleep=sleeps.append)
    provider.session = MagicMock()
    return provider, sleeps


def reply(text):
    response = MagicMock()
    response.json.return_value = {"response": text}
    return response


PROFILE = ModelProfile(name="codellama:7b-instruct", max_tokens=512, temperature=0.1, timeout=30)


class TestInterpret:
    """Prompt building and response cleanup"""

    def test_request_payload(self):
        provider, _ = make_provider()
        provider.session.post.return_value = reply("ls -la\n")

        assert provider.interpret("list files", "User: a@b in /tmp", PROFILE) == "ls -la"

        args, kwargs = provider.session.post.call_args
        assert args[0] == "http://ollama.test/api/generate"
        payload = kwargs["json"]
        assert payload["model"] == "codellama:7b-instruct"
        assert payload["prompt"] == "list files"
        assert payload["stream"] is False
        assert payload["options"] == {"temperature": 0.1, "num_predict": 512}
        assert "User: a@b in /tmp" in payload["system"]
        assert kwargs["timeout"] == 30

    def test_profile_url_wins(self):
        provider, _ = make_provider()
        provider.session.post.return_value = reply("ls")
        profile = ModelProfile(name="remote", api_url="http://other:11434/api")
        provider.interpret("list", None, profile)
        assert provider.session.post.call_args[0][0] == "http://other:11434/api/generate"

    def test_code_fence_stripped(self):
        provider, _ = make_provider()
        provider.session.post.return_value = reply("```bash\ngit add . && git push\n```")
        assert provider.interpret("push all", None, PROFILE) == "git add . && git push"

    def test_unsafe_marker(self):
        provider, _ = make_provider()
        provider.session.post.return_value = reply("UNSAFE_COMMAND")
        with pytest.raises(UnsafeCommand):
            provider.interpret("wipe the disk", None, PROFILE)

    def test_unclear_marker(self):
        provider, _ = make_provider()
        provider.session.post.return_value = reply("UNCLEAR_COMMAND")
        with pytest.raises(UnclearCommand):
            provider.interpret("do the thing", None, PROFILE)

    def test_unsafe_marker_after_prose(self):
        """Marker on a later line still wins over the prose before it"""
        provider, _ = make_provider()
        provider.session.post.return_value = reply("I cannot do that.\nUNSAFE_COMMAND")
        with pytest.raises(UnsafeCommand):
            provider.interpret("wipe the disk", None, PROFILE)

    def test_unclear_marker_after_prose(self):
        provider, _ = make_provider()
        provider.session.post.return_value = reply("Hmm.\nUNCLEAR_COMMAND")
        with pytest.raises(UnclearCommand):
            provider.interpret("do the thing", None, PROFILE)

    def test_multi_line_command_kept(self):
        provider, _ = make_provider()
        provider.session.post.return_value = reply("cd /tmp/build\nmake clean\n")
        assert provider.interpret("clean the build", None, PROFILE) == "cd /tmp/build\nmake clean"

    def test_multi_line_fenced_command_kept(self):
        provider, _ = make_provider()
        provider.session.post.return_value = reply("```bash\ncd /tmp/build\nmake clean\n```")
        assert provider.interpret("clean the build", None, PROFILE) == "cd /tmp/build\nmake clean"

    def test_empty_reply_is_unclear(self):
        provider, _ = make_provider()
        provider.session.post.return_value = reply("   \n")
        with pytest.raises(UnclearCommand):
            provider.interpret("hmm", None, PROFILE)

    def test_missing_response_field(self):
        provider, _ = make_provider()
        response = MagicMock()
        response.json.return_value = {"error": "model not loaded"}
        provider.session.post.return_value = response
        with pytest.raises(BackendUnavailable):
            provider.interpret("list", None, PROFILE)


class TestChat:
    def test_reply_verbatim(self):
        provider, _ = make_provider()
        provider.session.post.return_value = reply("Hello!\nHow can I help?\n\n")
        assert provider.chat("hi", None, PROFILE) == "Hello!\nHow can I help?"


class TestRetries:
    """Exponential backoff and error mapping"""

    def test_recovers_after_connection_errors(self):
        provider, sleeps = make_provider()
        provider.session.post.side_effect = [
            requests.exceptions.ConnectionError("refused"),
            requests.exceptions.ConnectionError("refused"),
            reply("ls"),
        ]
        assert provider.interpret("list", None, PROFILE) == "ls"
        assert sleeps == [1.0, 2.0]

    def test_timeouts_exhaust_to_backend_timeout(self):
        provider, sleeps = make_provider()
        provider.session.post.side_effect = requests.exceptions.Timeout("slow")
        with pytest.raises(BackendTimeout):
            provider.interpret("list", None, PROFILE)
        assert provider.session.post.call_count == 3
        assert sleeps == [1.0, 2.0]

    def test_connection_errors_exhaust_to_unavailable(self):
        provider, _ = make_provider()
        provider.session.post.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(BackendUnavailable) as exc_info:
            provider.interpret("list", None, PROFILE)
        assert not isinstance(exc_info.value, BackendTimeout)

    def test_delay_capped(self):
        provider, sleeps = make_provider(max_retries=6)
        provider.session.post.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(BackendUnavailable):
            provider.interpret("list", None, PROFILE)
        assert sleeps == [1.0, 2.0, 4.0, 8.0, 8.0]

    def test_server_error_retried(self):
        provider, sleeps = make_provider()
        failing = MagicMock()
        failing.raise_for_status.side_effect = requests.exceptions.HTTPError(
            response=MagicMock(status_code=503)
        )
        provider.session.post.side_effect = [failing, reply("ls")]
        assert provider.interpret("list", None, PROFILE) == "ls"
        assert sleeps == [1.0]

    def test_client_error_not_retried(self):
        provider, sleeps = make_provider()
        failing = MagicMock()
        failing.raise_for_status.side_effect = requests.exceptions.HTTPError(
            response=MagicMock(status_code=404)
        )
        provider.session.post.return_value = failing
        with pytest.raises(BackendUnavailable):
            provider.interpret("list", None, PROFILE)
        assert provider.session.post.call_count == 1
        assert sleeps == []


class TestStatus:
    """check_available / list_models"""

    def test_available(self):
        provider, _ = make_provider()
        provider.session.get.return_value = MagicMock(status_code=200)
        assert provider.check_available()
        assert provider.session.get.call_args[0][0] == "http://ollama.test/api/tags"

    def test_unreachable(self):
        provider, _ = make_provider()
        provider.session.get.side_effect = requests.exceptions.ConnectionError("refused")
        assert not provider.check_available()
        assert provider.list_models() == []

    def test_list_models(self):
        provider, _ = make_provider()
        response = MagicMock()
        response.json.return_value = {"models": [{"name": "phi3:mini"}, {"name": "llama3.2:3b"}, {}]}
        provider.session.get.return_value = response
        assert provider.list_models() == ["phi3:mini", "llama3.2:3b"]
