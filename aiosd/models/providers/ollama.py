"""Ollama provider implementation (local models) - HTTP ONLY

Uses raw HTTP requests to the /generate endpoint.
NO import ollama - pure HTTP client.
"""

import requests
import logging
from typing import List

from .base import BaseLLMProvider, RetryableError
from ...core.errors import BackendUnavailable


STATUS_TIMEOUT = 5


class OllamaProvider(BaseLLMProvider):
    """Ollama local model provider - HTTP only"""

    def __init__(self, api_url: str = "http://localhost:11434/api", max_retries: int = 3, **kwargs):
        super().__init__(api_url, max_retries, **kwargs)
        self.session = requests.Session()

    def _complete(self, system_prompt: str, prompt: str, profile) -> str:
        """POST one /generate request for the given model profile"""
        base_url = (profile.api_url or self.api_url).rstrip('/')
        payload = {
            "model": profile.name,
            "system": system_prompt,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": profile.temperature,
                "num_predict": profile.max_tokens,
            },
        }

        try:
            response = self.session.post(
                f"{base_url}/generate",
                json=payload,
                timeout=profile.timeout,
            )
            response.raise_for_status()
            response_data = response.json()
        except requests.exceptions.Timeout as e:
            raise RetryableError(f"Ollama request timed out after {profile.timeout}s", timed_out=True) from e
        except requests.exceptions.ConnectionError as e:
            raise RetryableError(f"Cannot connect to Ollama at {base_url}. Is Ollama running?") from e
        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None
            logging.error(f"Ollama API error: {e}")
            if status_code is not None and status_code >= 500:
                raise RetryableError(f"Ollama server error {status_code}") from e
            raise BackendUnavailable(f"Ollama API call failed: {e}") from e
        except ValueError as e:
            raise BackendUnavailable(f"Invalid JSON from Ollama: {e}") from e

        if "response" not in response_data:
            raise BackendUnavailable("No response field in Ollama reply")

        return str(response_data["response"]).rstrip("\r\n")

    def check_available(self) -> bool:
        """Check if Ollama answers /tags"""
        try:
            response = self.session.get(f"{self.api_url}/tags", timeout=STATUS_TIMEOUT)
            return response.status_code == 200
        except requests.exceptions.RequestException:
            return False

    def list_models(self) -> List[str]:
        """Installed model names; empty if Ollama is unreachable"""
        try:
            response = self.session.get(f"{self.api_url}/tags", timeout=STATUS_TIMEOUT)
            response.raise_for_status()
            models = response.json().get("models", [])
        except (requests.exceptions.RequestException, ValueError) as e:
            logging.debug(f"Could not list Ollama models: {e}")
            return []
        return [m.get("name", "") for m in models if m.get("name")]

    def close(self):
        self.session.close()
