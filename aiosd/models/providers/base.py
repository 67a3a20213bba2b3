"""Base LLM provider interface - ALL backends must implement this

Providers turn (prompt, context) into text. They own transport concerns:
timeouts, retries with exponential backoff, response cleanup.

CRITICAL RULES:
1. interpret() returns a single shell command line, or raises
2. Sentinel markers from the model become UnsafeCommand / UnclearCommand
3. Transport failures become BackendUnavailable / BackendTimeout
"""

import time
import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, TypeVar

from ...core.errors import BackendUnavailable, BackendTimeout, UnsafeCommand, UnclearCommand


UNSAFE_MARKER = "UNSAFE_COMMAND"
UNCLEAR_MARKER = "UNCLEAR_COMMAND"

BASE_DELAY = 1.0
MAX_DELAY = 8.0

T = TypeVar("T")


class RetryableError(Exception):
    """Transport failure worth another attempt"""

    def __init__(self, message: str, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out


class BaseLLMProvider(ABC):
    """Abstract base class for all LLM backends"""

    def __init__(self, api_url: str, max_retries: int = 3,
                 sleep: Callable[[float], None] = time.sleep):
        self.api_url = api_url.rstrip('/')
        self.max_retries = max(1, max_retries)
        self._sleep = sleep

    @abstractmethod
    def _complete(self, system_prompt: str, prompt: str, profile) -> str:
        """Single backend round-trip

        Raises:
            RetryableError: transient transport failure
            BackendUnavailable: permanent failure, do not retry
        """
        raise NotImplementedError

    @abstractmethod
    def check_available(self) -> bool:
        """True if the backend answers its health endpoint"""
        raise NotImplementedError

    @abstractmethod
    def list_models(self) -> List[str]:
        """Names of models installed on the backend"""
        raise NotImplementedError

    # ------------------------------------------------------------------

    def interpret(self, command: str, context: Optional[str], profile) -> str:
        """Translate natural language into one shell command

        Raises:
            UnsafeCommand, UnclearCommand, BackendUnavailable, BackendTimeout
        """
        raw = self._with_retries(
            lambda: self._complete(self._build_system_prompt(context), command, profile)
        ) or ""

        # Markers count anywhere in the reply, not just the first line
        if UNSAFE_MARKER in raw:
            raise UnsafeCommand("Command marked as unsafe by AI")
        if UNCLEAR_MARKER in raw:
            raise UnclearCommand("Command unclear, please rephrase")

        text = self._clean_response(raw)
        if not text:
            raise UnclearCommand("Empty interpretation from backend")
        return text

    def chat(self, message: str, context: Optional[str], profile) -> str:
        """Conversational reply, returned verbatim (trailing newlines stripped)"""
        raw = self._with_retries(
            lambda: self._complete(self._build_chat_prompt(context), message, profile)
        )
        return raw.rstrip("\r\n")

    def _with_retries(self, call: Callable[[], T]) -> T:
        """Run call with exponential backoff on RetryableError"""
        last_error: Optional[RetryableError] = None

        for attempt in range(self.max_retries):
            try:
                return call()
            except RetryableError as e:
                last_error = e
                logging.warning(f"Backend attempt {attempt + 1}/{self.max_retries} failed: {e}")
                if attempt < self.max_retries - 1:
                    delay = min(BASE_DELAY * (2 ** attempt), MAX_DELAY)
                    logging.info(f"Retrying in {delay:.1f} seconds...")
                    self._sleep(delay)

        if last_error is not None and last_error.timed_out:
            raise BackendTimeout(f"Backend timed out after {self.max_retries} attempts: {last_error}")
        raise BackendUnavailable(f"Backend unavailable after {self.max_retries} attempts: {last_error}")

    # ------------------------------------------------------------------

    def _clean_response(self, raw: str) -> str:
        """Strip markdown fences; a multi-line command is kept whole"""
        text = (raw or "").strip()
        if "```" in text:
            parts = text.split("```")
            if len(parts) >= 3:
                block = parts[1]
                # Drop a language tag such as ```bash
                first_newline = block.find("\n")
                if first_newline != -1 and " " not in block[:first_newline].strip():
                    block = block[first_newline + 1:]
                text = block.strip()
        return text.rstrip("\r\n")

    def _build_system_prompt(self, context: Optional[str]) -> str:
        return (
            "You are an AI assistant that translates natural language commands into Linux shell commands. "
            "Rules:\n"
            "1. Only output the shell command, no explanations\n"
            f"2. If unsafe, output '{UNSAFE_MARKER}'\n"
            f"3. If unclear, output '{UNCLEAR_MARKER}'\n"
            f"4. Consider the context: {context or 'Current directory, standard user permissions'}\n"
            "5. Be precise and safe\n\n"
            "Examples:\n"
            "Input: 'git push and add all files'\n"
            "Output: git add . && git push\n\n"
            "Input: 'install python package numpy'\n"
            "Output: pip install numpy\n\n"
            "Input: 'list files in current directory'\n"
            "Output: ls -la\n\n"
        )

    def _build_chat_prompt(self, context: Optional[str]) -> str:
        return (
            "You are a helpful assistant running inside a Linux terminal. "
            "Answer conversationally and concisely. Do not run commands.\n"
            f"Context: {context or 'unknown'}\n"
        )
