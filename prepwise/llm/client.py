"""
LLM Client wrapper for a llama.cpp-style REST completion API.
Acts as the text-generation provider for feedback reports.
"""
import time
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from prepwise.utils.config import config
from prepwise.utils.errors import GenerationDegraded

logger = logging.getLogger(__name__)

# Server-side conditions worth another attempt; other 4xx answers are final
RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})


@dataclass
class Completion:
    """Outcome of a non-raising completion request."""
    text: str = ""
    tokens_predicted: int = 0
    error: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.error is None and bool(self.text.strip())


class LLMClient:
    """
    Client for the /completion endpoint.
    Retries transport errors and retryable HTTP statuses with exponential backoff.
    """

    def __init__(self, base_url: Optional[str] = None, session: Optional[requests.Session] = None):
        self.base_url = base_url or config.llm.base_url
        self.completion_url = f"{self.base_url}{config.llm.completion_endpoint}"
        self.timeout = config.llm.timeout
        self.max_retries = config.llm.max_retries
        self.http = session or requests.Session()
        logger.info(f"LLM Client initialized: {self.completion_url} (timeout={self.timeout}s)")

    def _post_completion(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = self.http.post(self.completion_url, json=payload, timeout=self.timeout)
        response.raise_for_status()
        body = response.json()
        if not isinstance(body, dict):
            raise ValueError(f"expected a JSON object, got {type(body).__name__}")
        return body

    @staticmethod
    def _is_retryable(error: Exception) -> bool:
        if isinstance(error, requests.exceptions.HTTPError) and error.response is not None:
            return error.response.status_code in RETRYABLE_STATUS
        return True

    def _request(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST the payload, retrying until it succeeds or attempts run out.

        Raises:
            GenerationDegraded: once the last attempt fails or a failure is final
        """
        attempts = self.max_retries + 1
        attempt = 1
        while True:
            try:
                return self._post_completion(payload)
            except (requests.exceptions.RequestException, ValueError) as e:
                if attempt >= attempts or not self._is_retryable(e):
                    raise GenerationDegraded(
                        f"LLM request to {self.completion_url} failed on attempt {attempt}/{attempts}: {e}"
                    ) from e
                delay = config.llm.retry_backoff * (2 ** (attempt - 1))
                logger.warning(f"LLM attempt {attempt}/{attempts} failed ({e}); retrying in {delay:.1f}s")
                time.sleep(delay)
                attempt += 1

    def _build_payload(
        self,
        prompt: str,
        max_tokens: int,
        temperature: Optional[float],
        stop_sequences: Optional[List[str]],
    ) -> Dict[str, Any]:
        payload = {
            "prompt": prompt,
            "n_predict": max_tokens,
            "temperature": temperature if temperature is not None else config.llm.default_temperature,
            "top_p": config.llm.default_top_p,
            "repeat_penalty": config.llm.default_repeat_penalty,
        }
        if stop_sequences:
            payload["stop"] = stop_sequences
        return payload

    @staticmethod
    def _content(body: Dict[str, Any]) -> str:
        content = body.get("content", "")
        if not isinstance(content, str) or not content.strip():
            raise GenerationDegraded("LLM returned an empty completion")
        return content

    def complete(
        self,
        prompt: str,
        max_tokens: int = 1200,
        temperature: Optional[float] = None,
        stop_sequences: Optional[List[str]] = None,
    ) -> str:
        """
        Generate a completion and return its text.

        Raises:
            GenerationDegraded: if the server is unreachable or returns no text
        """
        body = self._request(self._build_payload(prompt, max_tokens, temperature, stop_sequences))
        content = self._content(body)
        logger.debug(f"LLM completion ({body.get('tokens_predicted', 0)} tokens): {content[:200]}")
        return content

    def generate(self, prompt: str, max_tokens: int = 200, temperature: Optional[float] = None) -> Completion:
        """Like complete(), but reports failure in the result instead of raising."""
        try:
            body = self._request(self._build_payload(prompt, max_tokens, temperature, None))
            text = self._content(body)
        except GenerationDegraded as e:
            return Completion(error=e.message)
        return Completion(text=text, tokens_predicted=body.get("tokens_predicted", 0))

    def health_check(self) -> bool:
        """Check if LLM server is responding."""
        return self.generate("Hello", max_tokens=5).is_valid


# Global client instance
llm_client = LLMClient()
