"""
LLM Provider Module - Campus Loop

Abstracts the Ollama integration behind a narrow text-generation interface.
narrative.py calls these methods without knowing implementation details.

CRITICAL: This module returns text ONLY. Every failure surfaces as an
EnhancementError so the caller can fall back to the deterministic outcome.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List, Callable
import os
import time
import logging

import ollama

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

OLLAMA_CONFIG = {
    'model': os.environ.get('BOARDGAME_OLLAMA_MODEL', 'llama3.1'),
    'base_url': os.environ.get('BOARDGAME_OLLAMA_HOST', 'http://localhost:11434'),
    'timeout': float(os.environ.get('BOARDGAME_OLLAMA_TIMEOUT', '15')),
    'max_retries': 2,
    'temperature': 0.7,
    'system_prompt': '''You are the storyteller of a board game about student life.

RULES:
1. Reply with a single JSON object and nothing else
2. Keep stories short (4-5 sentences at most)
3. Effects are integer ranges [min, max]
4. Credits can only be earned on faculty tiles; anywhere else credits must be [0, 0]
5. Credits are never negative
6. Never mention that you are an AI'''
}


# =============================================================================
# EXCEPTIONS
# =============================================================================

class EnhancementError(Exception):
    """Base exception for narrative service errors. Always recovered locally."""
    pass


class ServiceConnectionError(EnhancementError):
    """Failed to connect to the Ollama server."""
    pass


class ModelNotFoundError(EnhancementError):
    """Requested model not available."""
    pass


class ServiceTimeoutError(EnhancementError):
    """Request timed out."""
    pass


class GenerationError(EnhancementError):
    """Error during text generation."""
    pass


# =============================================================================
# ABSTRACT BASE CLASS
# =============================================================================

class LLMProvider(ABC):
    """
    Abstract interface for text-generation providers.

    narrative.py uses this interface - it doesn't know about Ollama.
    """

    @abstractmethod
    def generate(self, prompt: str) -> str:
        """
        Generate text for a fully rendered prompt.

        Raises:
            EnhancementError: On any failure
        """
        pass

    @abstractmethod
    def health_check(self) -> bool:
        """Check if the service is available."""
        pass


# =============================================================================
# OLLAMA CLIENT IMPLEMENTATION
# =============================================================================

class OllamaClient(LLMProvider):
    """
    Production provider using a local Ollama server.

    Features:
    - Per-request timeout
    - Bounded exponential backoff retry on transient errors
    - JSON-mode generation
    """

    def __init__(
        self,
        model: str = None,
        base_url: str = None,
        timeout: float = None,
        max_retries: int = None,
        temperature: float = None
    ):
        self.model = model or OLLAMA_CONFIG['model']
        self.base_url = base_url or OLLAMA_CONFIG['base_url']
        self.timeout = timeout or OLLAMA_CONFIG['timeout']
        self.max_retries = max_retries or OLLAMA_CONFIG['max_retries']
        self.temperature = temperature or OLLAMA_CONFIG['temperature']
        self.system_prompt = OLLAMA_CONFIG['system_prompt']

        self._client = None
        self._init_client()

    def _init_client(self):
        """Initialize Ollama client with configured base URL and timeout."""
        try:
            self._client = ollama.Client(host=self.base_url, timeout=self.timeout)
            logger.info(f"Ollama client initialized: {self.base_url}")
        except Exception as e:
            logger.error(f"Failed to initialize Ollama client: {e}")
            self._client = None

    def _with_retry(self, operation: Callable[[], str], operation_name: str = "LLM operation") -> str:
        """
        Execute operation with exponential backoff retry.

        Transient errors (connection, timeout) are retried; anything else
        is raised immediately.

        Raises:
            EnhancementError: When retries are exhausted or on a non-transient error
        """
        last_error: Optional[EnhancementError] = None
        for attempt in range(self.max_retries):
            try:
                return operation()
            except (ServiceConnectionError, ServiceTimeoutError) as e:
                last_error = e
                if attempt + 1 < self.max_retries:
                    wait_time = 2 ** attempt  # 1s, then doubling
                    logger.warning(
                        f"{operation_name} failed (attempt {attempt + 1}/{self.max_retries}): {e}. "
                        f"Retrying in {wait_time}s..."
                    )
                    time.sleep(wait_time)

        logger.warning(f"{operation_name} giving up after {self.max_retries} attempts")
        raise last_error or GenerationError(f"{operation_name} was not attempted")

    def _call_ollama(self, prompt: str) -> str:
        """
        Make actual call to Ollama API.

        Raises:
            ServiceConnectionError: If cannot connect to server
            ModelNotFoundError: If model not available
            ServiceTimeoutError: If request times out
            GenerationError: If generation fails
        """
        if self._client is None:
            self._init_client()
            if self._client is None:
                raise ServiceConnectionError("Ollama client not initialized")

        try:
            response = self._client.generate(
                model=self.model,
                prompt=prompt,
                system=self.system_prompt,
                format='json',
                options={
                    'temperature': self.temperature,
                    'num_predict': 600,
                }
            )
        except ollama.ResponseError as e:
            if 'not found' in str(e).lower() or e.status_code == 404:
                raise ModelNotFoundError(f"Model '{self.model}' not found: {e}")
            raise GenerationError(f"Ollama response error: {e}")
        except Exception as e:
            error_str = str(e).lower()
            if 'timed out' in error_str or 'timeout' in error_str:
                raise ServiceTimeoutError(f"Request timed out after {self.timeout}s: {e}")
            if 'connect' in error_str or 'refused' in error_str:
                raise ServiceConnectionError(f"Cannot connect to Ollama at {self.base_url}: {e}")
            raise GenerationError(f"Unexpected error: {e}")

        generated_text = (response.get('response') or '').strip()
        if not generated_text:
            raise GenerationError("Empty response from model")
        return generated_text

    def generate(self, prompt: str) -> str:
        return self._with_retry(lambda: self._call_ollama(prompt), "Generate tile story")

    def health_check(self) -> bool:
        """Check if Ollama is reachable and the model answers."""
        if self._client is None:
            self._init_client()
        if self._client is None:
            return False

        try:
            self._client.generate(
                model=self.model,
                prompt="test",
                options={'num_predict': 1}
            )
            return True
        except Exception as e:
            logger.warning(f"Health check failed: {e}")
            return False


# =============================================================================
# MOCK PROVIDER (for testing without Ollama)
# =============================================================================

class MockLLMProvider(LLMProvider):
    """
    Mock provider that returns canned responses.

    Useful for:
    - Unit testing without Ollama running
    - The demo entry point
    - Simulating service failures (pass `error`)
    """

    def __init__(
        self,
        responses: Optional[List[str]] = None,
        error: Optional[Exception] = None
    ):
        self.responses = list(responses or [])
        self.error = error
        self.call_count = 0
        self.call_history: List[Dict[str, Any]] = []

    def generate(self, prompt: str) -> str:
        """Return the next canned response (the last one repeats)."""
        self.call_count += 1
        self.call_history.append({'method': 'generate', 'prompt': prompt})
        if self.error is not None:
            raise self.error
        if not self.responses:
            raise GenerationError("Mock provider has no responses")
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]

    def health_check(self) -> bool:
        return self.error is None


# =============================================================================
# FACTORY FUNCTION
# =============================================================================

def create_llm_provider(provider_type: str = 'ollama', **kwargs) -> LLMProvider:
    """
    Factory function to create appropriate LLM provider.

    Args:
        provider_type: 'ollama' or 'mock'
        **kwargs: Provider-specific configuration

    Returns:
        Configured LLMProvider instance
    """
    if provider_type == 'ollama':
        return OllamaClient(**kwargs)
    elif provider_type == 'mock':
        return MockLLMProvider(**kwargs)
    else:
        raise ValueError(f"Unknown provider type: {provider_type}")
